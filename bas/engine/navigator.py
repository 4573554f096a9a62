from typing import Generic, List, TypeVar

P = TypeVar("P")


class Navigator(Generic[P]):
    """LIFO stack of phases. Never empty: the root phase cannot be popped."""

    def __init__(self, root: P):
        self.history: List[P] = [root]

    def current(self) -> P:
        return self.history[-1]

    def push(self, phase: P) -> None:
        self.history.append(phase)

    def pop(self) -> bool:
        """Go back one phase. Returns False, leaving the stack alone, at the root."""
        if len(self.history) <= 1:
            return False
        self.history.pop()
        return True

    def reset(self, phase: P) -> None:
        self.history = [phase]

    def __len__(self):
        return len(self.history)

    def __eq__(self, other):
        if not isinstance(other, Navigator):
            return NotImplemented
        return self.history == other.history

    def __repr__(self):
        return f"Navigator({self.history!r})"
