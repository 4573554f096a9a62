"""Failure containment around the lifecycle calls of the root model.

One bad ``update`` must not take the whole session down. The shield takes a
snapshot before each update, and if the update raises it logs the failure
with its traceback and puts the snapshot back, so the call becomes a no-op.
This only contains the damage. It does not make the failing code correct,
which is why every failure is logged at ERROR with its stack.
"""

import logging

logger = logging.getLogger(__name__)


class RecoveryShield:
    """Wraps a model exposing init/update/view plus snapshot/restore."""

    def __init__(self, model):
        self.model = model
        self.last_view = ""
        self.failures = 0

    def init(self):
        try:
            return self.model.init()
        except Exception:
            self.failures += 1
            logger.exception("Recovered from failure in init()")
            return None

    def update(self, msg):
        try:
            snapshot = self.model.snapshot()
        except Exception:
            self.failures += 1
            logger.exception("Could not snapshot state; skipping update(%r)", msg)
            return None
        try:
            return self.model.update(msg)
        except Exception:
            self.failures += 1
            logger.exception(
                "Recovered from failure in update(%r); previous state restored", msg
            )
            self.model.restore(snapshot)
            return None

    def view(self) -> str:
        try:
            self.last_view = self.model.view()
        except Exception:
            self.failures += 1
            logger.exception("Recovered from failure in view(); showing last frame")
        return self.last_view
