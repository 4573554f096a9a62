"""Bootstrap All Systems: interactive machine setup wizard."""

__version__ = "0.3.0"
