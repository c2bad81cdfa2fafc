"""Payment and commission settlement engine for tournaments."""

__version__ = "0.1.0"
