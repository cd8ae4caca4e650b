"""Book review service with background review processing."""

__version__ = "0.1.0"
