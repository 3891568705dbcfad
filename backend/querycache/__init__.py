"""Search result cache and history engine."""

__version__ = "0.1.0"
