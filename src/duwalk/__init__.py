"""duwalk - interactive directory size explorer."""

__version__ = "0.1.0"
