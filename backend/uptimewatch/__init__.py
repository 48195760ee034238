"""uptimewatch - periodic health checks with debounced up/down status."""

__version__ = "1.0.0"
