"""Event-driven garbage collector for Docker images."""

__version__ = "1.0.0"
