"""TaskGate - tenant-scoped task management service."""

__version__ = "0.1.0"
