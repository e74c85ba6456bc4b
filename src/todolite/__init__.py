"""todolite: task state management with checksummed, cross-context synced persistence."""

__version__ = "0.1.0"
