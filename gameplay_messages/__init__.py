"""Channel-based message bus with hierarchical tags, typed payloads and listener actions."""

__version__ = "0.1.0"
__all__ = ["types", "subsystem", "async_action"]