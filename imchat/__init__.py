"""Asyncio websocket chat gateway with acknowledged delivery, Redis discovery and MongoDB storage."""

__version__ = "0.1.0"

__all__ = [
    "chatlog_store",
    "client",
    "connection",
    "conversation_store",
    "discover",
    "handlers",
    "ip",
    "message",
    "models",
    "options",
    "protocol",
    "server",
]