"""
LokaClean Real-time Module
==========================

Socket.IO side channel for pushing order updates to connected customers.

Usage in FastAPI app startup::

    from src.realtime import socket_app
    app.mount("/ws", socket_app)
"""

from __future__ import annotations

from .socketServer import (
    close_redis,
    get_redis,
    send_to_user,
    sio,
    socket_app,
    user_room,
)

__all__ = [
    "sio",
    "socket_app",
    "send_to_user",
    "user_room",
    "get_redis",
    "close_redis",
]
