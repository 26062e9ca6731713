"""
WebSocket Server
================

Socket.IO side channel that pushes order updates to connected customers
while the app is open. It is a convenience on top of polling: the client
poller remains the source of truth, so every emit here is best effort.

Architecture:
  - python-socketio AsyncServer mounted as ASGI app on FastAPI
  - Redis manager for fan-out across instances when ``redis_url`` is set,
    in-memory manager otherwise
  - JWT authentication on connect, extracting the numeric user id
  - Room-based routing: ``user_{user_id}``

Events emitted TO clients:
  order_status_changed, order_in_progress, payment_received, order_voided
"""

from __future__ import annotations

import logging
from typing import Any

import socketio
from redis.asyncio import Redis

from src.core.config import settings
from src.core.security import user_id_from_token

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Socket.IO server instance
# ---------------------------------------------------------------------------

_redis_mgr_url: str = settings.redis_url

client_manager = (
    socketio.AsyncRedisManager(_redis_mgr_url, write_only=False)
    if _redis_mgr_url
    else None
)

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=settings.ws_cors_allowed_origins,
    client_manager=client_manager,
    logger=False,
    engineio_logger=False,
    ping_timeout=settings.ws_ping_timeout,
    ping_interval=settings.ws_ping_interval,
    max_http_buffer_size=1_000_000,  # 1 MB
)


# ---------------------------------------------------------------------------
# Connection registry: maps user_id -> set of sids (one user, many devices)
# ---------------------------------------------------------------------------

_user_sids: dict[int, set[str]] = {}
_sid_user: dict[str, int] = {}


def get_user_sids(user_id: int) -> set[str]:
    """Return all session IDs for a given user (may span multiple devices)."""
    return _user_sids.get(user_id, set())


def _register_connection(sid: str, user_id: int) -> None:
    _user_sids.setdefault(user_id, set()).add(sid)
    _sid_user[sid] = user_id


def _unregister_connection(sid: str) -> int | None:
    """Remove a connection from the registry. Returns the user_id or None."""
    user_id = _sid_user.pop(sid, None)
    if user_id is None:
        return None
    user_set = _user_sids.get(user_id)
    if user_set:
        user_set.discard(sid)
        if not user_set:
            del _user_sids[user_id]
    return user_id


def user_room(user_id: int) -> str:
    return f"user_{user_id}"


# ---------------------------------------------------------------------------
# Connect / disconnect
# ---------------------------------------------------------------------------

@sio.event
async def connect(sid: str, environ: dict[str, Any], auth: dict[str, Any] | None = None) -> bool:
    """Authenticate the connection and join the user's personal room.

    The client must provide ``auth: { token: "<jwt>" }`` on connect.
    Returns ``False`` to reject unauthenticated connections.
    """
    token = (auth or {}).get("token")
    if not token:
        logger.info("Connection rejected for sid=%s -- no token", sid)
        return False
    try:
        user_id = user_id_from_token(token)
    except ValueError as exc:
        logger.warning("Connection rejected for sid=%s -- %s", sid, exc)
        return False

    _register_connection(sid, user_id)
    await sio.enter_room(sid, user_room(user_id))
    logger.info("Connected: sid=%s user_id=%s", sid, user_id)
    return True


@sio.event
async def disconnect(sid: str) -> None:
    user_id = _unregister_connection(sid)
    logger.info("Disconnected: sid=%s user_id=%s", sid, user_id)


# ---------------------------------------------------------------------------
# Broadcast helpers (used by services)
# ---------------------------------------------------------------------------

async def send_to_user(user_id: int, event: str, data: dict[str, Any]) -> bool:
    """Emit ``event`` to every session of ``user_id``.

    Failures are logged and reported as ``False``; they never propagate to
    the caller's request.
    """
    room = user_room(user_id)
    try:
        await sio.emit(event, data, room=room)
    except Exception as exc:
        logger.warning("Failed to emit %s to room=%s: %s", event, room, exc)
        return False
    logger.debug("Sent %s to room=%s", event, room)
    return True


# ---------------------------------------------------------------------------
# Redis helper for direct key/value operations
# ---------------------------------------------------------------------------

_redis_client: Redis | None = None


async def get_redis() -> Redis | None:
    """Return a shared async Redis client, or None when Redis is not configured."""
    global _redis_client
    if not _redis_mgr_url:
        return None
    if _redis_client is None:
        _redis_client = Redis.from_url(
            _redis_mgr_url,
            decode_responses=True,
        )
    return _redis_client


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


# ---------------------------------------------------------------------------
# ASGI app for mounting onto FastAPI
# ---------------------------------------------------------------------------

socket_app = socketio.ASGIApp(
    socketio_server=sio,
    socketio_path="/ws/socket.io",
)
