"""Caller identity for telemetry.

The HTTP layer binds the caller id (``X-User-Id``) into a context variable for
the duration of a request; the default resolver reads it back. Guests resolve
to None.
"""

from collections.abc import Awaitable, Callable
from contextvars import ContextVar

IdentityResolver = Callable[[], Awaitable[str | None]]

current_user_id: ContextVar[str | None] = ContextVar("current_user_id", default=None)


async def resolve_from_context() -> str | None:
    return current_user_id.get()


def bind_user(user_id: str | None):
    """Bind ``user_id`` to the current context. Returns a reset token."""
    return current_user_id.set(user_id or None)
