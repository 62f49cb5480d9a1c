"""FastAPI dependencies shared by the routers.

Authentication lives in front of this service; the gateway forwards the
acting user's id in the X-User-Id header.  Services receive it as an
explicit `actor_id` argument.
"""

from fastapi import Header


async def get_actor_id(
    x_user_id: str | None = Header(None, max_length=36),
) -> str | None:
    """Id of the user making the request, or None for anonymous/system calls."""
    return x_user_id.strip() or None if x_user_id else None
