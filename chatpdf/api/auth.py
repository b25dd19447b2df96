"""FastAPI caller identification dependency."""

from fastapi import HTTPException, Request


async def get_user_id(request: Request) -> str:
    """Return the authenticated user id set by the API gateway.

    Args:
        request (Request): The incoming FastAPI request.

    Raises:
        HTTPException: If the user header is missing (401).
    """
    userid = request.headers.get("X-User-Id", "").strip()
    if not userid:
        raise HTTPException(status_code=401, detail="Missing user identity.")
    return userid
