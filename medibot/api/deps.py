from typing import Optional

from fastapi import Header, HTTPException, status

from medibot.core.config import settings


def verify_api_key_dependency(
    x_api_key: Optional[str] = Header(None),
    authorization: Optional[str] = Header(None)
) -> bool:
    """
    Guard for the reminders router; a no-op unless REQUIRE_API_KEY is set
    """
    if not settings.REQUIRE_API_KEY:
        return True

    # Server-to-server callers send X-API-Key; browser clients reuse the Bearer slot
    scheme, _, token = (authorization or "").partition(" ")
    api_key = x_api_key or (token if scheme == "Bearer" else None)

    if api_key not in settings.VALID_API_KEYS:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )

    return True
