from fastapi import Header, HTTPException, status

from elevate_api.core.settings import settings


async def require_admin_api_key(x_api_key: str = Header("", alias="X-API-Key")) -> None:
    if not settings.admin_api_key:
        return

    if x_api_key != settings.admin_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )


async def get_actor_id(x_actor_id: str = Header("", alias="X-Actor-Id")) -> str:
    """Identity of the admin acting through the console, forwarded as a header."""

    actor = x_actor_id.strip()
    if not actor:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing X-Actor-Id header",
        )
    return actor
