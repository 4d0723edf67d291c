from fastapi import Header, HTTPException, status
import httpx

from config import settings
from domain import Actor


async def _fetch_user(access_token: str) -> dict:
    if not settings.supabase_url or not settings.supabase_service_role_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication backend is not configured",
        )
    headers = {
        "Authorization": f"Bearer {access_token}",
        "apikey": settings.supabase_service_role_key,
    }
    url = f"{settings.supabase_url}/auth/v1/user"
    async with httpx.AsyncClient(timeout=10) as client:
        response = await client.get(url, headers=headers)
    if response.status_code != 200:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid auth token"
        )
    return response.json()


def actor_from_user(user: dict) -> Actor:
    user_id = user.get("id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid user profile"
        )
    app_metadata = user.get("app_metadata") or {}
    organization_id = app_metadata.get("organization_id")
    if not organization_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is not a member of any organization",
        )
    return Actor(
        user_id=user_id,
        organization_id=str(organization_id),
        is_platform_admin=bool(app_metadata.get("is_platform_admin")),
        email=user.get("email"),
    )


async def get_current_actor(
    authorization: str | None = Header(default=None, convert_underscores=False),
) -> Actor:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing auth token"
        )
    token = authorization.split(" ", 1)[1]
    user = await _fetch_user(token)
    return actor_from_user(user)
