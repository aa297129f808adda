"""
services/auth/router.py
Google OAuth2 sign-in.
Implements: Login → Callback → upsert user → JWT issue → Logout
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from authlib.integrations.starlette_client import OAuth, OAuthError
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.redis_client import RedisCache, get_redis
from config.settings import settings
from shared.middleware.auth import TokenData, get_current_user, get_token_data
from shared.models.models import User
from shared.schemas.schemas import AuthCallbackResponse, MessageResponse, UserResponse
from shared.utils.security import create_access_token, get_token_remaining_ttl

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["Authentication"])

# ── OAuth Setup ───────────────────────────────────────────────
oauth = OAuth()
oauth.register(
    name="google",
    client_id=settings.GOOGLE_CLIENT_ID,
    client_secret=settings.GOOGLE_CLIENT_SECRET,
    server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
    client_kwargs={"scope": "openid email profile"},
    redirect_uri=settings.GOOGLE_REDIRECT_URI,
)


# ── Helper ────────────────────────────────────────────────────

async def upsert_user(
    db: AsyncSession,
    email: str,
    name: Optional[str],
    image: Optional[str],
) -> User:
    """
    Users are keyed by email. A returning user gets their name and picture
    refreshed from the provider; a first sign-in creates the row.
    """
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    now = datetime.now(timezone.utc)

    if user:
        user.name = name or user.name
        user.image = image or user.image
        user.last_login = now
    else:
        user = User(email=email, name=name, image=image, last_login=now)
        db.add(user)

    await db.flush()
    return user


# ── Endpoints ─────────────────────────────────────────────────

@router.get("/google", summary="Initiate Google OAuth2 login")
async def google_login(request: Request):
    """Redirects the user to Google's OAuth2 consent page."""
    return await oauth.google.authorize_redirect(request, settings.GOOGLE_REDIRECT_URI)


@router.get(
    "/google/callback",
    response_model=AuthCallbackResponse,
    summary="Google OAuth2 callback",
)
async def google_callback(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Handles the Google callback and issues a JWT access token."""
    try:
        token = await oauth.google.authorize_access_token(request)
    except OAuthError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"OAuth error: {e.error}",
        )
    userinfo = token.get("userinfo")
    if not userinfo or not userinfo.get("email"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Could not fetch user info from Google",
        )

    user = await upsert_user(
        db,
        email=userinfo["email"].lower(),
        name=userinfo.get("name"),
        image=userinfo.get("picture"),
    )
    await db.commit()
    await db.refresh(user)

    access_token, _ = create_access_token(user_id=user.id, email=user.email)
    logger.info("User signed in id=%s", user.id)

    return AuthCallbackResponse(
        access_token=access_token,
        expires_in=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=UserResponse.model_validate(user),
    )


@router.post("/logout", response_model=MessageResponse, summary="Logout user")
async def logout(
    token_data: TokenData = Depends(get_token_data),
    redis=Depends(get_redis),
):
    """Add the current access token's JTI to the Redis deny-list."""
    ttl = get_token_remaining_ttl(token_data.exp)
    if ttl > 0:
        await RedisCache(redis).revoke_token(token_data.jti, ttl)
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserResponse, summary="Get current user")
async def get_me(current_user: User = Depends(get_current_user)):
    """Returns the authenticated user's profile."""
    return UserResponse.model_validate(current_user)
