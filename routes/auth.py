import logging
from urllib.parse import urlparse

from fastapi import APIRouter, Request, Response, HTTPException
from firebase_admin import auth

from dependencies import SESSION_COOKIE, CurrentUser, Users
from models.token import TokenRequest

logger = logging.getLogger(__name__)

router = APIRouter()

SESSION_MAX_AGE = 5 * 24 * 60 * 60  # 5 days in seconds


@router.post("/login")
async def login(token: TokenRequest, request: Request, response: Response):
    """Exchange a Firebase ID token for an httponly session cookie"""
    try:
        decoded_token = auth.verify_id_token(
            id_token=token.id_token,
            clock_skew_seconds=10
        )
        session_cookie = auth.create_session_cookie(
            token.id_token,
            expires_in=SESSION_MAX_AGE
        )
    except (ValueError, auth.InvalidIdTokenError, auth.ExpiredIdTokenError,
            auth.CertificateFetchError, auth.UserDisabledError) as e:
        logger.info("Login rejected: %s", e)
        raise HTTPException(status_code=401, detail=f"Authentication failed: {str(e)}")

    origin = request.headers.get("origin", "")
    domain = None

    # outside local development the cookie is scoped to the frontend's host
    if origin and "localhost" not in origin:
        domain = urlparse(origin).hostname

    secure = domain is not None
    response.headers["Access-Control-Allow-Credentials"] = "true"
    response.set_cookie(
        key=SESSION_COOKIE,
        value=session_cookie.decode() if isinstance(session_cookie, bytes) else str(session_cookie),
        httponly=True,
        secure=secure,
        max_age=SESSION_MAX_AGE,
        path="/",
        samesite="lax",
        domain=domain
    )

    logger.info("User %s signed in", decoded_token["uid"])
    return {"success": True, "user_id": decoded_token["uid"]}


@router.post("/logout")
async def logout(response: Response, current_user: CurrentUser):
    """Revoke the user's refresh tokens so existing session cookies stop verifying, then clear the cookie"""
    auth.revoke_refresh_tokens(current_user.user_id)
    response.delete_cookie(
        key=SESSION_COOKIE,
        path="/",
        httponly=True,
    )
    logger.info("User %s signed out", current_user.user_id)
    return {"success": True}


@router.get("/verify")
def verify_session(current_user: CurrentUser, users: Users):
    """Confirm the session (cookie or bearer token) and return who it belongs to"""
    profile = users.find_user(current_user.user_id) or {}
    return {
        "valid": True,
        "user": {
            "uid": current_user.user_id,
            "email": current_user.email or profile.get("email"),
            "UserName": profile.get("UserName"),
            "profileImage": profile.get("profileImage"),
        },
    }
