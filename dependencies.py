import logging
from typing import Annotated

from fastapi import Request, Depends, HTTPException
from firebase_admin import auth

from models.user import Session
from services.engagement import EngagementService
from services.media import MediaStore
from services.notifications import NotificationDispatcher
from services.orders import OrderService
from services.posts import PostService
from services.relationships import RelationshipService
from services.social import SocialPublisher
from services.users import UserService

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session"


def get_current_user(request: Request) -> Session:
    """
    Build the caller's Session from a Firebase ID token in the Authorization
    header, falling back to the session cookie set at login. Revoked tokens
    and cookies are rejected, so a signed-out session is never reused.
    """
    authorization = request.headers.get("Authorization")
    try:
        if authorization and authorization.startswith("Bearer "):
            token = authorization.split("Bearer ", 1)[1]
            decoded = auth.verify_id_token(token, check_revoked=True, clock_skew_seconds=10)
        elif request.cookies.get(SESSION_COOKIE):
            decoded = auth.verify_session_cookie(request.cookies[SESSION_COOKIE], check_revoked=True)
        else:
            raise HTTPException(status_code=401, detail="Invalid authorization header")
    except HTTPException:
        raise
    except (ValueError, auth.InvalidIdTokenError, auth.InvalidSessionCookieError,
            auth.CertificateFetchError, auth.UserDisabledError, auth.UserNotFoundError) as e:
        logger.info("Rejected authentication token: %s", e)
        raise HTTPException(status_code=401, detail=f"Invalid authentication token: {str(e)}")

    return Session(user_id=decoded["uid"], email=decoded.get("email"))


async def get_post_service(request: Request) -> PostService:
    return request.app.state.post_service


async def get_engagement_service(request: Request) -> EngagementService:
    return request.app.state.engagement_service


async def get_relationship_service(request: Request) -> RelationshipService:
    return request.app.state.relationship_service


async def get_order_service(request: Request) -> OrderService:
    return request.app.state.order_service


async def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service


async def get_media_store(request: Request) -> MediaStore:
    """Get media store from app state"""
    return request.app.state.media_store


async def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher


async def get_social_publisher(request: Request) -> SocialPublisher:
    return request.app.state.social_publisher


CurrentUser = Annotated[Session, Depends(get_current_user)]
Posts = Annotated[PostService, Depends(get_post_service)]
Engagement = Annotated[EngagementService, Depends(get_engagement_service)]
Relationships = Annotated[RelationshipService, Depends(get_relationship_service)]
Orders = Annotated[OrderService, Depends(get_order_service)]
Users = Annotated[UserService, Depends(get_user_service)]
Media = Annotated[MediaStore, Depends(get_media_store)]
Notifications = Annotated[NotificationDispatcher, Depends(get_dispatcher)]
Social = Annotated[SocialPublisher, Depends(get_social_publisher)]
