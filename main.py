import logging
from contextlib import asynccontextmanager
from typing import Optional

import aiohttp
import boto3
import firebase_admin
from botocore.config import Config
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from firebase_admin import credentials
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware

from config import Settings, get_settings
from context import RequestContextMiddleware, RequestIdFilter
from routes.auth import router as auth_router
from routes.posts import router as posts_router
from routes.purchases import router as purchases_router
from routes.social import router as social_router
from routes.storage import router as storage_router
from routes.users import router as users_router
from services.engagement import EngagementService
from services.errors import ArtConnectError
from services.firestore import FirestoreDB
from services.media import MediaStore
from services.notifications import EmailNotifier, NotificationDispatcher
from services.orders import OrderService
from services.posts import PostService
from services.relationships import RelationshipService
from services.retry import RetryPolicy
from services.social import SocialPublisher
from services.users import UserService

load_dotenv()

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s [%(levelname)s] %(name)s [%(request_id)s]: %(message)s",
)
for handler in logging.getLogger().handlers:
    handler.addFilter(RequestIdFilter())

logger = logging.getLogger(__name__)


def wire_services(state, settings: Settings, db: FirestoreDB, media_store: MediaStore,
                  notifier: EmailNotifier, http_session: aiohttp.ClientSession, retry: Optional[RetryPolicy] = None):
    """Build the domain services on top of their clients and attach them to app state"""
    retry = retry or RetryPolicy(settings.retry_attempts, settings.retry_backoff_seconds)
    dispatcher = NotificationDispatcher(notifier)

    state.http_session = http_session
    state.firestore = db
    state.media_store = media_store
    state.dispatcher = dispatcher
    state.post_service = PostService(db, retry)
    state.engagement_service = EngagementService(db, retry, settings.cas_max_rounds)
    state.relationship_service = RelationshipService(db, retry)
    state.order_service = OrderService(db, dispatcher, retry, settings.cas_max_rounds)
    state.user_service = UserService(db)
    state.social_publisher = SocialPublisher(
        http_session,
        instagram_access_token=settings.instagram_access_token,
        instagram_account_id=settings.instagram_account_id,
        twitter_bearer_token=settings.twitter_bearer_token,
        facebook_access_token=settings.facebook_access_token,
        facebook_page_id=settings.facebook_page_id,
        graph_api_version=settings.graph_api_version,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Initialize Firebase Admin SDK
    if not firebase_admin._apps:
        cred = credentials.Certificate(settings.firebase_credentials_path)
        firebase_admin.initialize_app(cred)
    firebase_app = firebase_admin.get_app()

    # S3 client
    s3_client = boto3.client(
        's3',
        aws_access_key_id=settings.aws_access_key_id,
        aws_secret_access_key=settings.aws_secret_access_key,
        region_name=settings.aws_region,
        config=Config(signature_version="s3v4")
    )

    session = aiohttp.ClientSession()
    media_store = MediaStore(
        settings.s3_bucket_name,
        s3_client,
        region=settings.aws_region,
        public_base_url=settings.media_public_base_url,
        max_size_mb=settings.max_upload_size_mb,
    )
    notifier = EmailNotifier(
        settings.email_host,
        settings.email_port,
        settings.email_user,
        settings.email_pass,
        sender_name=settings.email_sender_name,
    )
    db = FirestoreDB(firebase_app, timeout=settings.store_timeout_seconds)
    wire_services(app.state, settings, db, media_store, notifier, session)
    logger.info("%s services ready", settings.app_name)

    yield
    # Cleanup resources
    await session.close()


app = FastAPI(title=settings.app_name, lifespan=lifespan)


def error_body(message: str):
    return {"success": False, "message": message}


@app.exception_handler(ArtConnectError)
async def artconnect_error_handler(request: Request, exc: ArtConnectError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    else:
        logger.info("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content=error_body(str(exc.detail)),
                        headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}" for error in errors
    )
    return JSONResponse(status_code=400, content=error_body(message or "Invalid request"))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=error_body("Internal server error"))


# middleware to set request context
app.add_middleware(RequestContextMiddleware)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["set-cookie", "X-Request-ID"]
)

# Include routers
app.include_router(auth_router, prefix="/auth", tags=["auth"])
app.include_router(posts_router, prefix="/api/posts", tags=["posts"])
app.include_router(users_router, prefix="/api/users", tags=["users"])
app.include_router(purchases_router, prefix="/api/purchases", tags=["purchases"])
app.include_router(social_router, prefix="/api/social", tags=["social"])
app.include_router(storage_router, prefix="/api/storage", tags=["storage"])


@app.get("/health")
async def health():
    return {"status": "OK", "message": f"{settings.app_name} API is running"}
