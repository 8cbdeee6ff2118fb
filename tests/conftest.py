import pytest
from fastapi import Request
from fastapi.testclient import TestClient

from config import Settings
from dependencies import get_current_user
from models.user import Session
from services.engagement import EngagementService
from services.firestore import FirestoreDB, POSTS, USERS
from services.media import MediaStore
from services.notifications import NotificationDispatcher
from services.orders import OrderService
from services.relationships import RelationshipService
from services.retry import RetryPolicy
from tests.fakes import FakeFirestore, FakeS3, RecordingNotifier

ARTIST = "artist-1"
BUYER = "buyer-1"
STRANGER = "stranger-1"


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def retry(sleeps):
    return RetryPolicy(attempts=3, backoff=1.0, sleep=sleeps.append)


@pytest.fixture
def fake_store():
    store = FakeFirestore()
    store.seed(USERS, ARTIST, {"UserName": "Asha Rao", "email": "asha@example.com", "profileImage": "a.png"})
    store.seed(USERS, BUYER, {"UserName": "Ben Ortiz", "email": "ben@example.com"})
    store.seed(USERS, STRANGER, {"UserName": "Sam Lee", "email": "sam@example.com"})
    store.seed(POSTS, "post-1", {
        "userId": ARTIST,
        "userName": "Asha Rao",
        "userEmail": "asha@example.com",
        "imageUrl": "https://cdn.example.com/posts/monsoon.jpg",
        "title": "Monsoon",
        "isForSale": True,
        "price": 2500,
        "likes": 0,
        "likedBy": [],
        "comments": 0,
        "commentsList": [],
        "shares": 0,
        "createdAt": "2026-01-01T00:00:00+00:00",
    })
    return store


@pytest.fixture
def db(fake_store):
    return FirestoreDB(client=fake_store)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def dispatcher(notifier):
    return NotificationDispatcher(notifier)


@pytest.fixture
def engagement(db, retry):
    return EngagementService(db, retry)


@pytest.fixture
def relationships(db, retry):
    return RelationshipService(db, retry)


@pytest.fixture
def orders(db, dispatcher, retry):
    return OrderService(db, dispatcher, retry)


@pytest.fixture
def s3():
    return FakeS3()


@pytest.fixture
def media(s3):
    return MediaStore("artconnect-test", s3, region="us-east-2", max_size_mb=1)


def session(user_id: str) -> Session:
    return Session(user_id=user_id, email=f"{user_id}@example.com")


@pytest.fixture
def client(db, media, notifier, retry):
    from main import app, wire_services

    def current_user_from_header(request: Request) -> Session:
        return session(request.headers.get("X-Test-User", BUYER))

    wire_services(app.state, Settings(), db, media, notifier, http_session=None, retry=retry)
    app.dependency_overrides[get_current_user] = current_user_from_header
    yield TestClient(app)
    app.dependency_overrides.clear()


def as_user(user_id: str) -> dict:
    return {"X-Test-User": user_id}
