import logging
from contextlib import contextmanager
from typing import List, Dict, Any, Optional, Tuple

import firebase_admin
from firebase_admin import firestore as fs
from google.api_core import exceptions as gexc
from google.cloud import firestore
from google.cloud.firestore_v1 import FieldFilter

from services.errors import NotFound, TransientIOError

logger = logging.getLogger(__name__)

USERS = "USERS"
POSTS = "POSTS"
PURCHASES = "PURCHASES"
FOLLOWERS = "FOLLOWERS"
FOLLOWING = "FOLLOWING"

KINDS = {USERS: "User", POSTS: "Post", PURCHASES: "Purchase"}

# Share IDs kept on a post for recognising a repeated share attempt
RECENT_SHARE_IDS = 20

# Failures worth another attempt; everything else propagates as-is
TRANSIENT_ERRORS = (
    gexc.ServiceUnavailable,
    gexc.DeadlineExceeded,
    gexc.InternalServerError,
    gexc.TooManyRequests,
    gexc.Aborted,
)


class PreconditionFailed(Exception):
    """The document changed between the read and the conditional write"""


@contextmanager
def store_call(label: str):
    """Translate transient Google API failures into TransientIOError"""
    try:
        yield
    except TRANSIENT_ERRORS as e:
        raise TransientIOError(f"{label}: {e}") from e


def _with_id(snapshot) -> Dict[str, Any]:
    data = snapshot.to_dict() or {}
    data["id"] = snapshot.id
    return data


class FirestoreDB:
    def __init__(self, app: Optional[firebase_admin.App] = None, client=None, timeout: float = 30.0):
        """
        Args:
            app: Firebase app whose Firestore client to use
            client: Explicit Firestore client, used instead of app when given
            timeout: Per-call deadline in seconds for every store request
        """
        self.db = client if client is not None else fs.client(app)
        self.timeout = timeout

    def collection(self, name: str):
        return self.db.collection(name)

    def snapshot(self, collection: str, doc_id: str):
        """Get a document snapshot, or None if the document does not exist"""
        with store_call(f"get {collection}/{doc_id}"):
            snapshot = self.collection(collection).document(doc_id).get(timeout=self.timeout)
        if not snapshot.exists:
            return None
        return snapshot

    def get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        snapshot = self.snapshot(collection, doc_id)
        return _with_id(snapshot) if snapshot else None

    def update_if_unchanged(self, collection: str, doc_id: str, fields: Dict[str, Any], snapshot) -> None:
        """
        Apply an update only if the document still carries the snapshot's update time.

        This is the compare-and-swap primitive the engines build on: a concurrent
        writer bumps the update time, so the stale write is rejected instead of
        clobbering it.

        Raises:
            PreconditionFailed: If the document was modified since the snapshot
            NotFound: If the document was deleted
        """
        doc_ref = self.collection(collection).document(doc_id)
        option = self.db.write_option(last_update_time=snapshot.update_time)
        try:
            with store_call(f"update {collection}/{doc_id}"):
                doc_ref.update(fields, option=option, timeout=self.timeout)
        except gexc.FailedPrecondition as e:
            raise PreconditionFailed(str(e)) from e
        except gexc.NotFound as e:
            raise NotFound(KINDS.get(collection, collection), doc_id) from e

    def _update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        try:
            with store_call(f"update {collection}/{doc_id}"):
                self.collection(collection).document(doc_id).update(fields, timeout=self.timeout)
        except gexc.NotFound as e:
            raise NotFound(KINDS.get(collection, collection), doc_id) from e

    # ---- Posts ----

    def new_id(self, collection: str) -> str:
        """Allocate a document ID client-side without writing anything"""
        return self.collection(collection).document().id

    def create_post(self, post_id: str, data: Dict[str, Any]) -> bool:
        """
        Create the post under a pre-allocated ID.

        Returns:
            False if the document already exists, i.e. an earlier attempt of the
            same call committed
        """
        try:
            with store_call("create post"):
                self.collection(POSTS).document(post_id).create(data, timeout=self.timeout)
        except gexc.Conflict:
            logger.info("Post %s already exists, keeping the stored copy", post_id)
            return False
        return True

    def get_post(self, post_id: str) -> Optional[Dict[str, Any]]:
        return self.get_document(POSTS, post_id)

    def update_post(self, post_id: str, fields: Dict[str, Any]) -> None:
        self._update(POSTS, post_id, fields)

    def delete_post(self, post_id: str) -> None:
        with store_call(f"delete post {post_id}"):
            self.collection(POSTS).document(post_id).delete(timeout=self.timeout)

    def get_posts(self, limit: int = 20, last_doc_id: Optional[str] = None,
                  user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Get posts newest first, optionally for one author, starting after a cursor document"""
        query = self.collection(POSTS)
        if user_id:
            query = query.where(filter=FieldFilter("userId", "==", user_id))
        query = query.order_by("createdAt", direction=firestore.Query.DESCENDING)

        if last_doc_id:
            cursor = self.snapshot(POSTS, last_doc_id)
            if cursor is not None:
                query = query.start_after(cursor)

        with store_call("list posts"):
            return [_with_id(doc) for doc in query.limit(limit).stream(timeout=self.timeout)]

    def count_posts_by_user(self, user_id: str) -> int:
        """Count a user's posts by scanning the filtered collection"""
        query = self.collection(POSTS).where(filter=FieldFilter("userId", "==", user_id))
        with store_call(f"count posts for {user_id}"):
            return sum(1 for _ in query.stream(timeout=self.timeout))

    def like_post(self, post_id: str, user_id: str, snapshot) -> None:
        """Add a like: one conditional update bumping the counter and adding to likedBy"""
        self.update_if_unchanged(POSTS, post_id, {
            "likes": firestore.Increment(1),
            "likedBy": firestore.ArrayUnion([user_id]),
        }, snapshot)

    def unlike_post(self, post_id: str, user_id: str, snapshot, decrement: bool = True) -> None:
        """Remove a like; the counter is left alone when it is already at zero"""
        fields = {"likedBy": firestore.ArrayRemove([user_id])}
        if decrement:
            fields["likes"] = firestore.Increment(-1)
        self.update_if_unchanged(POSTS, post_id, fields, snapshot)

    def append_comment(self, post_id: str, comment: Dict[str, Any], snapshot) -> None:
        """Append a comment and bump the comment counter in the same conditional update"""
        self.update_if_unchanged(POSTS, post_id, {
            "comments": firestore.Increment(1),
            "commentsList": firestore.ArrayUnion([comment]),
        }, snapshot)

    def record_share(self, post_id: str, share_id: str, snapshot) -> None:
        """
        Count one share and remember its ID among the most recent ones, so a
        repeated attempt can tell that its share already landed.
        """
        post = snapshot.to_dict() or {}
        recent = list(post.get("recentShareIds", []))[-(RECENT_SHARE_IDS - 1):] + [share_id]
        self.update_if_unchanged(POSTS, post_id, {
            "shares": firestore.Increment(1),
            "recentShareIds": recent,
        }, snapshot)

    # ---- Follow graph ----

    def add_follow(self, follower_id: str, target_id: str) -> None:
        """
        Record follower_id -> target_id on both sides in one atomic batch.
        Merging creates either document when it does not exist yet.
        """
        batch = self.db.batch()
        batch.set(self.collection(FOLLOWERS).document(target_id), {
            "followers": firestore.ArrayUnion([follower_id]),
            "updatedAt": firestore.SERVER_TIMESTAMP,
        }, merge=True)
        batch.set(self.collection(FOLLOWING).document(follower_id), {
            "following": firestore.ArrayUnion([target_id]),
            "updatedAt": firestore.SERVER_TIMESTAMP,
        }, merge=True)
        with store_call(f"follow {follower_id}->{target_id}"):
            batch.commit(timeout=self.timeout)

    def remove_follow(self, follower_id: str, target_id: str) -> None:
        batch = self.db.batch()
        batch.set(self.collection(FOLLOWERS).document(target_id), {
            "followers": firestore.ArrayRemove([follower_id]),
            "updatedAt": firestore.SERVER_TIMESTAMP,
        }, merge=True)
        batch.set(self.collection(FOLLOWING).document(follower_id), {
            "following": firestore.ArrayRemove([target_id]),
            "updatedAt": firestore.SERVER_TIMESTAMP,
        }, merge=True)
        with store_call(f"unfollow {follower_id}->{target_id}"):
            batch.commit(timeout=self.timeout)

    def get_followers(self, user_id: str) -> List[str]:
        doc = self.get_document(FOLLOWERS, user_id)
        return list(doc.get("followers", [])) if doc else []

    def get_following(self, user_id: str) -> List[str]:
        doc = self.get_document(FOLLOWING, user_id)
        return list(doc.get("following", [])) if doc else []

    # ---- Users ----

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self.get_document(USERS, user_id)

    def update_user(self, user_id: str, fields: Dict[str, Any]) -> None:
        self._update(USERS, user_id, fields)

    def search_users(self, prefix: str, limit: int = 20) -> List[Dict[str, Any]]:
        """Prefix search on UserName"""
        query = self.collection(USERS) \
            .where(filter=FieldFilter("UserName", ">=", prefix)) \
            .where(filter=FieldFilter("UserName", "<=", prefix + "\uf8ff")) \
            .limit(limit)
        with store_call("search users"):
            return [_with_id(doc) for doc in query.stream(timeout=self.timeout)]

    # ---- Purchases ----

    def create_purchase(self, doc_id: str, data: Dict[str, Any]) -> Tuple[str, bool]:
        """
        Create a purchase document. The write is create-only, so a repeated
        attempt or request carrying the same ID finds the existing record
        instead of duplicating it.

        Returns:
            The document ID and whether this call created it
        """
        ref = self.collection(PURCHASES).document(doc_id)
        try:
            with store_call("create purchase"):
                ref.create(data, timeout=self.timeout)
        except gexc.Conflict:
            logger.info("Purchase %s already exists, returning existing record", doc_id)
            return doc_id, False
        return doc_id, True

    def get_purchase(self, purchase_id: str) -> Optional[Dict[str, Any]]:
        return self.get_document(PURCHASES, purchase_id)

    def get_purchases(self, field: str, value: str) -> List[Dict[str, Any]]:
        """Get purchases where field == value, newest first"""
        query = self.collection(PURCHASES) \
            .where(filter=FieldFilter(field, "==", value)) \
            .order_by("createdAt", direction=firestore.Query.DESCENDING)
        with store_call("list purchases"):
            return [_with_id(doc) for doc in query.stream(timeout=self.timeout)]
