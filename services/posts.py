import logging
import re
from typing import Any, Dict, List, Optional

from models.post import PostCreate, PostUpdate
from models.user import Session
from services.errors import NotFound, Unauthorized, ValidationError
from services.firestore import FirestoreDB, POSTS
from services.retry import RetryPolicy
from utils.timestamps import now_iso

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class PostService:
    def __init__(self, db: FirestoreDB, retry: Optional[RetryPolicy] = None):
        self.db = db
        self.retry = retry or RetryPolicy()

    def create_post(self, session: Session, post_data: PostCreate) -> Dict[str, Any]:
        """
        Publish a post for the session user.

        Counters start at zero and the like/comment collections empty; price is
        only kept for posts marked for sale. The ID is allocated before the
        write, so a retry after a lost acknowledgement cannot publish twice.
        """
        if not post_data.imageUrl:
            raise ValidationError("imageUrl is required")

        user_name = post_data.userName.strip()
        now = now_iso()
        post = {
            "userId": session.user_id,
            "userName": user_name,
            "userEmail": post_data.userEmail or session.email or "",
            "username": "@" + re.sub(r"\s+", "_", user_name.lower()) if user_name else "",
            "profileImage": post_data.profileImage,
            "imageUrl": post_data.imageUrl,
            "title": post_data.title,
            "description": post_data.description,
            "story": post_data.story,
            "materials": post_data.materials,
            "techniques": post_data.techniques,
            "isForSale": post_data.isForSale,
            "price": (post_data.price or 0) if post_data.isForSale else None,
            "likes": 0,
            "likedBy": [],
            "comments": 0,
            "commentsList": [],
            "shares": 0,
            "createdAt": now,
            "updatedAt": now,
        }

        post_id = self.db.new_id(POSTS)
        self.retry.run(lambda: self.db.create_post(post_id, post), f"create post {post_id}")
        logger.info("Post %s published by %s", post_id, session.user_id)
        return {"id": post_id, **post}

    def get_feed(self, limit: int = 20, last_doc_id: Optional[str] = None) -> List[Dict[str, Any]]:
        return self.db.get_posts(limit=min(max(limit, 1), MAX_PAGE_SIZE), last_doc_id=last_doc_id)

    def get_user_posts(self, user_id: str, limit: int = 20,
                       last_doc_id: Optional[str] = None) -> List[Dict[str, Any]]:
        return self.db.get_posts(limit=min(max(limit, 1), MAX_PAGE_SIZE), last_doc_id=last_doc_id,
                                 user_id=user_id)

    def get_post(self, post_id: str) -> Dict[str, Any]:
        post = self.db.get_post(post_id)
        if post is None:
            raise NotFound("Post", post_id)
        return post

    def _owned_post(self, session: Session, post_id: str) -> Dict[str, Any]:
        post = self.get_post(post_id)
        if post.get("userId") != session.user_id:
            raise Unauthorized("Only the author can modify this post")
        return post

    def update_post(self, session: Session, post_id: str, update: PostUpdate) -> Dict[str, Any]:
        """Edit the descriptive fields of a post. Engagement counters are never writable here."""
        post = self._owned_post(session, post_id)

        fields = update.model_dump(exclude_none=True)
        is_for_sale = fields.get("isForSale", post.get("isForSale", False))
        if not is_for_sale:
            fields["price"] = None
        elif "price" not in fields and post.get("price") is None:
            fields["price"] = 0

        fields["updatedAt"] = now_iso()
        self.db.update_post(post_id, fields)
        return {**post, **fields}

    def delete_post(self, session: Session, post_id: str) -> None:
        self._owned_post(session, post_id)
        self.db.delete_post(post_id)
        logger.info("Post %s deleted by %s", post_id, session.user_id)
