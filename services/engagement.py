import logging
import uuid
from typing import Any, Dict, Optional

import bleach

from models.post import Comment, LikeResult
from services.errors import NotFound, TransientIOError, ValidationError
from services.firestore import FirestoreDB, POSTS, PreconditionFailed
from services.retry import RetryPolicy
from utils.timestamps import now_iso, time_based_id

logger = logging.getLogger(__name__)


class EngagementService:
    """
    Likes, comments and shares on posts.

    Each counter is denormalized next to the collection it counts (likes/likedBy,
    comments/commentsList), so every mutation writes both in a single update.
    """

    def __init__(self, db: FirestoreDB, retry: Optional[RetryPolicy] = None, cas_max_rounds: int = 5):
        self.db = db
        self.retry = retry or RetryPolicy()
        self.cas_max_rounds = cas_max_rounds

    def toggle_like(self, post_id: str, user_id: str) -> LikeResult:
        """
        Like the post if the user has not liked it yet, otherwise remove the like.

        The direction is decided once from the first read. Every attempt after
        that only moves the post toward it, so an attempt whose write landed but
        whose acknowledgement was lost is not undone by the retry. Writes carry
        a precondition on the snapshot they were decided on, so two toggles
        racing on the same post re-read rather than lose one another's update.
        """
        if not user_id:
            raise ValidationError("userId is required")
        post = self.retry.run(lambda: self._read_post(post_id), f"read post {post_id}")
        like = user_id not in post.get("likedBy", [])
        return self.retry.run(lambda: self._set_like_once(post_id, user_id, like),
                              f"{'like' if like else 'unlike'} {post_id}")

    def _read_post(self, post_id: str) -> Dict[str, Any]:
        post = self.db.get_post(post_id)
        if post is None:
            raise NotFound("Post", post_id)
        return post

    def _snapshot(self, post_id: str):
        snapshot = self.db.snapshot(POSTS, post_id)
        if snapshot is None:
            raise NotFound("Post", post_id)
        return snapshot

    def _set_like_once(self, post_id: str, user_id: str, like: bool) -> LikeResult:
        for _ in range(self.cas_max_rounds):
            snapshot = self._snapshot(post_id)
            post = snapshot.to_dict()
            likes = post.get("likes", 0)

            if (user_id in post.get("likedBy", [])) == like:
                return LikeResult(post_id=post_id, liked=like, likes=likes)

            try:
                if like:
                    self.db.like_post(post_id, user_id, snapshot)
                    return LikeResult(post_id=post_id, liked=True, likes=likes + 1)

                self.db.unlike_post(post_id, user_id, snapshot, decrement=likes > 0)
                return LikeResult(post_id=post_id, liked=False, likes=max(likes - 1, 0))
            except PreconditionFailed:
                logger.warning("Post %s changed during like toggle, retrying", post_id)

        raise TransientIOError(f"Post {post_id} kept changing while toggling like")

    def add_comment(self, post_id: str, user_id: str, user_name: str, text: str) -> Comment:
        """
        Append a comment to the post and bump its comment count.

        The comment and its ID are built once; an attempt that finds the ID
        already in commentsList returns without writing it again.
        """
        if not user_id:
            raise ValidationError("userId is required")
        sanitized_text = bleach.clean(text or "", tags=[], strip=True).strip()
        if not sanitized_text:
            raise ValidationError("Comment text cannot be empty")

        comment = Comment(
            id=time_based_id(),
            userId=user_id,
            userName=user_name or "",
            text=sanitized_text,
            createdAt=now_iso(),
        )
        payload: Dict[str, Any] = comment.model_dump()
        self.retry.run(lambda: self._append_comment_once(post_id, payload), f"comment on {post_id}")
        return comment

    def _append_comment_once(self, post_id: str, payload: Dict[str, Any]) -> None:
        for _ in range(self.cas_max_rounds):
            snapshot = self._snapshot(post_id)
            existing_ids = [c.get("id") for c in snapshot.to_dict().get("commentsList", [])]
            if payload["id"] in existing_ids:
                return

            try:
                self.db.append_comment(post_id, payload, snapshot)
                return
            except PreconditionFailed:
                logger.warning("Post %s changed while commenting, retrying", post_id)

        raise TransientIOError(f"Post {post_id} kept changing while adding a comment")

    def increment_share(self, post_id: str) -> int:
        """
        Count one share. Not deduplicated across calls: call once per completed
        external share. Within a call the share carries an ID, so a repeated
        attempt after a lost acknowledgement does not count it twice.

        Returns:
            The post's share count after the increment
        """
        share_id = uuid.uuid4().hex
        return self.retry.run(lambda: self._share_once(post_id, share_id), f"share {post_id}")

    def _share_once(self, post_id: str, share_id: str) -> int:
        for _ in range(self.cas_max_rounds):
            snapshot = self._snapshot(post_id)
            post = snapshot.to_dict()
            shares = post.get("shares", 0)
            if share_id in post.get("recentShareIds", []):
                return shares

            try:
                self.db.record_share(post_id, share_id, snapshot)
                return shares + 1
            except PreconditionFailed:
                logger.warning("Post %s changed while sharing, retrying", post_id)

        raise TransientIOError(f"Post {post_id} kept changing while counting a share")
