import logging
from typing import Any, Dict, List, Optional

from models.user import UserStats
from services.errors import NotFound, Unauthorized, ValidationError
from services.firestore import FirestoreDB
from services.retry import RetryPolicy

logger = logging.getLogger(__name__)


class RelationshipService:
    """
    Follower graph kept as two one-directional membership sets per user:
    FOLLOWING/{A}.following and FOLLOWERS/{B}.followers. Both sides are written
    in the same batch, and set union/removal makes retries converge.
    """

    def __init__(self, db: FirestoreDB, retry: Optional[RetryPolicy] = None):
        self.db = db
        self.retry = retry or RetryPolicy()

    def _check_pair(self, follower_id: str, target_id: str) -> None:
        if not follower_id or not target_id:
            raise ValidationError("Both follower and target user IDs are required")
        if follower_id == target_id:
            raise Unauthorized("Cannot follow yourself")

    def follow(self, follower_id: str, target_id: str) -> None:
        """Make follower_id follow target_id. Following again is a no-op."""
        self._check_pair(follower_id, target_id)
        if self.db.get_user(follower_id) is None:
            raise NotFound("User", follower_id)
        if self.db.get_user(target_id) is None:
            raise NotFound("User", target_id)

        self.retry.run(lambda: self.db.add_follow(follower_id, target_id),
                       f"follow {follower_id}->{target_id}")
        logger.info("%s now follows %s", follower_id, target_id)

    def unfollow(self, follower_id: str, target_id: str) -> None:
        """Remove follower_id -> target_id from both sets. Unfollowing a non-followed user is a no-op."""
        self._check_pair(follower_id, target_id)
        self.retry.run(lambda: self.db.remove_follow(follower_id, target_id),
                       f"unfollow {follower_id}->{target_id}")
        logger.info("%s unfollowed %s", follower_id, target_id)

    def is_following(self, follower_id: str, target_id: str) -> bool:
        return target_id in self.db.get_following(follower_id)

    def get_stats(self, user_id: str) -> UserStats:
        """Recompute post, follower and following counts from the store"""
        return UserStats(
            posts=self.db.count_posts_by_user(user_id),
            followers=len(self.db.get_followers(user_id)),
            following=len(self.db.get_following(user_id)),
        )

    def list_followers(self, user_id: str) -> List[Dict[str, Any]]:
        """Profiles of users who follow user_id"""
        return self._profiles(self.db.get_followers(user_id))

    def list_following(self, user_id: str) -> List[Dict[str, Any]]:
        """Profiles of users user_id follows"""
        return self._profiles(self.db.get_following(user_id))

    def _profiles(self, user_ids: List[str]) -> List[Dict[str, Any]]:
        profiles = []
        for uid in user_ids:
            user = self.db.get_user(uid)
            # Accounts deleted after the follow are skipped
            if user is None:
                continue
            profiles.append({
                "id": uid,
                "UserName": user.get("UserName", "Unknown"),
                "email": user.get("email", ""),
                "profileImage": user.get("profileImage"),
            })
        return profiles
