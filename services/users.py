from typing import Any, Dict, List, Optional

from models.user import Session, UserUpdate
from services.errors import NotFound, Unauthorized, ValidationError
from services.firestore import FirestoreDB
from utils.timestamps import now_iso

# Never writable through the API
PROTECTED_FIELDS = {"id", "UUID", "createdAt"}


class UserService:
    def __init__(self, db: FirestoreDB):
        self.db = db

    def find_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self.db.get_user(user_id)

    def get_user(self, user_id: str) -> Dict[str, Any]:
        user = self.find_user(user_id)
        if user is None:
            raise NotFound("User", user_id)
        return user

    def update_user(self, session: Session, user_id: str, update: UserUpdate) -> Dict[str, Any]:
        if session.user_id != user_id:
            raise Unauthorized("You can only update your own profile")
        self.get_user(user_id)

        fields = {k: v for k, v in update.model_dump(exclude_none=True).items() if k not in PROTECTED_FIELDS}
        if not fields:
            raise ValidationError("No updatable fields provided")
        fields["updatedAt"] = now_iso()
        self.db.update_user(user_id, fields)
        return self.get_user(user_id)

    def search_users(self, term: str, limit: int = 20) -> List[Dict[str, Any]]:
        term = term.strip()
        if not term:
            return []
        return self.db.search_users(term, limit=min(max(limit, 1), 50))
