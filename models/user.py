from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, ConfigDict


@dataclass(frozen=True)
class Session:
    """The signed-in caller. Built per request from a verified Firebase token."""
    user_id: str
    email: Optional[str] = None


class UserUpdate(BaseModel):
    model_config = ConfigDict(extra="allow")

    UserName: Optional[str] = None
    bio: Optional[str] = None
    profileImage: Optional[str] = None
    role: Optional[str] = None


class UserStats(BaseModel):
    posts: int
    followers: int
    following: int
