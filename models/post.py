from typing import List, Optional

from pydantic import BaseModel, Field


class Comment(BaseModel):
    id: str
    userId: str
    userName: str
    text: str
    createdAt: str


class Post(BaseModel):
    id: Optional[str] = None
    userId: str
    userName: str = ""
    userEmail: str = ""
    username: str = ""
    profileImage: str = ""
    imageUrl: str = ""
    title: str = ""
    description: str = ""
    story: str = ""
    materials: str = ""
    techniques: str = ""
    isForSale: bool = False
    price: Optional[float] = None
    likes: int = 0
    likedBy: List[str] = []
    comments: int = 0
    commentsList: List[Comment] = []
    shares: int = 0
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None


class PostCreate(BaseModel):
    userName: str = ""
    userEmail: str = ""
    profileImage: str = ""
    imageUrl: str
    title: str = ""
    description: str = ""
    story: str = ""
    materials: str = ""
    techniques: str = ""
    isForSale: bool = False
    price: Optional[float] = Field(default=None, ge=0)


class PostUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    story: Optional[str] = None
    materials: Optional[str] = None
    techniques: Optional[str] = None
    imageUrl: Optional[str] = None
    isForSale: Optional[bool] = None
    price: Optional[float] = Field(default=None, ge=0)


class CommentRequest(BaseModel):
    userName: str
    text: str


class LikeResult(BaseModel):
    post_id: str
    liked: bool
    likes: int
