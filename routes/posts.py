from typing import Any, Dict, Optional

from fastapi import APIRouter, Query

from dependencies import CurrentUser, Engagement, Posts
from models.post import CommentRequest, PostCreate, PostUpdate

router = APIRouter()


@router.post("/create")
def create_post(post_data: PostCreate, posts: Posts, current_user: CurrentUser) -> Dict[str, Any]:
    """Publish a new post for the signed-in user"""
    return {"success": True, "data": posts.create_post(current_user, post_data)}


@router.get("/feed")
def get_feed(
        posts: Posts,
        current_user: CurrentUser,
        limit: int = Query(20, gt=0, le=100),
        last_doc_id: Optional[str] = Query(None, alias="lastDocId"),
) -> Dict[str, Any]:
    """Newest posts first; pass the last post's ID as lastDocId for the next page"""
    return {"success": True, "data": posts.get_feed(limit, last_doc_id)}


@router.get("/{post_id}")
def get_post(post_id: str, posts: Posts, current_user: CurrentUser) -> Dict[str, Any]:
    return {"success": True, "data": posts.get_post(post_id)}


@router.put("/{post_id}")
def update_post(post_id: str, update: PostUpdate, posts: Posts, current_user: CurrentUser) -> Dict[str, Any]:
    return {"success": True, "data": posts.update_post(current_user, post_id, update)}


@router.delete("/{post_id}")
def delete_post(post_id: str, posts: Posts, current_user: CurrentUser) -> Dict[str, Any]:
    posts.delete_post(current_user, post_id)
    return {"success": True, "message": "Post deleted successfully"}


@router.post("/{post_id}/like")
def toggle_like(post_id: str, engagement: Engagement, current_user: CurrentUser) -> Dict[str, Any]:
    """Toggle like status for a post"""
    result = engagement.toggle_like(post_id, current_user.user_id)
    return {"success": True, "data": result.model_dump()}


@router.post("/{post_id}/comments")
def add_comment(
        post_id: str,
        comment: CommentRequest,
        engagement: Engagement,
        current_user: CurrentUser,
) -> Dict[str, Any]:
    """Add a comment to a post"""
    created = engagement.add_comment(post_id, current_user.user_id, comment.userName, comment.text)
    return {"success": True, "data": created.model_dump()}


@router.post("/{post_id}/share")
def share_post(post_id: str, engagement: Engagement, current_user: CurrentUser) -> Dict[str, Any]:
    """Record a completed external share"""
    shares = engagement.increment_share(post_id)
    return {"success": True, "data": {"post_id": post_id, "shares": shares}}
