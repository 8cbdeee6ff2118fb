from typing import Any, Dict, Optional

from fastapi import APIRouter, Query

from dependencies import CurrentUser, Posts, Relationships, Users
from models.user import UserUpdate

router = APIRouter()


@router.get("/search/{search_term}")
def search_users(
        search_term: str,
        users: Users,
        current_user: CurrentUser,
        limit: int = Query(20, gt=0, le=50),
) -> Dict[str, Any]:
    """Prefix search on user names"""
    return {"success": True, "data": users.search_users(search_term, limit)}


@router.get("/{user_id}")
def get_user(user_id: str, users: Users, current_user: CurrentUser) -> Dict[str, Any]:
    return {"success": True, "data": users.get_user(user_id)}


@router.put("/{user_id}")
def update_user(user_id: str, update: UserUpdate, users: Users, current_user: CurrentUser) -> Dict[str, Any]:
    return {"success": True, "data": users.update_user(current_user, user_id, update)}


@router.get("/{user_id}/stats")
def get_user_stats(user_id: str, relationships: Relationships, current_user: CurrentUser) -> Dict[str, Any]:
    """Post, follower and following counts"""
    return {"success": True, "data": relationships.get_stats(user_id).model_dump()}


@router.get("/{user_id}/posts")
def get_user_posts(
        user_id: str,
        posts: Posts,
        current_user: CurrentUser,
        limit: int = Query(20, gt=0, le=100),
        last_doc_id: Optional[str] = Query(None, alias="lastDocId"),
) -> Dict[str, Any]:
    return {"success": True, "data": posts.get_user_posts(user_id, limit, last_doc_id)}


@router.post("/{user_id}/follow")
def follow_user(user_id: str, relationships: Relationships, current_user: CurrentUser) -> Dict[str, Any]:
    """The signed-in user follows user_id"""
    relationships.follow(current_user.user_id, user_id)
    return {"success": True, "message": f"{current_user.user_id} now follows {user_id}"}


@router.post("/{user_id}/unfollow")
def unfollow_user(user_id: str, relationships: Relationships, current_user: CurrentUser) -> Dict[str, Any]:
    """The signed-in user stops following user_id"""
    relationships.unfollow(current_user.user_id, user_id)
    return {"success": True, "message": f"{current_user.user_id} unfollowed {user_id}"}


@router.get("/{user_id}/is-following")
def is_following(user_id: str, relationships: Relationships, current_user: CurrentUser) -> Dict[str, Any]:
    """Whether the signed-in user follows user_id"""
    return {"success": True, "data": {"following": relationships.is_following(current_user.user_id, user_id)}}


@router.get("/{user_id}/followers")
def list_followers(user_id: str, relationships: Relationships, current_user: CurrentUser) -> Dict[str, Any]:
    """Users who follow user_id"""
    return {"success": True, "data": {"followers": relationships.list_followers(user_id)}}


@router.get("/{user_id}/following")
def list_following(user_id: str, relationships: Relationships, current_user: CurrentUser) -> Dict[str, Any]:
    """Users that user_id follows"""
    return {"success": True, "data": {"following": relationships.list_following(user_id)}}
