from typing import Any, Dict

from fastapi import APIRouter, HTTPException

from dependencies import CurrentUser, Social
from models.social import SinglePlatformRequest, SocialPublishRequest

router = APIRouter()


@router.post("/publish")
async def publish(request: SocialPublishRequest, social: Social, current_user: CurrentUser) -> Dict[str, Any]:
    """Cross-post to several platforms at once (all three by default)"""
    if request.postData is None:
        raise HTTPException(status_code=400, detail="Post data is required")
    results = await social.publish(request.postData, request.platforms)
    return {"success": True, "data": results}


@router.post("/instagram")
async def publish_instagram(request: SinglePlatformRequest, social: Social,
                            current_user: CurrentUser) -> Dict[str, Any]:
    return {"success": True, "data": await social.publish(request.postData, ["instagram"])}


@router.post("/twitter")
async def publish_twitter(request: SinglePlatformRequest, social: Social,
                          current_user: CurrentUser) -> Dict[str, Any]:
    return {"success": True, "data": await social.publish(request.postData, ["twitter"])}


@router.post("/facebook")
async def publish_facebook(request: SinglePlatformRequest, social: Social,
                           current_user: CurrentUser) -> Dict[str, Any]:
    return {"success": True, "data": await social.publish(request.postData, ["facebook"])}
