import logging
from typing import Any, Dict, Iterable, Optional

import aiohttp

from models.social import SocialPostData
from utils.timestamps import epoch_millis

logger = logging.getLogger(__name__)

DEFAULT_PLATFORMS = ("instagram", "twitter", "facebook")


class SocialPublishError(Exception):
    pass


class SocialPublisher:
    """
    Cross-posts artwork to Instagram, Twitter and Facebook.

    A platform without credentials answers with a mock success flagged as such,
    so the app flow can be exercised before accounts are connected.
    """

    def __init__(
            self,
            session: aiohttp.ClientSession,
            instagram_access_token: Optional[str] = None,
            instagram_account_id: Optional[str] = None,
            twitter_bearer_token: Optional[str] = None,
            facebook_access_token: Optional[str] = None,
            facebook_page_id: Optional[str] = None,
            graph_api_version: str = "v18.0",
    ):
        self.session = session
        self.instagram_access_token = instagram_access_token
        self.instagram_account_id = instagram_account_id
        self.twitter_bearer_token = twitter_bearer_token
        self.facebook_access_token = facebook_access_token
        self.facebook_page_id = facebook_page_id
        self.graph_url = f"https://graph.facebook.com/{graph_api_version}"

    async def publish(self, post: SocialPostData, platforms: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        """
        Post to each platform independently; one failure does not stop the others.

        Returns:
            A result dict per platform name
        """
        handlers = {
            "instagram": self.post_to_instagram,
            "twitter": self.post_to_twitter,
            "facebook": self.post_to_facebook,
        }
        results = {}
        for platform in platforms or DEFAULT_PLATFORMS:
            handler = handlers.get(platform.lower())
            if handler is None:
                results[platform] = {"success": False, "message": "Platform not supported"}
                continue
            try:
                results[platform.lower()] = await handler(post)
            except (SocialPublishError, aiohttp.ClientError) as e:
                logger.warning("%s posting failed: %s", platform, e)
                results[platform.lower()] = {"success": False, "message": str(e)}
        return results

    async def _post_json(self, url: str, payload: Dict[str, Any], headers: Optional[Dict[str, str]] = None,
                         platform: str = "") -> Dict[str, Any]:
        async with self.session.post(url, json=payload, headers=headers) as response:
            body = await response.json(content_type=None)
            if response.status >= 400:
                raise SocialPublishError(f"{platform} posting failed ({response.status}): {body}")
            return body or {}

    async def post_to_instagram(self, post: SocialPostData) -> Dict[str, Any]:
        if not self.instagram_access_token or not self.instagram_account_id:
            return {
                "success": True,
                "platform": "instagram",
                "postId": f"ig_{epoch_millis()}",
                "message": "Instagram post created successfully (mock)",
                "note": "Configure INSTAGRAM_ACCESS_TOKEN and INSTAGRAM_ACCOUNT_ID for real posting",
            }
        if not post.imageUrl:
            raise SocialPublishError("Instagram posting requires an image URL")

        # Instagram publishes in two steps: create a media container, then publish it
        container = await self._post_json(
            f"{self.graph_url}/{self.instagram_account_id}/media",
            {"image_url": post.imageUrl, "caption": post.caption, "access_token": self.instagram_access_token},
            platform="Instagram",
        )
        published = await self._post_json(
            f"{self.graph_url}/{self.instagram_account_id}/media_publish",
            {"creation_id": container.get("id"), "access_token": self.instagram_access_token},
            platform="Instagram",
        )
        return {
            "success": True,
            "platform": "instagram",
            "postId": published.get("id"),
            "message": "Instagram post created successfully",
        }

    async def post_to_twitter(self, post: SocialPostData) -> Dict[str, Any]:
        if not self.twitter_bearer_token:
            return {
                "success": True,
                "platform": "twitter",
                "tweetId": f"tw_{epoch_millis()}",
                "message": "Twitter post created successfully (mock)",
                "note": "Configure TWITTER_BEARER_TOKEN for real posting",
            }

        body = await self._post_json(
            "https://api.twitter.com/2/tweets",
            {"text": post.caption},
            headers={"Authorization": f"Bearer {self.twitter_bearer_token}"},
            platform="Twitter",
        )
        return {
            "success": True,
            "platform": "twitter",
            "tweetId": body.get("data", {}).get("id"),
            "message": "Twitter post created successfully",
        }

    async def post_to_facebook(self, post: SocialPostData) -> Dict[str, Any]:
        if not self.facebook_access_token or not self.facebook_page_id:
            return {
                "success": True,
                "platform": "facebook",
                "postId": f"fb_{epoch_millis()}",
                "message": "Facebook post created successfully (mock)",
                "note": "Configure FACEBOOK_ACCESS_TOKEN and FACEBOOK_PAGE_ID for real posting",
            }

        body = await self._post_json(
            f"{self.graph_url}/{self.facebook_page_id}/photos",
            {"url": post.imageUrl, "message": post.caption, "access_token": self.facebook_access_token},
            platform="Facebook",
        )
        return {
            "success": True,
            "platform": "facebook",
            "postId": body.get("post_id") or body.get("id"),
            "message": "Facebook post created successfully",
        }
