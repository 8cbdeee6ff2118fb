from typing import List, Optional

from pydantic import BaseModel


class SocialPostData(BaseModel):
    imageUrl: Optional[str] = None
    caption: str = ""


class SocialPublishRequest(BaseModel):
    postData: Optional[SocialPostData] = None
    platforms: Optional[List[str]] = None


class SinglePlatformRequest(BaseModel):
    postData: SocialPostData
