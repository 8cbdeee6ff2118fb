from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "ArtConnect"
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:8081", "http://localhost:19006"]

    # Firebase
    firebase_credentials_path: str = "./firebase.json"

    # S3 media store
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_region: str = "us-east-2"
    s3_bucket_name: Optional[str] = None
    media_public_base_url: Optional[str] = None  # e.g. a CloudFront domain; defaults to the bucket URL
    max_upload_size_mb: int = 25

    # SMTP email
    email_host: Optional[str] = None
    email_port: int = 587
    email_user: Optional[str] = None
    email_pass: Optional[str] = None
    email_sender_name: str = "ArtConnect"

    # Social platforms
    instagram_access_token: Optional[str] = None
    instagram_account_id: Optional[str] = None
    twitter_bearer_token: Optional[str] = None
    facebook_access_token: Optional[str] = None
    facebook_page_id: Optional[str] = None
    graph_api_version: str = "v18.0"

    # Retry policy for core mutations
    retry_attempts: int = 3
    retry_backoff_seconds: float = 1.0
    cas_max_rounds: int = 5
    # Deadline for each Firestore request; a hung call fails into the retry policy
    store_timeout_seconds: float = 30.0

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    return Settings()
