from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite:///./tubely.db"

    # JWT
    secret_key: str = "your-secret-key-change-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7  # 7 days

    # Frontend URL for CORS
    frontend_url: str = "http://localhost:3000"

    # Base URL this API is reachable at; thumbnail and local video URLs are built from it
    public_base_url: str = "http://localhost:8091"

    # Public thumbnail folder, served at /assets (empty = backend/assets)
    assets_root: str = ""

    # Video storage backend: "s3" or "local"
    video_storage: str = "s3"

    # Local video storage (video_storage=local): private folder, served only with signed tokens
    local_video_root: str = ""
    local_video_bucket: str = "local"

    # S3
    s3_bucket: str = "tubely-videos"
    s3_region: str = "us-east-1"
    s3_endpoint_url: str = ""  # e.g. http://localhost:9000 for MinIO; empty = AWS

    # Signed playback URL expiry (minutes)
    video_url_expire_minutes: int = 15

    # Scratch folder for uploads being processed (empty = system temp dir)
    staging_dir: str = ""

    # FFmpeg
    ffprobe_path: str = "ffprobe"
    ffmpeg_path: str = "ffmpeg"
    media_tool_timeout_seconds: float = 600.0

    # Upload limits
    max_video_upload_bytes: int = 1 << 30  # 1 GB
    max_thumbnail_upload_bytes: int = 10 << 20  # 10 MB

    log_level: str = "INFO"

    class Config:
        env_file = ".env"


@lru_cache
def get_settings() -> Settings:
    return Settings()
