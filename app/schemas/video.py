from datetime import datetime
from pydantic import BaseModel


class VideoCreate(BaseModel):
    title: str
    description: str = ""


class VideoResponse(BaseModel):
    """Video metadata as returned to clients. video_url is the playback URL (signed when stored privately)."""
    id: str
    user_id: str
    title: str
    description: str
    thumbnail_url: str | None = None
    video_url: str | None = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
