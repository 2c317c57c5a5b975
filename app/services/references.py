"""
Stored video references.

The videos.video_url column never holds a signed URL. It holds either
- "<bucket>,<key>" for an object we uploaded (StoredObject), or
- a plain playback URL set outside the upload pipeline (DirectURL).
Signed playback URLs are minted on read and never written back.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable, Union

from app.config import get_settings
from app.errors import MalformedReference, MissingReference, SigningFailed, VideoReferenceError
from app.models.video import Video
from app.schemas.video import VideoResponse
from app.services.storage import ObjectStore, get_video_store

logger = logging.getLogger(__name__)

REFERENCE_DELIMITER = ","


@dataclass(frozen=True)
class DirectURL:
    url: str


@dataclass(frozen=True)
class StoredObject:
    bucket: str
    key: str


StoredReference = Union[DirectURL, StoredObject]


def format_reference(ref: StoredReference) -> str:
    if isinstance(ref, StoredObject):
        return f"{ref.bucket}{REFERENCE_DELIMITER}{ref.key}"
    return ref.url


def parse_reference(value: str | None) -> StoredReference:
    if not value:
        raise MissingReference("video has no stored reference", detail="Video has no uploaded file")
    if REFERENCE_DELIMITER not in value:
        return DirectURL(value)
    parts = value.split(REFERENCE_DELIMITER)
    if len(parts) != 2 or not all(parts):
        raise MalformedReference(f"invalid video reference {value!r}", detail="Invalid video URL format")
    return StoredObject(bucket=parts[0], key=parts[1])


class VideoUrlResolver:
    def __init__(self, store: ObjectStore, ttl: timedelta = timedelta(minutes=15)):
        self.store = store
        self.ttl = ttl

    def resolve(self, value: str | None) -> str:
        """Playback URL for a stored reference."""
        ref = parse_reference(value)
        if isinstance(ref, DirectURL):
            return ref.url
        return self.store.presign_get(ref.bucket, ref.key, self.ttl)

    def sign_video(self, video: Video) -> VideoResponse:
        """Response for video with video_url resolved. A record without a video is returned as is."""
        response = VideoResponse.model_validate(video)
        if not video.video_url:
            return response
        return response.model_copy(update={"video_url": self.resolve(video.video_url)})

    def sign_videos(self, videos: Iterable[Video]) -> list[VideoResponse]:
        """Like sign_video for each entry; an entry that can't be signed falls back to its raw record."""
        signed = []
        for video in videos:
            try:
                signed.append(self.sign_video(video))
            except (VideoReferenceError, SigningFailed) as e:
                logger.warning("Couldn't sign video %s, returning raw record: %s", video.id, e)
                signed.append(VideoResponse.model_validate(video))
        return signed


def get_url_resolver() -> VideoUrlResolver:
    settings = get_settings()
    return VideoUrlResolver(get_video_store(), timedelta(minutes=settings.video_url_expire_minutes))
