"""
Video upload pipeline:

    stage -> probe (original geometry) -> classify -> remux for fast start
          -> verify moov placement -> upload to "<orientation>/<id>.mp4"

then the owning Video row is pointed at the stored object. The row is only
updated after the upload returned; a failed commit leaves an orphaned object,
never a row pointing at nothing. All scratch files belong to one ScratchSpace
and are removed whichever step fails.
"""
import logging
import secrets
import uuid
from typing import BinaryIO

from fastapi import UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.errors import (
    FastStartCheckFailed,
    InvalidIdentifier,
    MetadataUpdateFailed,
    UnsupportedMediaType,
    UploadFailed,
)
from app.models.user import User
from app.models.video import Video
from app.repositories.video_repository import get_owned_video, update_video
from app.services.ffmpeg_tools import FFmpegToolkit, get_media_toolkit
from app.services.orientation import Orientation, classify
from app.services.references import StoredObject, format_reference
from app.services.staging import ScratchSpace
from app.services.storage import ObjectStore, get_video_store

logger = logging.getLogger(__name__)

VIDEO_CONTENT_TYPES = {"video/mp4"}


def parse_video_id(value: str) -> str:
    """Canonical UUID string, InvalidIdentifier otherwise."""
    try:
        return str(uuid.UUID(value))
    except (ValueError, TypeError, AttributeError) as e:
        raise InvalidIdentifier(f"invalid video id {value!r}", detail="Invalid ID") from e


def media_type_of(content_type: str | None) -> str:
    """Bare media type of a Content-Type header value ("video/mp4; codecs=..." -> "video/mp4")."""
    ct = (content_type or "").split(";")[0].strip().lower()
    if not ct:
        raise UnsupportedMediaType("upload has no Content-Type", detail="Content-Type header is required")
    return ct


def new_object_id() -> str:
    """256 random bits, url-safe base64 without padding (43 chars)."""
    return secrets.token_urlsafe(32)


def video_key(orientation: Orientation) -> str:
    return f"{orientation.value}/{new_object_id()}.mp4"


class VideoIngestPipeline:
    def __init__(
        self,
        toolkit: FFmpegToolkit,
        store: ObjectStore,
        staging_dir: str | None = None,
        max_bytes: int | None = None,
    ):
        self.toolkit = toolkit
        self.store = store
        self.staging_dir = staging_dir or None
        self.max_bytes = max_bytes

    def ingest(self, stream: BinaryIO, content_type: str) -> StoredObject:
        """Run stream through the pipeline and return where the processed file was stored."""
        with ScratchSpace(self.staging_dir) as scratch:
            staged = scratch.stage(stream, max_bytes=self.max_bytes)

            probe = self.toolkit.probe(staged.path)
            orientation = classify(probe.width, probe.height)
            logger.info("Classified %s (%dx%d) as %s", staged.path.name, probe.width, probe.height, orientation.value)

            scratch.track(self.toolkit.output_path(staged.path))
            processed_path = self.toolkit.remux(staged.path)
            if not self.toolkit.verify(processed_path):
                raise FastStartCheckFailed(
                    f"moov atom not found at the start of {processed_path}",
                    detail="Error processing video for fast start",
                )

            key = video_key(orientation)
            try:
                processed = open(processed_path, "rb")
            except OSError as e:
                raise UploadFailed(f"could not open processed video {processed_path}: {e}", detail="Error opening processed video") from e
            with processed:
                processed.seek(0)
                self.store.put(self.store.bucket, key, content_type, processed)

        return StoredObject(bucket=self.store.bucket, key=key)


def get_ingest_pipeline() -> VideoIngestPipeline:
    settings = get_settings()
    return VideoIngestPipeline(
        toolkit=get_media_toolkit(),
        store=get_video_store(),
        staging_dir=settings.staging_dir,
        max_bytes=settings.max_video_upload_bytes,
    )


def upload_video(
    db: Session,
    video_id: str,
    user: User,
    file: UploadFile,
    pipeline: VideoIngestPipeline,
) -> Video:
    """Attach an uploaded mp4 to a video the user owns. Ownership is checked before anything is staged."""
    video_id = parse_video_id(video_id)
    video = get_owned_video(db, video_id, user)

    media_type = media_type_of(file.content_type)
    if media_type not in VIDEO_CONTENT_TYPES:
        raise UnsupportedMediaType(f"video upload with content type {media_type}", detail="Video must be an mp4")

    logger.info("Uploading video for %s by user %s", video_id, user.id)
    stored = pipeline.ingest(file.file, media_type)

    video.video_url = format_reference(stored)
    try:
        update_video(db, video)
    except SQLAlchemyError as e:
        logger.warning("Metadata update failed for video %s; object %s/%s left orphaned", video_id, stored.bucket, stored.key)
        raise MetadataUpdateFailed(f"updating video {video_id} failed: {e}", detail="Error updating video metadata") from e
    return video
