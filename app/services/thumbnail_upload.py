"""Thumbnail upload: stored as-is (no image processing) under thumbnails/<sha256>.<ext> in the public assets store."""
import hashlib
import io
import logging

from fastapi import UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import MetadataUpdateFailed, PayloadTooLarge, UnsupportedMediaType
from app.models.user import User
from app.models.video import Video
from app.repositories.video_repository import get_owned_video, update_video
from app.services.storage import LocalObjectStore
from app.services.video_upload import media_type_of, parse_video_id

logger = logging.getLogger(__name__)

THUMBNAIL_EXTENSIONS = {"image/jpeg": "jpeg", "image/png": "png"}
CHUNK_SIZE = 1024 * 1024  # 1 MB


def thumbnail_key(data: bytes, media_type: str) -> str:
    return f"thumbnails/{hashlib.sha256(data).hexdigest()}.{THUMBNAIL_EXTENSIONS[media_type]}"


def _read_capped(file: UploadFile, max_bytes: int) -> bytes:
    buf = bytearray()
    while chunk := file.file.read(CHUNK_SIZE):
        buf.extend(chunk)
        if len(buf) > max_bytes:
            raise PayloadTooLarge(
                f"thumbnail exceeds {max_bytes} bytes",
                detail=f"Thumbnail exceeds maximum size of {max_bytes // (1024 * 1024)} MB.",
            )
    return bytes(buf)


def upload_thumbnail(
    db: Session,
    video_id: str,
    user: User,
    file: UploadFile,
    store: LocalObjectStore,
    max_bytes: int,
) -> Video:
    video_id = parse_video_id(video_id)
    video = get_owned_video(db, video_id, user)

    media_type = media_type_of(file.content_type)
    if media_type not in THUMBNAIL_EXTENSIONS:
        raise UnsupportedMediaType(f"thumbnail upload with content type {media_type}", detail="Thumbnail must be a jpeg or png")

    data = _read_capped(file, max_bytes)
    key = thumbnail_key(data, media_type)
    store.put(store.bucket, key, media_type, io.BytesIO(data))

    video.thumbnail_url = store.public_url(key)
    try:
        update_video(db, video)
    except SQLAlchemyError as e:
        logger.warning("Metadata update failed for video %s; thumbnail %s left orphaned", video_id, key)
        raise MetadataUpdateFailed(f"updating video {video_id} failed: {e}", detail="Error updating video metadata") from e
    return video
