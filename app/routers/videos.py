"""
Video metadata, thumbnail and video upload.
Upload endpoints are plain `def`: FastAPI runs them in its threadpool, so a slow
ffmpeg/S3 call only blocks its own request.
"""
from fastapi import APIRouter, Depends, File, Response, UploadFile, status
from sqlalchemy.orm import Session
from app.auth import get_current_user
from app.config import get_settings
from app.database import get_db
from app.errors import NotFound
from app.models.user import User
from app.repositories.video_repository import (
    create_video,
    delete_video,
    get_owned_video,
    get_video,
    list_videos_for_user,
)
from app.schemas.video import VideoCreate, VideoResponse
from app.services.references import VideoUrlResolver, get_url_resolver
from app.services.storage import LocalObjectStore, get_thumbnail_store
from app.services.thumbnail_upload import upload_thumbnail
from app.services.video_upload import VideoIngestPipeline, get_ingest_pipeline, parse_video_id, upload_video

router = APIRouter(prefix="/api", tags=["videos"])


@router.post("/videos", response_model=VideoResponse, status_code=status.HTTP_201_CREATED)
def create_video_meta(
    body: VideoCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return create_video(db, user.id, body.title, body.description)


@router.get("/videos", response_model=list[VideoResponse])
def list_videos(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    resolver: VideoUrlResolver = Depends(get_url_resolver),
):
    """Own videos, video_url signed where possible."""
    return resolver.sign_videos(list_videos_for_user(db, user.id))


@router.get("/videos/{video_id}", response_model=VideoResponse)
def get_video_meta(
    video_id: str,
    db: Session = Depends(get_db),
    resolver: VideoUrlResolver = Depends(get_url_resolver),
):
    video = get_video(db, parse_video_id(video_id))
    if not video:
        raise NotFound(f"video {video_id} not found", detail="Couldn't get video")
    return resolver.sign_video(video)


@router.delete("/videos/{video_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_video_meta(
    video_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    video = get_owned_video(db, parse_video_id(video_id), user)
    delete_video(db, video)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/thumbnail_upload/{video_id}", response_model=VideoResponse)
def upload_thumbnail_for_video(
    video_id: str,
    thumbnail: UploadFile = File(...),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: LocalObjectStore = Depends(get_thumbnail_store),
):
    video = upload_thumbnail(db, video_id, user, thumbnail, store, get_settings().max_thumbnail_upload_bytes)
    return VideoResponse.model_validate(video)


@router.post("/video_upload/{video_id}", response_model=VideoResponse)
def upload_video_file(
    video_id: str,
    video: UploadFile = File(...),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    pipeline: VideoIngestPipeline = Depends(get_ingest_pipeline),
    resolver: VideoUrlResolver = Depends(get_url_resolver),
):
    """Process and store the mp4. The upload already succeeded, so a signing failure falls back to the raw record."""
    record = upload_video(db, video_id, user, video, pipeline)
    return resolver.sign_videos([record])[0]
