"""
Video metadata persistence. DB as source of truth.
All operations are sync (used from sync endpoints).
Ownership: mutating callers go through get_owned_video, which checks video.user_id == current user.
"""
from sqlalchemy import desc
from sqlalchemy.orm import Session

from app.errors import Forbidden, NotFound
from app.models.user import User
from app.models.video import Video


def get_video(db: Session, video_id: str) -> Video | None:
    return db.query(Video).filter(Video.id == video_id).first()


def get_owned_video(db: Session, video_id: str, user: User) -> Video:
    """Load a video the user may mutate. NotFound if missing, Forbidden if owned by someone else."""
    video = get_video(db, video_id)
    if video is None:
        raise NotFound(f"video {video_id} not found", detail="Video not found")
    if video.user_id != user.id:
        raise Forbidden(
            f"user {user.id} does not own video {video_id}",
            detail="You do not have permission to modify this video",
        )
    return video


def create_video(db: Session, user_id: str, title: str, description: str = "") -> Video:
    video = Video(user_id=user_id, title=title, description=description)
    db.add(video)
    db.commit()
    db.refresh(video)
    return video


def update_video(db: Session, video: Video) -> Video:
    """Commit pending changes on video. Rolls back and re-raises on failure."""
    try:
        db.add(video)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(video)
    return video


def delete_video(db: Session, video: Video) -> None:
    db.delete(video)
    db.commit()


def list_videos_for_user(db: Session, user_id: str) -> list[Video]:
    """All videos owned by user_id, newest first."""
    return (
        db.query(Video)
        .filter(Video.user_id == user_id)
        .order_by(desc(Video.created_at))
        .all()
    )
