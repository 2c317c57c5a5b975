"""Read access to locally stored videos (video_storage=local) via signed, short-lived tokens."""
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import FileResponse
from app.services.storage import LocalObjectStore, get_local_video_store

router = APIRouter(prefix="/api/assets", tags=["assets"])


@router.get("/{key:path}")
def get_signed_asset(
    key: str,
    token: str,
    store: LocalObjectStore = Depends(get_local_video_store),
):
    if not store.verify_token(key, token):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired link")
    path = store.path_for(key)
    if path is None or not path.is_file():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    return FileResponse(path, media_type="video/mp4", headers={"Content-Disposition": "inline"})
