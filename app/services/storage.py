"""
Object storage for uploaded assets.

S3ObjectStore keeps videos in a private bucket and hands out presigned GET URLs.
LocalObjectStore writes under a directory; it serves two roles:
- public thumbnails under settings.assets_root (mounted at /assets)
- private videos when video_storage=local, read back through /api/assets/{key}?token=...
  where token is a short-lived JWT for that exact key.
"""
import logging
import secrets
import shutil
from datetime import datetime, timedelta
from functools import lru_cache
from pathlib import Path
from typing import BinaryIO

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from jose import JWTError, jwt

from app.config import get_settings
from app.errors import SigningFailed, UploadFailed

logger = logging.getLogger(__name__)

ASSET_TOKEN_TYPE = "asset_read"


def backend_dir() -> Path:
    return Path(__file__).resolve().parent.parent.parent


class ObjectStore:
    """put / presign_get over (bucket, key). bucket is the store's default bucket."""

    bucket: str

    def put(self, bucket: str, key: str, content_type: str, body: BinaryIO) -> None:
        raise NotImplementedError

    def presign_get(self, bucket: str, key: str, ttl: timedelta) -> str:
        raise NotImplementedError


class S3ObjectStore(ObjectStore):
    def __init__(self, bucket: str, client=None, region: str | None = None, endpoint_url: str | None = None):
        self.bucket = bucket
        self.client = client or boto3.client(
            "s3",
            region_name=region or None,
            endpoint_url=endpoint_url or None,
            config=Config(signature_version="s3v4"),
        )

    def put(self, bucket: str, key: str, content_type: str, body: BinaryIO) -> None:
        try:
            self.client.put_object(Bucket=bucket, Key=key, Body=body, ContentType=content_type)
        except (BotoCoreError, ClientError) as e:
            raise UploadFailed(f"S3 upload of s3://{bucket}/{key} failed: {e}", detail="Error uploading video to S3") from e
        logger.info("Uploaded s3://%s/%s (%s)", bucket, key, content_type)

    def presign_get(self, bucket: str, key: str, ttl: timedelta) -> str:
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": bucket, "Key": key},
                ExpiresIn=int(ttl.total_seconds()),
            )
        except (BotoCoreError, ClientError) as e:
            raise SigningFailed(f"failed to presign s3://{bucket}/{key}: {e}", detail="Couldn't sign video URL") from e


class LocalObjectStore(ObjectStore):
    def __init__(
        self,
        root: str | Path,
        bucket: str = "local",
        base_url: str = "",
        secret_key: str = "",
        algorithm: str = "HS256",
    ):
        self.root = Path(root)
        self.bucket = bucket
        self.base_url = base_url.rstrip("/")
        self._secret_key = secret_key
        self._algorithm = algorithm

    def path_for(self, key: str) -> Path | None:
        """Resolve key under root. None if it would escape root (path traversal)."""
        base = self.root.resolve()
        try:
            full = (base / key).resolve()
            full.relative_to(base)
        except (ValueError, OSError):
            return None
        if full == base:
            return None
        return full

    def _owns(self, bucket: str) -> bool:
        return bucket == self.bucket

    def put(self, bucket: str, key: str, content_type: str, body: BinaryIO) -> None:
        dest = self.path_for(key)
        if not self._owns(bucket) or dest is None:
            raise UploadFailed(f"invalid object location {bucket!r}, {key!r}", detail="Error storing file")
        tmp = dest.with_name(f".{dest.name}.{secrets.token_hex(8)}.part")
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "wb") as f:
                shutil.copyfileobj(body, f)
            tmp.replace(dest)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise UploadFailed(f"writing {dest} failed: {e}", detail="Error storing file") from e
        logger.info("Stored %s/%s (%s)", self.bucket, key, content_type)

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/assets/{key}"

    def presign_get(self, bucket: str, key: str, ttl: timedelta) -> str:
        if not self._owns(bucket):
            raise SigningFailed(f"unknown bucket {bucket!r} for local store {self.bucket!r}", detail="Couldn't sign video URL")
        try:
            payload = {
                "bucket": bucket,
                "key": key,
                "nonce": secrets.token_urlsafe(8),
                "exp": datetime.utcnow() + ttl,
                "type": ASSET_TOKEN_TYPE,
            }
            token = jwt.encode(payload, self._secret_key, algorithm=self._algorithm)
        except JWTError as e:
            raise SigningFailed(f"failed to sign {bucket}/{key}: {e}", detail="Couldn't sign video URL") from e
        return f"{self.base_url}/api/assets/{key}?token={token}"

    def verify_token(self, key: str, token: str) -> bool:
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except JWTError:
            return False
        return (
            payload.get("type") == ASSET_TOKEN_TYPE
            and payload.get("bucket") == self.bucket
            and payload.get("key") == key
        )


def assets_root() -> Path:
    settings = get_settings()
    if settings.assets_root:
        return Path(settings.assets_root)
    return backend_dir() / "assets"


def local_video_root() -> Path:
    settings = get_settings()
    if settings.local_video_root:
        return Path(settings.local_video_root)
    return backend_dir() / "uploads" / "videos"


@lru_cache
def get_thumbnail_store() -> LocalObjectStore:
    settings = get_settings()
    return LocalObjectStore(assets_root(), bucket="assets", base_url=settings.public_base_url)


@lru_cache
def get_local_video_store() -> LocalObjectStore:
    settings = get_settings()
    return LocalObjectStore(
        local_video_root(),
        bucket=settings.local_video_bucket,
        base_url=settings.public_base_url,
        secret_key=settings.secret_key,
        algorithm=settings.algorithm,
    )


@lru_cache
def get_video_store() -> ObjectStore:
    settings = get_settings()
    if settings.video_storage == "local":
        return get_local_video_store()
    return S3ObjectStore(
        settings.s3_bucket,
        region=settings.s3_region,
        endpoint_url=settings.s3_endpoint_url,
    )
