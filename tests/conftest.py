import os
import secrets
import tempfile
from datetime import timedelta
from pathlib import Path

# Settings are read once and cached; point them at throwaway locations before app modules load.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("VIDEO_STORAGE", "local")
os.environ.setdefault("PUBLIC_BASE_URL", "http://testserver")
os.environ.setdefault("ASSETS_ROOT", tempfile.mkdtemp(prefix="tubely_assets_"))
os.environ.setdefault("LOCAL_VIDEO_ROOT", tempfile.mkdtemp(prefix="tubely_videos_"))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.errors import UploadFailed
from app.main import app
from app.services.ffmpeg_tools import ProbeResult, fast_start_output_path, has_fast_start_layout
from app.services.references import VideoUrlResolver, get_url_resolver
from app.services.storage import LocalObjectStore, ObjectStore, get_local_video_store, get_thumbnail_store
from app.services.video_upload import VideoIngestPipeline, get_ingest_pipeline

# ftyp box, then a moov box header well inside the first 200 bytes
FAST_START_HEADER = b"\x00\x00\x00\x20ftypisom\x00\x00\x02\x00isomiso2avc1mp41" + b"\x00\x00\x01\x00moov"


def fake_mp4(size: int = 4096) -> bytes:
    """Bytes standing in for an uploaded (not yet fast-start) mp4."""
    return (b"\x00\x00\x00\x20ftypisom" + b"mdat" + secrets.token_bytes(size))[:size]


class FakeToolkit:
    """Stands in for FFmpegToolkit; remux writes a file whose head carries the moov marker."""

    def __init__(self, width: int = 1920, height: int = 1080):
        self.probe_result = ProbeResult(width, height)
        self.probe_error: Exception | None = None
        self.remux_error: Exception | None = None
        self.remux_writes_moov = True
        self.probed: list[Path] = []
        self.remuxed: list[Path] = []

    def probe(self, path: Path) -> ProbeResult:
        self.probed.append(Path(path))
        if self.probe_error:
            raise self.probe_error
        return self.probe_result

    def output_path(self, path: Path) -> Path:
        return fast_start_output_path(path)

    def remux(self, path: Path) -> Path:
        self.remuxed.append(Path(path))
        out = self.output_path(path)
        head = FAST_START_HEADER if self.remux_writes_moov else b"\x00" * len(FAST_START_HEADER)
        out.write_bytes(head + b"\x00" * 200 + Path(path).read_bytes())
        if self.remux_error:
            raise self.remux_error
        return out

    def verify(self, path: Path) -> bool:
        return has_fast_start_layout(path)


class FakeObjectStore(ObjectStore):
    def __init__(self, bucket: str = "tubely-test"):
        self.bucket = bucket
        self.objects: dict[tuple[str, str], tuple[str, bytes]] = {}
        self.fail_put = False

    def put(self, bucket, key, content_type, body):
        if self.fail_put:
            raise UploadFailed(f"put {bucket}/{key} refused", detail="Error uploading video to S3")
        self.objects[(bucket, key)] = (content_type, body.read())

    def presign_get(self, bucket, key, ttl):
        return f"https://{bucket}.s3.example.com/{key}?expires={int(ttl.total_seconds())}&sig={secrets.token_hex(8)}"


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = Session()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture
def staging_dir(tmp_path):
    d = tmp_path / "staging"
    d.mkdir()
    return d


@pytest.fixture
def toolkit():
    return FakeToolkit()


@pytest.fixture
def object_store():
    return FakeObjectStore()


@pytest.fixture
def pipeline(toolkit, object_store, staging_dir):
    return VideoIngestPipeline(toolkit, object_store, staging_dir=str(staging_dir), max_bytes=1 << 20)


@pytest.fixture
def local_video_store(tmp_path):
    return LocalObjectStore(
        tmp_path / "videos",
        bucket="local",
        base_url="http://testserver",
        secret_key="test-secret",
    )


@pytest.fixture
def thumbnail_store(tmp_path):
    return LocalObjectStore(tmp_path / "assets", bucket="assets", base_url="http://testserver")


@pytest.fixture
def client(db_session, toolkit, local_video_store, thumbnail_store, staging_dir):
    """API client with the real pipeline wired to a fake toolkit and on-disk stores under tmp_path."""
    pipeline = VideoIngestPipeline(toolkit, local_video_store, staging_dir=str(staging_dir), max_bytes=1 << 20)
    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_ingest_pipeline] = lambda: pipeline
    app.dependency_overrides[get_url_resolver] = lambda: VideoUrlResolver(local_video_store, timedelta(minutes=15))
    app.dependency_overrides[get_local_video_store] = lambda: local_video_store
    app.dependency_overrides[get_thumbnail_store] = lambda: thumbnail_store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def auth_headers(client: TestClient, email: str, password: str = "hunter22") -> dict:
    resp = client.post("/api/users", json={"email": email, "password": password})
    assert resp.status_code == 201, resp.text
    resp = client.post("/api/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}
