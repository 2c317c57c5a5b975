import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from app.config import get_settings
from app.errors import AppError
from app.routers import assets, auth, videos
from app.services.storage import assets_root

settings = get_settings()

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    assets_root().mkdir(parents=True, exist_ok=True)
    logger.info("Serving thumbnails from %s, videos stored in %s", assets_root(), settings.video_storage)
    yield


app = FastAPI(title="Tubely API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s rejected (%d): %s", request.method, request.url.path, exc.status_code, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


app.include_router(auth.router)
app.include_router(videos.router)
app.include_router(assets.router)
app.mount("/assets", StaticFiles(directory=assets_root(), check_dir=False), name="assets")


@app.get("/")
def root():
    return {"message": "Tubely API", "docs": "/docs"}
