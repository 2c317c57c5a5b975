"""
Error taxonomy for the ingestion pipeline and metadata endpoints.

str(exc) is the internal message (it may embed captured ffmpeg/ffprobe output
and is only logged); exc.detail is what the client sees.
"""
from fastapi import status


class AppError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(message)
        self.detail = detail or message


# ---------- Client input (4xx, no retry) ----------


class ClientInputError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidIdentifier(ClientInputError):
    pass


class UnsupportedMediaType(ClientInputError):
    pass


class PayloadTooLarge(ClientInputError):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE


# ---------- Authorization ----------


class AuthorizationError(AppError):
    status_code = status.HTTP_403_FORBIDDEN


class NotAuthenticated(AuthorizationError):
    status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(AuthorizationError):
    pass


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND


# ---------- ffprobe / ffmpeg ----------


class ExternalToolError(AppError):
    pass


class ToolInvocationFailed(ExternalToolError):
    pass


class MalformedOutput(ExternalToolError):
    pass


class NoVideoStream(ExternalToolError):
    pass


class RemuxFailed(ExternalToolError):
    pass


class FastStartCheckFailed(ExternalToolError):
    pass


class ToolTimeout(ExternalToolError):
    pass


# ---------- Storage (staging, object store, metadata store) ----------


class StorageError(AppError):
    pass


class AllocationFailed(StorageError):
    pass


class CopyFailed(StorageError):
    pass


class UploadFailed(StorageError):
    pass


class SigningFailed(StorageError):
    pass


class MetadataUpdateFailed(StorageError):
    pass


# ---------- Stored video references ----------


class VideoReferenceError(AppError):
    pass


class MissingReference(VideoReferenceError):
    pass


class MalformedReference(VideoReferenceError):
    pass
