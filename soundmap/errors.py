from fastapi import Request
from fastapi.responses import JSONResponse
import logging
import time

logger = logging.getLogger(__name__)

class SoundMapError(Exception):
    """Base error carrying a message safe to show to the user."""
    status_code = 500
    user_message = "Something went wrong. Please try again."
    retryable = False

    def __init__(self, message: str, user_message: str = None, retryable: bool = None):
        super().__init__(message)
        if user_message is not None:
            self.user_message = user_message
        if retryable is not None:
            self.retryable = retryable

class ClipNotFound(SoundMapError):
    status_code = 404
    user_message = "Clip not found."

class ProfileNotFound(SoundMapError):
    status_code = 404
    user_message = "Profile not found."

class NotClipOwner(SoundMapError):
    status_code = 403
    user_message = "Only the owner can change this clip."

class ValidationFailed(SoundMapError):
    status_code = 400
    user_message = "Please check your input and try again."

class BackendUnavailable(SoundMapError):
    status_code = 503
    user_message = "Connection problem. Please check your internet and try again."
    retryable = True

async def soundmap_error_handler(request: Request, exc: SoundMapError):
    logger.warning(f"⚠️ {request.method} {request.url.path} - {type(exc).__name__}: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": type(exc).__name__,
            "message": exc.user_message,
            "retryable": exc.retryable,
            "timestamp": time.time(),
        },
    )
