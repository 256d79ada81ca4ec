"""
Global Exception Handling

Pipeline error kinds and structured error responses. Every pipeline
failure surfaces as exactly one of these.
"""

import traceback
from typing import Optional, Dict, Any, List
from datetime import datetime
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.core.logging import get_logger, request_id_var

logger = get_logger(__name__)


# =============================================================================
# Custom Exceptions
# =============================================================================

class ImageProcessorBaseException(Exception):
    """Base exception for the image processor."""

    def __init__(
        self,
        message: str,
        code: int = 500,
        request_id: Optional[str] = None,
        stage: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.request_id = request_id or request_id_var.get()
        self.stage = stage
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-safe error payload."""
        return {
            "error": self.message,
            "type": type(self).__name__,
            "request_id": self.request_id,
            "code": self.code,
            "stage": self.stage,
            "details": self.details,
            "timestamp": datetime.utcnow().isoformat() + "Z"
        }


class TypeValidationError(ImageProcessorBaseException, TypeError):
    """Raised when a request field is missing or has the wrong type."""

    def __init__(self, field: str, message: Optional[str] = None, **kwargs):
        super().__init__(
            message or f"Invalid `{field}` param",
            code=400,
            stage="validate",
            **kwargs
        )
        self.field = field
        self.details["field"] = field


class PipelineIOError(ImageProcessorBaseException, OSError):
    """Raised when the source is unreadable or the destination uncreatable."""

    def __init__(self, message: str, path: str, code: int = 500, **kwargs):
        super().__init__(message, code=code, **kwargs)
        self.path = path
        self.details["path"] = path


class ExternalToolError(ImageProcessorBaseException):
    """Raised when the transform command fails, times out or cannot start."""

    def __init__(
        self,
        message: str,
        command: List[str],
        stdout: str = "",
        stderr: str = "",
        returncode: Optional[int] = None,
        cause: Optional[BaseException] = None,
        **kwargs
    ):
        super().__init__(message, code=502, stage="execute", **kwargs)
        self.command = command
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode
        self.cause = cause
        # Set by the executor; may hold a partial output to discard
        self.target_file: Optional[str] = None
        self.details.update({
            "command": " ".join(command),
            "stdout": stdout,
            "stderr": stderr,
            "returncode": returncode,
            "cause": repr(cause) if cause is not None else None,
        })


class StorageError(ImageProcessorBaseException):
    """Raised when recording an artifact in the database fails."""

    def __init__(self, message: str, cause: Optional[BaseException] = None, **kwargs):
        super().__init__(message, code=500, stage="record", **kwargs)
        self.cause = cause
        if cause is not None:
            self.details["cause"] = repr(cause)


def error_payload(exc: BaseException) -> Dict[str, Any]:
    """Error payload for any exception; unexpected ones are masked."""
    if isinstance(exc, ImageProcessorBaseException):
        return exc.to_dict()

    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        traceback="".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    )
    return {
        "error": "Internal server error",
        "type": type(exc).__name__,
        "request_id": request_id_var.get(),
        "code": 500,
        "timestamp": datetime.utcnow().isoformat() + "Z"
    }


# =============================================================================
# FastAPI Exception Handlers
# =============================================================================

def register_exception_handlers(app: FastAPI):
    """Register custom exception handlers with FastAPI app."""

    @app.exception_handler(ImageProcessorBaseException)
    async def image_processor_exception_handler(request: Request, exc: ImageProcessorBaseException):
        logger.error(
            "image_processor_exception",
            error=exc.message,
            code=exc.code,
            stage=exc.stage,
            details=exc.details
        )

        return JSONResponse(
            status_code=exc.code,
            content=exc.to_dict()
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        return JSONResponse(
            status_code=500,
            content=error_payload(exc)
        )
