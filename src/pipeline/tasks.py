"""
Celery Tasks for the Image Processor

`image.upload` is the inbound channel: each message carries one request
mapping, and the task result is either the processed images or a single
error payload. Errors are returned rather than raised so the caller always
gets one structured object back.
"""

import asyncio
from typing import Any, Dict, List, Optional

from sqlalchemy.engine import URL
from sqlalchemy.exc import SQLAlchemyError

from src.core.celery_app import celery_app
from src.core.database import create_worker_session_maker, create_db_and_tables
from src.core.exceptions import StorageError, error_payload
from src.core.logging import get_logger
from src.engines.imagery.repositories import ImageRepository
from src.engines.imagery.schemas import ProcessedImage
from src.pipeline.processor import ImageProcessor

logger = get_logger(__name__)

_initialized_databases = set()


def _database_key(url: URL) -> str:
    """Identity of a database URL, credentials included."""
    return url.render_as_string(hide_password=False)


async def run_image_upload(request: Any, database_url: Optional[str] = None) -> Dict[str, Any]:
    """
    Process one upload request with a worker-local database engine.

    Returns:
        {"status": "COMPLETED", "images": [...]} or
        {"status": "FAILED", "error": {...}}
    """
    outcome: Dict[str, Any] = {}

    def complete(error: Optional[BaseException], images: Optional[List[ProcessedImage]]):
        if error is not None:
            outcome.update(status="FAILED", error=error_payload(error))
        else:
            outcome.update(
                status="COMPLETED",
                images=[image.to_response_dict() for image in images]
            )

    engine = None
    try:
        engine, session_maker = create_worker_session_maker(database_url)
        key = _database_key(engine.url)
        if key not in _initialized_databases:
            await create_db_and_tables(engine)
            _initialized_databases.add(key)

        async with session_maker() as session:
            processor = ImageProcessor.from_settings(ImageRepository(session))
            await processor.handle(request, complete)
    except (SQLAlchemyError, OSError) as e:
        logger.error("worker_database_unavailable", error=str(e), error_type=type(e).__name__)
        error = StorageError("Unable to open the image database", cause=e)
        error.__cause__ = e
        complete(error, None)
    finally:
        if engine is not None:
            await engine.dispose()

    return outcome


@celery_app.task(
    bind=True,
    name="image.upload",
    acks_late=True
)
def process_image_upload(self, request: Dict[str, Any]) -> Dict[str, Any]:
    """Celery task for the `image.upload` channel."""
    logger.info("task_image_upload_started", task_id=self.request.id)

    outcome = asyncio.run(run_image_upload(request))

    logger.info(
        "task_image_upload_finished",
        task_id=self.request.id,
        status=outcome.get("status")
    )
    return outcome


def dispatch_image_upload(request: Dict[str, Any]) -> str:
    """Enqueue a request on the `image.upload` channel and return the task id."""
    result = process_image_upload.apply_async(args=[request])
    logger.info("image_upload_dispatched", task_id=result.id)
    return str(result.id)
