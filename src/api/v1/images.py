"""
Images Endpoint - Pipeline Dispatch

POST /api/v1/images               - Process an image inline and return artifacts
POST /api/v1/images/jobs          - Enqueue on the `image.upload` channel
GET  /api/v1/images/jobs/{task_id} - Poll a queued request
GET  /api/v1/images/{uuid}        - Look up a recorded artifact
"""

from typing import Any, Dict, List, Optional

from celery.result import AsyncResult
from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel

from src.api.dependencies import get_image_processor, get_image_repository
from src.core.celery_app import celery_app
from src.core.logging import get_logger
from src.engines.imagery.repositories import ImageRepository
from src.pipeline.processor import ImageProcessor
from src.pipeline.tasks import dispatch_image_upload

logger = get_logger(__name__)
router = APIRouter()


# =============================================================================
# Response Schemas
# =============================================================================

class ProcessResponse(BaseModel):
    """Artifacts produced by one request."""
    images: List[Dict[str, Any]]


class JobResponse(BaseModel):
    """Queued request handle."""
    task_id: str
    status: str
    result: Optional[Dict[str, Any]] = None


# =============================================================================
# Endpoints
# =============================================================================

@router.post("", response_model=ProcessResponse)
async def process_image(
    request: Any = Body(...),
    processor: ImageProcessor = Depends(get_image_processor)
):
    """
    Process an image synchronously.

    Body:
        {"sourceFile": str, "tenant": str, "appKey": str, "ops": [...]}

    Pipeline errors are rendered by the registered exception handlers.
    """
    images = await processor.process_image(request)
    return ProcessResponse(images=[image.to_response_dict() for image in images])


@router.post("/jobs", response_model=JobResponse, status_code=202)
async def submit_image_job(request: Any = Body(...)):
    """Enqueue a request; the worker runs the same pipeline."""
    task_id = dispatch_image_upload(request)
    return JobResponse(task_id=task_id, status="PENDING")


@router.get("/jobs/{task_id}", response_model=JobResponse)
async def get_image_job(task_id: str):
    """Get the state of a queued request and, once finished, its outcome."""
    result = AsyncResult(task_id, app=celery_app)
    return JobResponse(
        task_id=task_id,
        status=result.state,
        result=result.result if result.successful() else None
    )


@router.get("/{image_uuid}")
async def get_image(
    image_uuid: str,
    repository: ImageRepository = Depends(get_image_repository)
):
    """Get a recorded artifact by uuid."""
    record = await repository.get_by_uuid(image_uuid)
    if not record:
        raise HTTPException(status_code=404, detail=f"Image not found: {image_uuid}")
    return record.to_response_dict()
