"""
FastAPI Dependencies for the Image Processor

Provides dependency injection for:
- Image Repository (per-request with session)
- Image Processor (per-request, bound to that repository)
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.core.database import get_session
from src.engines.imagery.repositories import ImageRepository
from src.pipeline.processor import ImageProcessor


def get_image_repository(session: AsyncSession = Depends(get_session)) -> ImageRepository:
    """Get image repository with database session."""
    return ImageRepository(session)


def get_image_processor(
    repository: ImageRepository = Depends(get_image_repository)
) -> ImageProcessor:
    """Get an image processor bound to the request's repository."""
    return ImageProcessor.from_settings(repository, settings)
