from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from src.core.logging import get_logger
from src.engines.imagery.schemas import ProcessedImage
from src.modules.imagery.models import ProcessedImageRecord

logger = get_logger(__name__)


class ImageRepository:
    """Repository for processed image records."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def insert(self, image: ProcessedImage) -> int:
        """Insert one record and return its database-assigned id."""
        record = ProcessedImageRecord(
            uuid=image.uuid,
            app_key=image.app_key,
            image=image.target_file,
            size=image.size,
            type=image.type
        )
        try:
            self.session.add(record)
            # The id is assigned on flush; nothing after commit may fail the insert
            await self.session.flush()
            record_id = record.id
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise

        logger.debug("image_record_saved", record_id=record_id, uuid=image.uuid)
        return record_id

    async def get_by_uuid(self, image_uuid: str) -> Optional[ProcessedImageRecord]:
        """Get a record by its artifact uuid."""
        result = await self.session.execute(
            select(ProcessedImageRecord).where(ProcessedImageRecord.uuid == image_uuid)
        )
        return result.scalar_one_or_none()

    async def list_by_app_key(self, app_key: str, limit: int = 100) -> List[ProcessedImageRecord]:
        """Get the most recent records owned by an application."""
        result = await self.session.execute(
            select(ProcessedImageRecord)
            .where(ProcessedImageRecord.app_key == app_key)
            .order_by(ProcessedImageRecord.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
