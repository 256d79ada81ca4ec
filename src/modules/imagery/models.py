"""
ProcessedImageRecord Model

One row per artifact produced by the transform tool. The integer `id` is
assigned by the database and copied back into the in-memory ProcessedImage.
"""

from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field
from typing import Optional, Dict, Any
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ProcessedImageRecord(SQLModel, table=True):
    """
    Durable record of a processed image.

    Stores:
    - Artifact identity (autoincrement id + uuid)
    - Owning application key
    - Stored artifact path, size and MIME type
    - Timestamps
    """
    __tablename__ = "op_image"

    # Primary Key (AUTO_INCREMENT)
    id: Optional[int] = Field(default=None, primary_key=True)

    # Artifact identity, also the produced file's base name
    uuid: str = Field(index=True, unique=True)

    # Ownership
    app_key: str = Field(index=True)

    # Stored artifact
    image: str = Field(description="Absolute path of the produced file")
    size: int = Field(default=0, description="Size of the produced file in bytes")
    type: Optional[str] = Field(default=None, description="MIME type guessed from the extension")

    # Timestamps
    created_at: datetime = Field(
        default_factory=utc_now, index=True, sa_type=DateTime(timezone=True)
    )
    updated_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))

    def to_response_dict(self) -> Dict[str, Any]:
        """Convert to API response format."""
        return {
            "id": self.id,
            "uuid": self.uuid,
            "appKey": self.app_key,
            "image": self.image,
            "size": self.size,
            "type": self.type,
            "created_at": self.created_at.isoformat() if self.created_at else None
        }
