from enum import Enum
from collections.abc import Mapping
from typing import Any, Dict, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, conint

from src.core.exceptions import TypeValidationError


class OperationKind(str, Enum):
    ORIENT = "orient"
    RESIZE = "resize"


class OrientOp(BaseModel):
    """Auto-orient the image using its embedded EXIF orientation."""
    model_config = ConfigDict(frozen=True)

    op: Literal["orient"] = OperationKind.ORIENT.value

    def to_request_dict(self) -> Dict[str, Any]:
        return {"op": self.op}


class ResizeOp(BaseModel):
    """Auto-orient, then scale the image to fit width x height."""
    model_config = ConfigDict(frozen=True)

    op: Literal["resize"] = OperationKind.RESIZE.value
    width: conint(strict=True, gt=0) = Field(..., description="Target width in pixels")
    height: conint(strict=True, gt=0) = Field(..., description="Target height in pixels")
    quality: Optional[Union[int, float]] = Field(None, description="Optional encoding quality")

    def to_request_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class UnrecognizedOp(BaseModel):
    """An operation kind the processor does not know; skipped at execution."""
    model_config = ConfigDict(frozen=True)

    op: Optional[Any] = None
    raw: Any = None

    def to_request_dict(self) -> Dict[str, Any]:
        return self.raw if isinstance(self.raw, dict) else {"op": self.op}


OperationSpec = Union[OrientOp, ResizeOp, UnrecognizedOp]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_operation(item: Any, index: int) -> OperationSpec:
    """Turn one raw `ops` entry into an OperationSpec.

    Kinds are matched case-insensitively. Anything that is not a mapping
    with a known `op` becomes an UnrecognizedOp.
    """
    if not isinstance(item, Mapping):
        return UnrecognizedOp(raw=item)

    kind = str(item.get("op")).lower()

    if kind == OperationKind.ORIENT.value:
        return OrientOp()

    if kind == OperationKind.RESIZE.value:
        quality = item.get("quality")
        try:
            return ResizeOp(
                width=item.get("width"),
                height=item.get("height"),
                quality=quality if _is_number(quality) else None
            )
        except ValidationError as e:
            field = e.errors()[0]["loc"][0]
            raise TypeValidationError(f"ops[{index}].{field}")

    return UnrecognizedOp(op=item.get("op"), raw=dict(item))


class ProcessRequest(BaseModel):
    """A validated image processing request."""
    model_config = ConfigDict(frozen=True)

    source_file: str
    tenant: str
    app_key: str
    ops: Tuple[OperationSpec, ...] = ()


class ProcessedImage(BaseModel):
    """One artifact produced by a successful operation.

    `id` stays None until the record is persisted.
    """
    id: Optional[int] = None
    uuid: str
    tenant: str
    app_key: str
    source_file: str
    target_file: str
    op: Union[OrientOp, ResizeOp]
    size: int = 0
    type: Optional[str] = None

    def to_response_dict(self) -> Dict[str, Any]:
        """Convert to the response format returned to callers."""
        return {
            "id": self.id,
            "uuid": self.uuid,
            "tenant": self.tenant,
            "appKey": self.app_key,
            "sourceFile": self.source_file,
            "targetFile": self.target_file,
            "op": self.op.to_request_dict(),
            "size": self.size,
            "type": self.type
        }
