"""
Pipeline Stage Implementations

Each stage is a separate function that can be called independently:

1. validate_request    - type checks, no side effects
2. resolve_source      - one stat() of the source image
3. provision_destination - mkdir -p OUTPUT_PATH/tenant/appKey
4. execute_operations  - run the transform tool once per operation, in order
5. record_images       - insert one database record per artifact, in order

Every filesystem, subprocess and database call is awaited before the next.
"""

import os
import asyncio
import mimetypes
import uuid
from collections.abc import Mapping
from typing import Any, List, Tuple

from src.core.exceptions import (
    TypeValidationError,
    PipelineIOError,
    ExternalToolError,
    StorageError
)
from src.core.logging import get_logger, with_logging
from src.core.metrics import record_transform_invocation
from src.engines.imagery.commands import build_command
from src.engines.imagery.runner import CommandRunner
from src.engines.imagery.schemas import ProcessRequest, ProcessedImage, parse_operation

logger = get_logger(__name__)


def join_under(root: str, *parts: str) -> str:
    """Join parts below root; leading separators do not escape root."""
    return os.path.abspath(
        os.path.join(root, *(part.lstrip("/\\") for part in parts))
    )


# =============================================================================
# Stage 1: Request Validation
# =============================================================================

@with_logging("validate")
def validate_request(request: Any) -> ProcessRequest:
    """
    Check request fields in a fixed order and parse its operations.

    Raises:
        TypeValidationError: naming the first offending field
    """
    if not isinstance(request, Mapping):
        raise TypeValidationError("request", "Invalid request: expected an object")

    for field in ("sourceFile", "tenant", "appKey"):
        if not isinstance(request.get(field), str):
            raise TypeValidationError(field)

    ops = request.get("ops")
    if not isinstance(ops, (list, tuple)):
        raise TypeValidationError("ops")

    return ProcessRequest(
        source_file=request["sourceFile"],
        tenant=request["tenant"],
        app_key=request["appKey"],
        ops=tuple(parse_operation(item, index) for index, item in enumerate(ops))
    )


# =============================================================================
# Stage 2: Source Resolution
# =============================================================================

@with_logging("source")
async def resolve_source(source_file: str, input_path: str) -> Tuple[str, str]:
    """
    Resolve the source image under the input root and check it exists.

    Returns:
        Tuple of (absolute source path, extension including the dot)
    """
    source_path = join_under(input_path, source_file)

    try:
        await asyncio.to_thread(os.stat, source_path)
    except OSError as e:
        raise PipelineIOError(
            f"Unable to read source file: {source_path}",
            path=source_path,
            code=404,
            stage="source"
        ) from e

    extension = os.path.splitext(source_path)[1]
    logger.debug("source_resolved", source=source_path, extension=extension)
    return source_path, extension


# =============================================================================
# Stage 3: Destination Provisioning
# =============================================================================

@with_logging("destination")
async def provision_destination(output_path: str, tenant: str, app_key: str) -> str:
    """Create OUTPUT_PATH/tenant/appKey if needed and return it."""
    dest_dir = join_under(output_path, tenant, app_key)

    try:
        await asyncio.to_thread(os.makedirs, dest_dir, exist_ok=True)
    except OSError as e:
        raise PipelineIOError(
            f"Unable to create destination directory: {dest_dir}",
            path=dest_dir,
            stage="destination"
        ) from e

    return dest_dir


# =============================================================================
# Stage 4: Operation Execution
# =============================================================================

async def _materialized_size(result, target_file: str) -> int:
    """Size of the produced file; a missing target is a tool failure."""
    try:
        stat = await asyncio.to_thread(os.stat, target_file)
    except OSError as e:
        raise ExternalToolError(
            f"Transform tool did not produce target file: {target_file}",
            command=result.command,
            stdout=result.stdout,
            stderr=result.stderr,
            returncode=result.returncode,
            cause=e
        ) from e
    return stat.st_size


@with_logging("execute")
async def execute_operations(
    request: ProcessRequest,
    source_path: str,
    extension: str,
    dest_dir: str,
    runner: CommandRunner,
    processed: List[ProcessedImage],
    tool: str = "convert"
) -> List[ProcessedImage]:
    """
    Run every operation in request order, appending one ProcessedImage per
    successful operation to `processed`.

    Unrecognized operations are logged and skipped. The first failing
    operation stops the stage; nothing after it is attempted.
    """
    for index, op in enumerate(request.ops):
        image_uuid = str(uuid.uuid4())
        target_file = os.path.join(dest_dir, image_uuid + extension)

        command = build_command(tool, op, source_path, target_file)
        if command is None:
            logger.warning("unrecognized_operation", index=index, op=op.raw)
            continue

        try:
            result = await runner.run(command)
            size = await _materialized_size(result, target_file)
        except ExternalToolError as e:
            e.target_file = target_file
            e.details["index"] = index
            logger.error(
                "transform_tool_failed",
                index=index,
                command=command,
                stdout=e.stdout,
                stderr=e.stderr,
                returncode=e.returncode,
                error=repr(e.cause)
            )
            record_transform_invocation(op.op, "error")
            raise

        record_transform_invocation(op.op, "success")
        processed.append(ProcessedImage(
            id=None,
            uuid=image_uuid,
            tenant=request.tenant,
            app_key=request.app_key,
            source_file=request.source_file,
            target_file=target_file,
            op=op,
            size=size,
            type=mimetypes.guess_type(target_file)[0]
        ))

    return processed


# =============================================================================
# Stage 5: Persistence
# =============================================================================

@with_logging("record")
async def record_images(images: List[ProcessedImage], repository) -> List[ProcessedImage]:
    """
    Insert one record per image, in order, and copy each assigned id back.

    Raises:
        StorageError: on the first failed insert; later images keep id None
    """
    for image in images:
        try:
            image.id = await repository.insert(image)
        except Exception as e:
            raise StorageError(
                f"Unable to record processed image {image.uuid}",
                cause=e
            ) from e

        logger.debug("image_recorded", record_id=image.id, uuid=image.uuid)

    return images
