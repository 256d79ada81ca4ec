"""
Image Processor - Pipeline Driver

Drives the five stages in strict sequence for one request:

    validate -> source -> destination -> execute -> record

A failure at any stage short-circuits every later stage and surfaces as a
single error. Storage handle and filesystem roots are injected; nothing is
read from module globals at processing time.
"""

import os
import asyncio
import inspect
import uuid
from typing import Any, Callable, List, Optional, Protocol

from src.core.config import Settings, settings as default_settings
from src.core.logging import get_logger, LogContext
from src.core.metrics import track_stage_latency, record_request_completion
from src.engines.imagery.runner import CommandRunner
from src.engines.imagery.schemas import ProcessedImage
from src.pipeline.stages import (
    validate_request,
    resolve_source,
    provision_destination,
    execute_operations,
    record_images
)

logger = get_logger(__name__)


class ImageStore(Protocol):
    """Storage handle: a parameterized insert returning the assigned id."""

    async def insert(self, image: ProcessedImage) -> int:
        ...


# callback(error, images): exactly one of the two is not None
CompletionCallback = Callable[[Optional[BaseException], Optional[List[ProcessedImage]]], Any]


class ImageProcessor:
    """Applies requested transforms to a source image and records the results."""

    def __init__(
        self,
        repository: ImageStore,
        input_path: str,
        output_path: str,
        runner: Optional[CommandRunner] = None,
        transform_command: str = "convert",
        cleanup_on_failure: bool = True
    ):
        self.repository = repository
        self.input_path = input_path
        self.output_path = output_path
        self.runner = runner or CommandRunner()
        self.transform_command = transform_command
        self.cleanup_on_failure = cleanup_on_failure

    @classmethod
    def from_settings(
        cls,
        repository: ImageStore,
        settings: Optional[Settings] = None,
        runner: Optional[CommandRunner] = None
    ) -> "ImageProcessor":
        settings = settings or default_settings
        return cls(
            repository=repository,
            input_path=settings.INPUT_PATH,
            output_path=settings.OUTPUT_PATH,
            runner=runner or CommandRunner(timeout=settings.TRANSFORM_TIMEOUT_SECONDS),
            transform_command=settings.TRANSFORM_COMMAND,
            cleanup_on_failure=settings.CLEANUP_ORPHANED_ARTIFACTS
        )

    async def process_image(self, request: Any) -> List[ProcessedImage]:
        """
        Run the full pipeline for one request.

        Args:
            request: mapping with sourceFile, tenant, appKey and ops

        Returns:
            ProcessedImage list in operation order, each with its persisted id

        Raises:
            TypeValidationError, PipelineIOError, ExternalToolError, StorageError
        """
        processed: List[ProcessedImage] = []
        stage = "validate"

        with LogContext(request_id=str(uuid.uuid4())):
            try:
                with track_stage_latency("validate"):
                    req = validate_request(request)

                logger.info(
                    "process_request_received",
                    source_file=req.source_file,
                    tenant=req.tenant,
                    app_key=req.app_key,
                    ops=len(req.ops)
                )

                stage = "source"
                with track_stage_latency(stage):
                    source_path, extension = await resolve_source(req.source_file, self.input_path)

                stage = "destination"
                with track_stage_latency(stage):
                    dest_dir = await provision_destination(self.output_path, req.tenant, req.app_key)

                stage = "execute"
                with track_stage_latency(stage):
                    await execute_operations(
                        req,
                        source_path,
                        extension,
                        dest_dir,
                        self.runner,
                        processed,
                        tool=self.transform_command
                    )

                stage = "record"
                with track_stage_latency(stage):
                    await record_images(processed, self.repository)

            except Exception as e:
                if self.cleanup_on_failure and stage in ("execute", "record"):
                    await self._discard_orphans(processed, getattr(e, "target_file", None))
                record_request_completion("failed", failure_stage=stage)
                raise

            record_request_completion("completed", images=len(processed))
            logger.info("process_request_completed", images=len(processed))
            return processed

    async def handle(self, request: Any, callback: CompletionCallback):
        """
        Transport-facing handler: run the pipeline, then call
        callback(None, images) on success or callback(error, None) on failure.
        """
        try:
            images = await self.process_image(request)
        except Exception as e:
            outcome = callback(e, None)
        else:
            outcome = callback(None, images)

        if inspect.isawaitable(outcome):
            await outcome

    async def _discard_orphans(self, processed: List[ProcessedImage], leftover: Optional[str]):
        """Delete artifacts that never got a database record."""
        paths = [image.target_file for image in processed if image.id is None]
        if leftover:
            paths.append(leftover)

        for path in paths:
            try:
                await asyncio.to_thread(os.remove, path)
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning("orphan_cleanup_failed", path=path, error=str(e))
            else:
                logger.info("orphan_removed", path=path)
