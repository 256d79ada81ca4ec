import os
from unittest.mock import AsyncMock

import pytest

from src.core.exceptions import PipelineIOError, StorageError, TypeValidationError
from src.engines.imagery.schemas import OrientOp, ProcessedImage, UnrecognizedOp
from src.pipeline.stages import (
    join_under,
    validate_request,
    resolve_source,
    provision_destination,
    record_images
)
from tests.fakes import FakeImageStore, SOURCE_NAME


VALID = {"sourceFile": SOURCE_NAME, "tenant": "tenant", "appKey": "app", "ops": []}


class TestValidateRequest:
    """Field checks run in a fixed order and name the first bad field."""

    @pytest.mark.parametrize("overrides,field", [
        ({"sourceFile": None}, "sourceFile"),
        ({"sourceFile": 1, "tenant": None}, "sourceFile"),
        ({"tenant": None}, "tenant"),
        ({"tenant": None, "appKey": None}, "tenant"),
        ({"appKey": 42}, "appKey"),
        ({"ops": None}, "ops"),
        ({"ops": {"op": "orient"}}, "ops"),
    ])
    def test_first_offending_field_is_reported(self, overrides, field):
        with pytest.raises(TypeValidationError) as exc_info:
            validate_request({**VALID, **overrides})

        assert exc_info.value.field == field
        assert str(exc_info.value) == f"Invalid `{field}` param"
        assert isinstance(exc_info.value, TypeError)

    def test_non_mapping_request(self):
        with pytest.raises(TypeValidationError) as exc_info:
            validate_request(["not", "a", "mapping"])

        assert exc_info.value.field == "request"

    def test_ops_are_parsed_in_order(self):
        request = validate_request({**VALID, "ops": [{"op": "orient"}, {"op": "blur"}]})

        assert request.source_file == SOURCE_NAME
        assert request.ops[0] == OrientOp()
        assert isinstance(request.ops[1], UnrecognizedOp)


def test_join_under_keeps_leading_separators_inside_root():
    assert join_under("/data/in", "/photo.jpg") == "/data/in/photo.jpg"
    assert join_under("/data/out", "tenant", "app") == "/data/out/tenant/app"


@pytest.mark.asyncio
async def test_resolve_source_returns_path_and_extension(workspace):
    input_dir, _ = workspace

    path, extension = await resolve_source(SOURCE_NAME, str(input_dir))

    assert path == str(input_dir / SOURCE_NAME)
    assert extension == ".jpg"


@pytest.mark.asyncio
async def test_resolve_source_missing_file(workspace):
    input_dir, _ = workspace

    with pytest.raises(PipelineIOError) as exc_info:
        await resolve_source("missing.jpg", str(input_dir))

    error = exc_info.value
    assert str(input_dir / "missing.jpg") in str(error)
    assert error.code == 404
    assert error.stage == "source"
    assert isinstance(error, OSError)


@pytest.mark.asyncio
async def test_resolve_source_without_extension(workspace):
    input_dir, _ = workspace
    (input_dir / "raw").write_bytes(b"data")

    _, extension = await resolve_source("raw", str(input_dir))

    assert extension == ""


@pytest.mark.asyncio
async def test_provision_destination_is_idempotent(workspace):
    _, output_dir = workspace

    first = await provision_destination(str(output_dir), "tenant", "app")
    second = await provision_destination(str(output_dir), "tenant", "app")

    assert first == second == str(output_dir / "tenant" / "app")
    assert os.path.isdir(first)


@pytest.mark.asyncio
async def test_provision_destination_failure(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_bytes(b"not a directory")

    with pytest.raises(PipelineIOError) as exc_info:
        await provision_destination(str(blocker), "tenant", "app")

    assert exc_info.value.stage == "destination"
    assert str(blocker / "tenant" / "app") in str(exc_info.value)


def _image(index: int) -> ProcessedImage:
    return ProcessedImage(
        uuid=f"uuid-{index}",
        tenant="tenant",
        app_key="app",
        source_file=SOURCE_NAME,
        target_file=f"/out/uuid-{index}.jpg",
        op=OrientOp()
    )


@pytest.mark.asyncio
async def test_record_images_assigns_ids_in_order():
    store = FakeImageStore(first_id=7)
    images = [_image(i) for i in range(3)]

    await record_images(images, store)

    assert [image.id for image in images] == [7, 8, 9]
    assert store.attempts == ["uuid-0", "uuid-1", "uuid-2"]


@pytest.mark.asyncio
async def test_record_images_stops_at_first_failure():
    store = FakeImageStore(fail_at=1)
    images = [_image(i) for i in range(3)]

    with pytest.raises(StorageError) as exc_info:
        await record_images(images, store)

    assert [image.id for image in images] == [100, None, None]
    assert store.attempts == ["uuid-0", "uuid-1"]
    assert exc_info.value.cause.code == "E_DUM"
    assert exc_info.value.__cause__ is exc_info.value.cause


@pytest.mark.asyncio
async def test_record_images_awaits_each_insert_in_turn():
    repository = AsyncMock()
    repository.insert.side_effect = [11, 12]
    images = [_image(0), _image(1)]

    await record_images(images, repository)

    assert [call.args[0].uuid for call in repository.insert.await_args_list] == ["uuid-0", "uuid-1"]
    assert [image.id for image in images] == [11, 12]
