import pytest

from src.engines.imagery.commands import build_command, format_quality
from src.engines.imagery.schemas import OrientOp, ResizeOp, UnrecognizedOp


def test_orient_command():
    assert build_command("convert", OrientOp(), "/in/a.jpg", "/out/b.jpg") == [
        "convert", "/in/a.jpg", "-auto-orient", "/out/b.jpg"
    ]


def test_resize_command_with_quality():
    command = build_command(
        "convert", ResizeOp(width=900, height=800, quality=1), "/in/a.jpg", "/out/b.jpg"
    )

    assert command == [
        "convert", "/in/a.jpg", "-auto-orient", "-resize", "900x800", "-quality", "1", "/out/b.jpg"
    ]


def test_resize_command_without_quality():
    command = build_command("convert", ResizeOp(width=64, height=48), "/in/a.png", "/out/b.png")

    assert command == ["convert", "/in/a.png", "-auto-orient", "-resize", "64x48", "/out/b.png"]


def test_paths_with_spaces_stay_single_arguments():
    command = build_command("convert", OrientOp(), "/in/my photo.jpg", "/out/b.jpg")

    assert command[1] == "/in/my photo.jpg"


def test_unrecognized_builds_nothing():
    assert build_command("convert", UnrecognizedOp(op="blur"), "/in/a.jpg", "/out/b.jpg") is None


def test_unsupported_type_raises():
    with pytest.raises(TypeError):
        build_command("convert", {"op": "orient"}, "/in/a.jpg", "/out/b.jpg")


@pytest.mark.parametrize("quality,expected", [(1, "1"), (85.0, "85"), (72.5, "72.5")])
def test_format_quality(quality, expected):
    assert format_quality(quality) == expected
