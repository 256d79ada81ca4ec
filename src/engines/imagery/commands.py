"""
ImageMagick Command Synthesis

Maps each OperationSpec variant to an argv for the transform tool. Commands
are argv lists, never shell strings, so paths need no quoting.

    orient: <tool> <source> -auto-orient <target>
    resize: <tool> <source> -auto-orient -resize <W>x<H> [-quality <Q>] <target>
"""

from typing import List, Optional, Union

from src.engines.imagery.schemas import OperationSpec, OrientOp, ResizeOp, UnrecognizedOp

AUTO_ORIENT = "-auto-orient"
RESIZE = "-resize"
QUALITY = "-quality"


def format_quality(quality: Union[int, float]) -> str:
    """Render quality the way a JSON number prints (1.0 -> "1")."""
    if float(quality).is_integer():
        return str(int(quality))
    return str(quality)


def build_command(
    tool: str,
    op: OperationSpec,
    source_file: str,
    target_file: str
) -> Optional[List[str]]:
    """
    Build the transform tool invocation for one operation.

    Returns:
        argv list, or None when the operation is unrecognized and must be skipped
    """
    if isinstance(op, OrientOp):
        return [tool, source_file, AUTO_ORIENT, target_file]

    if isinstance(op, ResizeOp):
        command = [tool, source_file, AUTO_ORIENT, RESIZE, f"{op.width}x{op.height}"]
        if op.quality is not None:
            command += [QUALITY, format_quality(op.quality)]
        command.append(target_file)
        return command

    if isinstance(op, UnrecognizedOp):
        return None

    raise TypeError(f"Unsupported operation type: {type(op).__name__}")
