import subprocess

import pytest

from src.core.exceptions import ExternalToolError
from src.engines.imagery.runner import CommandRunner
from tests.fakes import write_script


@pytest.mark.asyncio
async def test_run_success_invokes_tool_with_exact_arguments(tmp_path, fake_convert):
    source = tmp_path / "my photo.jpg"
    target = tmp_path / "out.jpg"
    source.write_bytes(b"testing")

    result = await CommandRunner().run(
        [str(fake_convert.path), str(source), "-auto-orient", str(target)]
    )

    assert result.returncode == 0
    assert target.read_bytes() == b"testing"
    assert fake_convert.calls == [f"{source} -auto-orient {target}"]


@pytest.mark.asyncio
async def test_non_zero_exit_raises_with_captured_output(tmp_path):
    tool = write_script(tmp_path / "convert", 'echo "convert: no decode delegate" >&2\nexit 1\n')

    with pytest.raises(ExternalToolError) as exc_info:
        await CommandRunner().run([str(tool), "a.jpg", "b.jpg"])

    error = exc_info.value
    assert error.returncode == 1
    assert "no decode delegate" in error.stderr
    assert isinstance(error.cause, subprocess.CalledProcessError)
    assert error.details["command"] == f"{tool} a.jpg b.jpg"
    assert error.code == 502


@pytest.mark.asyncio
async def test_missing_executable_raises(tmp_path):
    missing = str(tmp_path / "no-such-convert")

    with pytest.raises(ExternalToolError) as exc_info:
        await CommandRunner().run([missing, "a.jpg", "b.jpg"])

    assert isinstance(exc_info.value.cause, OSError)
    assert exc_info.value.returncode is None


@pytest.mark.asyncio
async def test_timeout_kills_tool(tmp_path):
    tool = write_script(tmp_path / "convert", "exec sleep 5\n")

    with pytest.raises(ExternalToolError) as exc_info:
        await CommandRunner(timeout=0.2).run([str(tool)])

    assert isinstance(exc_info.value.cause, TimeoutError)
    assert "timed out" in exc_info.value.message


def test_zero_timeout_means_no_limit():
    assert CommandRunner(timeout=0).timeout is None
    assert CommandRunner(timeout=None).timeout is None
    assert CommandRunner(timeout=2.5).timeout == 2.5
