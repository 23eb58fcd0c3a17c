"""Tests for podsnip.utils.process module (spawns the Python interpreter)."""

import asyncio
import sys
import time

import pytest

from podsnip.utils.errors import ProcessSpawnError
from podsnip.utils.process import ProcessRunner


def _python(code: str) -> list[str]:
    return [sys.executable, "-c", code]


class TestProcessRunner:
    """Tests for ProcessRunner.run()."""

    async def test_captures_stdout_and_exit_code(self):
        result = await ProcessRunner().run(_python("print('a'); print('b')"))

        assert result.exit_code == 0
        assert result.stdout == "a\nb"
        assert result.stderr_tail == ""

    async def test_nonzero_exit_code_is_returned(self):
        code = "import sys; sys.stderr.write('bad input\\n'); sys.exit(3)"
        result = await ProcessRunner().run(_python(code))

        assert result.exit_code == 3
        assert result.stderr_tail == "bad input"

    async def test_lines_are_streamed_to_callbacks(self):
        seen_out: list[str] = []
        seen_err: list[str] = []
        code = (
            "import sys\n"
            "print('one', flush=True)\n"
            "sys.stderr.write('progress = 50%\\n')\n"
            "print('two', flush=True)\n"
        )

        await ProcessRunner().run(
            _python(code),
            on_stdout_line=seen_out.append,
            on_stderr_line=seen_err.append,
        )

        assert seen_out == ["one", "two"]
        assert seen_err == ["progress = 50%"]

    async def test_stderr_tail_is_bounded(self):
        code = "import sys\nfor i in range(100): sys.stderr.write(f'line {i}\\n')"
        result = await ProcessRunner(stderr_tail_lines=3).run(_python(code))

        assert result.stderr_tail == "line 97\nline 98\nline 99"

    async def test_capture_stdout_disabled_still_drains(self):
        seen: list[str] = []
        result = await ProcessRunner().run(
            _python("print('x')"), on_stdout_line=seen.append, capture_stdout=False
        )

        assert result.stdout == ""
        assert seen == ["x"]

    async def test_large_output_on_both_streams_does_not_deadlock(self):
        code = (
            "import sys\n"
            "for i in range(20000):\n"
            "    sys.stdout.write('o' * 50 + '\\n')\n"
            "    sys.stderr.write('e' * 50 + '\\n')\n"
        )
        result = await asyncio.wait_for(ProcessRunner().run(_python(code)), 30)

        assert result.exit_code == 0
        assert len(result.stdout.splitlines()) == 20000

    async def test_missing_binary_raises_spawn_error(self, tmp_path):
        missing = str(tmp_path / "no-such-binary")

        with pytest.raises(ProcessSpawnError) as exc_info:
            await ProcessRunner().run([missing, "--help"])

        assert exc_info.value.binary == missing

    async def test_timeout_terminates_child(self):
        start = time.monotonic()
        with pytest.raises(TimeoutError):
            await ProcessRunner().run(
                _python("import time; time.sleep(30)"), timeout=0.5
            )
        assert time.monotonic() - start < 10

    async def test_cancellation_terminates_child(self, tmp_path):
        marker = tmp_path / "started"
        code = (
            f"open({str(marker)!r}, 'w').close()\n"
            "import time; time.sleep(30)\n"
        )
        task = asyncio.create_task(ProcessRunner().run(_python(code)))

        for _ in range(200):
            if marker.exists():
                break
            await asyncio.sleep(0.05)
        task.cancel()

        start = time.monotonic()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert time.monotonic() - start < 10
