"""Tests for podsnip.engine.runner module."""

import pytest

from podsnip.engine.interface import EngineInfo
from podsnip.engine.runner import RecognitionRunner, parse_progress, sidecar_csv_path
from podsnip.utils.errors import ProcessSpawnError, RecognitionError

ENGINE = EngineInfo(binary_path="/opt/whisper-cpp", model_path="/models/ggml-base.bin")


class TestParseProgress:
    """Tests for engine progress line decoding."""

    def test_whisper_progress_callback_line(self):
        assert parse_progress("whisper_print_progress_callback: progress =  42%") == 42

    def test_unrelated_line(self):
        assert parse_progress("1000,2500,hello") is None

    def test_clamped_to_100(self):
        assert parse_progress("progress = 250%") == 100


class TestRecognitionRunner:
    """Tests for RecognitionRunner.run() against a fake process."""

    def test_sidecar_path(self):
        assert sidecar_csv_path("/tmp/a.16k.wav") == "/tmp/a.16k.wav.csv"

    def test_command_line(self, fake_runner_factory):
        runner = RecognitionRunner(process_runner=fake_runner_factory(), threads=None)
        assert runner.build_command(ENGINE, "/tmp/a.wav") == [
            "/opt/whisper-cpp",
            "-m",
            "/models/ggml-base.bin",
            "-f",
            "/tmp/a.wav",
            "--output-csv",
            "--print-progress",
        ]

    def test_threads_flag(self, fake_runner_factory):
        runner = RecognitionRunner(process_runner=fake_runner_factory(), threads=4)
        assert runner.build_command(ENGINE, "/tmp/a.wav")[-2:] == ["-t", "4"]

    def test_threads_from_env(self, fake_runner_factory, monkeypatch):
        monkeypatch.setenv("WHISPER_THREADS", "8")
        runner = RecognitionRunner(process_runner=fake_runner_factory())
        assert runner.build_command(ENGINE, "/tmp/a.wav")[-2:] == ["-t", "8"]

    async def test_returns_stdout_and_streams_lines(self, fake_runner_factory):
        fake = fake_runner_factory(stdout_lines=["0,1000,hello", "1000,2000,world"])
        seen: list[str] = []

        output = await RecognitionRunner(process_runner=fake).run(
            ENGINE, "/tmp/a.wav", on_output_line=seen.append
        )

        assert output == "0,1000,hello\n1000,2000,world"
        assert seen == ["0,1000,hello", "1000,2000,world"]
        assert fake.calls[0][0] == "/opt/whisper-cpp"

    async def test_progress_from_stderr(self, fake_runner_factory):
        fake = fake_runner_factory(
            stdout_lines=["0,1000,hi"],
            stderr_lines=["progress = 10%", "noise", "progress = 60%"],
        )
        seen: list[int] = []

        await RecognitionRunner(process_runner=fake).run(
            ENGINE, "/tmp/a.wav", on_progress=seen.append
        )

        assert seen == [10, 60]

    async def test_nonzero_exit_raises_with_stderr_tail(self, fake_runner_factory):
        fake = fake_runner_factory(exit_code=2, stderr_lines=["failed to read WAV"])

        with pytest.raises(RecognitionError) as exc_info:
            await RecognitionRunner(process_runner=fake).run(ENGINE, "/tmp/a.wav")

        assert exc_info.value.exit_code == 2
        assert exc_info.value.stderr_tail == "failed to read WAV"
        assert "exit code 2" in str(exc_info.value)

    async def test_zero_exit_without_output_returns_empty_text(self, fake_runner_factory):
        """Empty output is left for the parser to reject as no segments."""
        fake = fake_runner_factory(exit_code=0, stdout_lines=[])

        output = await RecognitionRunner(process_runner=fake).run(ENGINE, "/tmp/a.wav")

        assert output == ""

    async def test_spawn_failure_propagates(self, fake_runner_factory):
        fake = fake_runner_factory(
            raises=ProcessSpawnError("cannot launch", binary="/opt/whisper-cpp")
        )

        with pytest.raises(ProcessSpawnError):
            await RecognitionRunner(process_runner=fake).run(ENGINE, "/tmp/a.wav")

    async def test_timeout_becomes_recognition_error(self, fake_runner_factory):
        fake = fake_runner_factory(raises=TimeoutError())

        with pytest.raises(RecognitionError, match="timed out"):
            await RecognitionRunner(process_runner=fake, timeout=5).run(
                ENGINE, "/tmp/a.wav"
            )
