"""Discovery of a local whisper.cpp installation.

Probes a fixed, ordered list of well-known binary locations and a models
directory. Model files are chosen by a deterministic priority order:

    ggml-base.bin -> ggml-small.bin -> ggml-tiny.bin -> ggml-medium.bin

The order can be overridden with WHISPER_MODEL_PRIORITY.
"""

from __future__ import annotations

import os

from podsnip.engine.interface import (
    EngineAvailability,
    EngineInfo,
    EngineUnavailable,
)

DEFAULT_MODEL_PRIORITY: tuple[str, ...] = (
    "ggml-base.bin",
    "ggml-small.bin",
    "ggml-tiny.bin",
    "ggml-medium.bin",
)

INSTALL_INSTRUCTIONS = """
To use local transcription, you need to install whisper.cpp:

1. Install dependencies:
   sudo dnf install -y git make gcc g++ ffmpeg

2. Clone and build whisper.cpp:
   cd ~
   git clone https://github.com/ggerganov/whisper.cpp.git
   cd whisper.cpp
   make

3. Download a model (base model recommended for balance of speed/accuracy):
   bash ./models/download-ggml-model.sh base

4. Create a symlink:
   sudo ln -s ~/whisper.cpp/main /usr/local/bin/whisper-cpp

5. Restart Podsnip

Model sizes:
- tiny: Fastest, least accurate (~75MB)
- base: Good balance (~142MB) - RECOMMENDED
- small: Better accuracy (~466MB)
- medium: High accuracy (~1.5GB, slower)
- large: Best accuracy (~2.9GB, very slow)
"""


def default_binary_paths(home: str | None = None) -> list[str]:
    """Return the well-known whisper.cpp binary locations, in search order."""
    home = home or os.path.expanduser("~")
    return [
        "/usr/local/bin/whisper-cpp",
        "/usr/bin/whisper-cpp",
        os.path.join(home, ".local", "bin", "whisper-cpp"),
        os.path.join(home, "whisper.cpp", "main"),
        os.path.join(home, "whisper.cpp", "build", "bin", "whisper-cli"),
    ]


class EngineLocator:
    """Finds the recognition binary and an acoustic model on disk.

    Reads configuration from environment variables:
        WHISPER_CPP_PATH, WHISPER_MODELS_DIR, WHISPER_MODEL_PRIORITY

    Every lookup is a plain filesystem check, so nothing is cached.
    """

    def __init__(
        self,
        binary_paths: list[str] | None = None,
        models_dir: str | None = None,
        model_priority: list[str] | tuple[str, ...] | None = None,
    ) -> None:
        if binary_paths is None:
            binary_paths = default_binary_paths()
            override = os.environ.get("WHISPER_CPP_PATH", "")
            if override:
                binary_paths.insert(0, override)
        self.binary_paths = list(binary_paths)

        self.models_dir = models_dir or os.environ.get(
            "WHISPER_MODELS_DIR",
            os.path.join(os.path.expanduser("~"), "whisper.cpp", "models"),
        )

        if model_priority is None:
            env_priority = os.environ.get("WHISPER_MODEL_PRIORITY", "")
            model_priority = tuple(
                name.strip() for name in env_priority.split(",") if name.strip()
            ) or DEFAULT_MODEL_PRIORITY
        self.model_priority = tuple(model_priority)

    def find_binary(self) -> str | None:
        """Return the first existing executable among the known paths."""
        for path in self.binary_paths:
            if os.path.isfile(path) and os.access(path, os.X_OK):
                return path
        return None

    def find_model(self) -> str | None:
        """Return the highest-priority model file present in the models dir."""
        for name in self.model_priority:
            path = os.path.join(self.models_dir, name)
            if os.path.isfile(path):
                return path
        return None

    def locate(self) -> EngineInfo | EngineUnavailable:
        """Locate a usable engine. Absence is a normal outcome, never raised."""
        binary = self.find_binary()
        if binary is None:
            return EngineUnavailable(
                reason="whisper.cpp is not installed",
                instructions=self.install_instructions(),
            )

        model = self.find_model()
        if model is None:
            return EngineUnavailable(
                reason=(
                    f"No whisper model found in {self.models_dir}. "
                    "Please download a model first."
                ),
                instructions=self.install_instructions(),
                binary_path=binary,
            )

        return EngineInfo(binary_path=binary, model_path=model)

    def check_availability(self) -> EngineAvailability:
        """Report whether transcription can run, with setup guidance."""
        return EngineAvailability(
            available=isinstance(self.locate(), EngineInfo),
            instructions=self.install_instructions(),
        )

    def install_instructions(self) -> str:
        """Human-readable installation guide for display in the UI."""
        return INSTALL_INSTRUCTIONS
