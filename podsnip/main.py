"""Command-line entry point for the transcription pipeline.

Lets the desktop shell (or a developer) check engine availability, run a
transcription with live progress, and print a stored transcript.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys

import click

from podsnip.engine.locator import EngineLocator
from podsnip.observability.logger import setup_logging
from podsnip.pipeline import TranscriptionPipeline
from podsnip.storage.sqlite_store import SQLiteTranscriptStore


def default_db_path() -> str:
    return os.environ.get(
        "PODSNIP_DB_PATH",
        os.path.join(os.path.expanduser("~"), ".podsnip", "podsnip.db"),
    )


def _format_timestamp(seconds: float) -> str:
    """Format seconds as [MM:SS]."""
    total_seconds = int(seconds)
    return f"[{total_seconds // 60:02d}:{total_seconds % 60:02d}]"


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Emit INFO-level JSON logs.")
def cli(verbose: bool) -> None:
    """Podsnip episode transcription with a local whisper.cpp engine."""
    setup_logging(logging.INFO if verbose else logging.WARNING)


@cli.command("check")
def check_cmd() -> None:
    """Report whether local transcription is available."""
    availability = EngineLocator().check_availability()
    if availability.available:
        click.echo("Local transcription is available.")
        return
    click.echo("Local transcription is not available.", err=True)
    click.echo(availability.instructions, err=True)
    sys.exit(1)


@cli.command("transcribe")
@click.argument("episode_id", type=int)
@click.argument("audio_url")
@click.option("--db", "db_path", default=None, help="Transcript database path.")
def transcribe_cmd(episode_id: int, audio_url: str, db_path: str | None) -> None:
    """Download, transcribe, and store an episode."""
    store = SQLiteTranscriptStore(db_path or default_db_path())
    pipeline = TranscriptionPipeline(store)

    def _progress(percent: int, stage: str) -> None:
        click.echo(f"{percent:3d}% {stage}")

    result = asyncio.run(pipeline.transcribe(episode_id, audio_url, _progress))

    if result.ok:
        if result.status == "already_transcribed":
            click.echo(f"Episode {episode_id} already has a transcript.")
        else:
            click.echo(
                f"Stored {result.segment_count} segments for episode {episode_id}."
            )
        return

    if result.error is not None:
        click.echo(
            f"Transcription {result.status}: {result.error.message}", err=True
        )
        if result.error.instructions:
            click.echo(result.error.instructions, err=True)
    else:
        click.echo(f"Transcription {result.status}", err=True)
    sys.exit(1)


@cli.command("show")
@click.argument("episode_id", type=int)
@click.option("--db", "db_path", default=None, help="Transcript database path.")
def show_cmd(episode_id: int, db_path: str | None) -> None:
    """Print a stored transcript."""
    store = SQLiteTranscriptStore(db_path or default_db_path())
    segments = store.get_transcript(episode_id)
    if not segments:
        click.echo(f"No transcript for episode {episode_id}.", err=True)
        sys.exit(1)
    for segment in segments:
        click.echo(f"{_format_timestamp(segment.start_time)} {segment.text}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
