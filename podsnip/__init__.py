"""Podcast episode transcription pipeline backed by a local whisper.cpp engine."""
