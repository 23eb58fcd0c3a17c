"""Transcript persistence."""
