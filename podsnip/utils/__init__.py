"""Shared helpers: errors and subprocess execution."""
