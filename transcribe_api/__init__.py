"""Streaming media transcription service."""

__version__ = "1.0.0"
