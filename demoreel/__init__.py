"""Shared review tool for demo recordings: waveform track data, storage and API."""

__version__ = "0.1.0"
