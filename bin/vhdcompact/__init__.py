"""Reclaim host disk space held by WSL2 virtual disk images."""

__version__ = "1.0.0"
