#!/usr/bin/env python3
"""Data models for compaction runs."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class CompactionMethod(Enum):
    NATIVE = "native"
    FALLBACK = "fallback"
    NONE = "none"


@dataclass(frozen=True)
class VirtualDiskImage:
    """One candidate disk image found during discovery."""

    path: Path
    size_bytes_before: int
    last_modified: datetime.datetime
    origin_directory: str  # name of the containing directory, for display only

    @property
    def label(self) -> str:
        return f"{self.origin_directory}/{self.path.name}"


@dataclass(frozen=True)
class CompactionOutcome:
    """Result of compacting one image, after every tier that ran has finished."""

    image: VirtualDiskImage
    method_used: CompactionMethod
    succeeded: bool
    size_bytes_after: int | None = None  # only ever set from a fresh stat of a succeeded image
    failure_detail: str | None = None

    @property
    def bytes_recovered(self) -> int:
        # Negative when the image grew; reported as-is.
        if not self.succeeded or self.size_bytes_after is None:
            return 0
        return self.image.size_bytes_before - self.size_bytes_after


@dataclass(frozen=True)
class RunSummary:
    """Aggregate over every outcome in a run."""

    total_images: int
    succeeded: int
    failed: int
    bytes_recovered: int
    outcomes: tuple[CompactionOutcome, ...] = field(default_factory=tuple)

    @property
    def all_failed(self) -> bool:
        return self.total_images > 0 and self.succeeded == 0
