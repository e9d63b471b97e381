from __future__ import annotations

import datetime
from pathlib import Path

import pytest
from vhdcompact.compaction import TierResult
from vhdcompact.models import VirtualDiskImage

GB = 1024**3


def make_image(path: Path | str, size: int, origin: str | None = None) -> VirtualDiskImage:
    path = Path(path)
    return VirtualDiskImage(
        path=path,
        size_bytes_before=size,
        last_modified=datetime.datetime(2024, 1, 1, 12, 0),
        origin_directory=origin if origin is not None else path.parent.name,
    )


class FakeTier:
    """Stand-in for either compaction tier, recording every path it was asked to compact."""

    def __init__(self, *results: TierResult):
        self._results = list(results)
        self.calls: list[Path] = []

    def attempt(self, path: Path) -> TierResult:
        self.calls.append(path)
        if len(self._results) > 1:
            return self._results.pop(0)
        return self._results[0]


@pytest.fixture
def image_file(tmp_path):
    def _make(relative: str, size: int = 1024) -> Path:
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"\0" * size)
        return path

    return _make
