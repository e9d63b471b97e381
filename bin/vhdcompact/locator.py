#!/usr/bin/env python3
"""Discovery of WSL virtual disk images on the host."""

from __future__ import annotations

import datetime
import logging
import os
from collections.abc import Iterable, Iterator
from pathlib import Path

from vhdcompact.config import DEFAULT_IMAGE_FILENAME
from vhdcompact.models import VirtualDiskImage

_LOGGER = logging.getLogger(__name__)


class ImageLocator:
    """Finds every file named like a WSL root image beneath a fixed set of roots.

    Roots that don't exist are skipped: not every host has every storage backend (e.g. no Docker
    Desktop). Unreadable subtrees are skipped individually so one locked-down directory doesn't
    hide images elsewhere.
    """

    def __init__(self, roots: Iterable[Path], image_filename: str = DEFAULT_IMAGE_FILENAME):
        self._roots = list(roots)
        self._image_filename = image_filename.casefold()

    @property
    def roots(self) -> list[Path]:
        return list(self._roots)

    def discover(self) -> list[VirtualDiskImage]:
        """Return images in discovery order. An empty list is not an error here."""
        images: list[VirtualDiskImage] = []
        seen: set[Path] = set()
        for root in self._roots:
            if not root.is_dir():
                _LOGGER.debug("Search root %s does not exist, skipping", root)
                continue
            _LOGGER.debug("Searching %s for %s", root, self._image_filename)
            for candidate in self._walk(root):
                key = _identity(candidate)
                if key in seen:
                    continue
                image = _describe(candidate.absolute())
                if image is None:
                    continue
                seen.add(key)
                images.append(image)
                _LOGGER.debug("Found %s (%d bytes)", image.path, image.size_bytes_before)
        return images

    def _walk(self, root: Path) -> Iterator[Path]:
        def _on_error(error: OSError) -> None:
            _LOGGER.debug("Skipping unreadable directory %s: %s", error.filename, error)

        for dirpath, _dirnames, filenames in os.walk(root, onerror=_on_error):
            for filename in filenames:
                if filename.casefold() == self._image_filename:
                    yield Path(dirpath) / filename


def _identity(path: Path) -> Path:
    """The canonical location of a file, so the same image reached through a link or `..` matches."""
    try:
        return path.resolve()
    except OSError:
        return path.absolute()


def _describe(path: Path) -> VirtualDiskImage | None:
    try:
        stat_result = path.stat()
    except OSError as e:
        _LOGGER.debug("Could not stat %s: %s", path, e)
        return None
    return VirtualDiskImage(
        path=path,
        size_bytes_before=stat_result.st_size,
        last_modified=datetime.datetime.fromtimestamp(stat_result.st_mtime),
        origin_directory=path.parent.name,
    )
