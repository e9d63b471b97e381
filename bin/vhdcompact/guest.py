#!/usr/bin/env python3
"""Control of the WSL guest subsystem."""

from __future__ import annotations

import logging
import subprocess
import time
from collections.abc import Callable

from vhdcompact.config import DEFAULT_SHUTDOWN_GRACE_SECONDS

_LOGGER = logging.getLogger(__name__)


def decode_wsl_output(raw: bytes) -> str:
    """wsl.exe writes UTF-16LE to pipes; other tools (and tests) write UTF-8."""
    if not raw:
        return ""
    if raw.startswith(b"\xff\xfe") or (len(raw) > 1 and raw[1] == 0):
        return raw.decode("utf-16-le", errors="replace").lstrip("\ufeff")
    return raw.decode("utf-8", errors="replace")


class GuestController:
    """Queries and shuts down every WSL distribution so the image files are released."""

    def __init__(
        self,
        wsl_executable: str = "wsl.exe",
        shutdown_grace_seconds: float = DEFAULT_SHUTDOWN_GRACE_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._wsl = wsl_executable
        self._grace = shutdown_grace_seconds
        self._sleep = sleep

    def query_status(self) -> bool:
        """True if WSL answered a list-distributions query.

        That only means the subsystem is reachable, not that anything is running.
        """
        result = self._run("--list", "--quiet")
        if result is None:
            return False
        if result.returncode != 0:
            _LOGGER.error(
                "WSL status query failed with code %d: %s",
                result.returncode,
                decode_wsl_output(result.stderr or result.stdout).strip(),
            )
            return False
        distributions = [line.strip() for line in decode_wsl_output(result.stdout).splitlines() if line.strip()]
        _LOGGER.debug("WSL distributions: %s", ", ".join(distributions) or "(none)")
        return True

    def shutdown_all(self) -> bool:
        """Shut down every distribution and the WSL VM, then wait for the grace period."""
        result = self._run("--shutdown")
        if result is None:
            return False
        if result.returncode != 0:
            _LOGGER.error(
                "WSL shutdown failed with code %d: %s",
                result.returncode,
                decode_wsl_output(result.stderr or result.stdout).strip(),
            )
            return False
        if self._grace > 0:
            _LOGGER.info("Waiting %gs for WSL to release its disk images", self._grace)
            self._sleep(self._grace)
        return True

    def _run(self, *args: str) -> subprocess.CompletedProcess | None:
        cmd = [self._wsl, *args]
        _LOGGER.debug("Running: %s", " ".join(cmd))
        try:
            return subprocess.run(cmd, capture_output=True, check=False)
        except FileNotFoundError:
            _LOGGER.error("%s not found - is WSL installed?", self._wsl)
            return None
