#!/usr/bin/env python3
"""Sequencing of a single compaction run.

A run moves strictly forward through :class:`RunState`; any fatal condition jumps to ``ABORTED``
and the run is over. There is no resume: make a new Orchestrator to try again.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from vhdcompact.accounting import OutcomeAccountant
from vhdcompact.compaction import CompactionEngine, DiskpartCompactor, NativeCompactor
from vhdcompact.config import Config
from vhdcompact.formatting import format_bytes, format_delta, format_summary_lines
from vhdcompact.guest import GuestController
from vhdcompact.locator import ImageLocator
from vhdcompact.logging_setup import SUCCESS, log_success
from vhdcompact.models import RunSummary

_LOGGER = logging.getLogger(__name__)


class RunState(Enum):
    IDLE = "idle"
    PRIVILEGE_CHECKED = "privilege-checked"
    CONSENT_OBTAINED = "consent-obtained"
    GUEST_QUIESCED = "guest-quiesced"
    IMAGES_DISCOVERED = "images-discovered"
    COMPACTING = "compacting"
    REPORTED = "reported"
    ABORTED = "aborted"


class RunAborted(RuntimeError):
    pass


@dataclass(frozen=True)
class RunResult:
    state: RunState
    summary: RunSummary | None = None
    abort_reason: str | None = None

    @property
    def exit_code(self) -> int:
        if self.state is RunState.REPORTED and self.summary is not None and not self.summary.all_failed:
            return 0
        return 1


def build_engine(config: Config) -> CompactionEngine:
    native = NativeCompactor(config.compaction.powershell_executable) if config.compaction.native_enabled else None
    return CompactionEngine(fallback=DiskpartCompactor(config.compaction.diskpart_executable), native=native)


class Orchestrator:
    def __init__(
        self,
        config: Config,
        *,
        is_elevated: Callable[[], bool],
        request_consent: Callable[[], bool],
        force: bool = False,
        guest: GuestController | None = None,
        locator: ImageLocator | None = None,
        engine: CompactionEngine | None = None,
        accountant: OutcomeAccountant | None = None,
    ):
        self._is_elevated = is_elevated
        self._request_consent = request_consent
        self._force = force
        self._guest = guest or GuestController(
            wsl_executable=config.guest.wsl_executable,
            shutdown_grace_seconds=config.guest.shutdown_grace_seconds,
        )
        self._locator = locator or ImageLocator(
            config.resolved_search_roots(), image_filename=config.discovery.image_filename
        )
        self._engine = engine or build_engine(config)
        self._accountant = accountant or OutcomeAccountant()
        self._state = RunState.IDLE

    @property
    def state(self) -> RunState:
        return self._state

    def run(self) -> RunResult:
        if self._state is not RunState.IDLE:
            raise RuntimeError(f"Orchestrator already ran (state {self._state.value})")
        try:
            summary = self._run()
        except RunAborted as e:
            _LOGGER.error("%s", e)
            self._state = RunState.ABORTED
            return RunResult(state=RunState.ABORTED, abort_reason=str(e))
        return RunResult(state=self._state, summary=summary)

    def _run(self) -> RunSummary:
        if not self._is_elevated():
            raise RunAborted("Administrator privileges are required. Re-run from an elevated prompt.")
        self._state = RunState.PRIVILEGE_CHECKED

        if self._force:
            _LOGGER.info("Skipping confirmation (--force)")
        elif not self._request_consent():
            raise RunAborted("Operation cancelled by user")
        self._state = RunState.CONSENT_OBTAINED

        _LOGGER.info("Checking WSL status")
        if not self._guest.query_status():
            raise RunAborted("WSL is not reachable, cannot make sure the disk images are released")
        _LOGGER.info("Shutting down all WSL distributions")
        if not self._guest.shutdown_all():
            raise RunAborted("Failed to shut down WSL, not compacting images that may still be in use")
        self._state = RunState.GUEST_QUIESCED
        log_success(_LOGGER, "WSL shut down")

        _LOGGER.info("Searching for disk images in %s", ", ".join(str(root) for root in self._locator.roots))
        images = self._locator.discover()
        if not images:
            raise RunAborted("No WSL disk images found")
        self._state = RunState.IMAGES_DISCOVERED
        _LOGGER.info(
            "Found %d image(s) totalling %s",
            len(images),
            format_bytes(sum(image.size_bytes_before for image in images)),
        )

        self._state = RunState.COMPACTING
        for index, image in enumerate(images, start=1):
            _LOGGER.info("[%d/%d] %s (%s)", index, len(images), image.path, format_bytes(image.size_bytes_before))
            outcome = self._accountant.record(self._engine.compact(image))
            if outcome.succeeded:
                log_success(
                    _LOGGER,
                    "Compacted %s via %s: %s -> %s (%s recovered)",
                    image.path,
                    outcome.method_used.value,
                    format_bytes(image.size_bytes_before),
                    format_bytes(outcome.size_bytes_after),
                    format_delta(outcome.bytes_recovered),
                )
            else:
                _LOGGER.error("Failed to compact %s: %s", image.path, outcome.failure_detail)

        summary = self._accountant.finalize()
        self._state = RunState.REPORTED
        if summary.all_failed:
            report_level = logging.ERROR
        elif summary.failed:
            report_level = logging.WARNING
        else:
            report_level = SUCCESS
        for line in format_summary_lines(summary):
            _LOGGER.log(report_level, "%s", line)
        return summary
