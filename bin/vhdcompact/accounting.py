#!/usr/bin/env python3
"""Before/after size accounting for a compaction run."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable
from pathlib import Path

from vhdcompact.models import CompactionOutcome, RunSummary

_LOGGER = logging.getLogger(__name__)


class OutcomeAccountant:
    """Folds per-image outcomes into a RunSummary.

    The size after compaction always comes from a stat taken here, after the tiers have finished.
    """

    def __init__(self, measure_size: Callable[[Path], int] | None = None):
        self._measure_size = measure_size or _stat_size
        self._outcomes: list[CompactionOutcome] = []
        self._succeeded = 0
        self._failed = 0
        self._bytes_recovered = 0

    def record(self, outcome: CompactionOutcome) -> CompactionOutcome:
        """Measure (if it succeeded) and count an outcome. Returns the outcome as recorded."""
        if outcome.succeeded:
            try:
                size_after = self._measure_size(outcome.image.path)
            except OSError as e:
                _LOGGER.debug("Could not stat %s after compaction: %s", outcome.image.path, e)
                outcome = dataclasses.replace(
                    outcome,
                    succeeded=False,
                    size_bytes_after=None,
                    failure_detail=f"compaction reported success but the image could not be measured: {e}",
                )
            else:
                outcome = dataclasses.replace(outcome, size_bytes_after=size_after, failure_detail=None)

        if outcome.succeeded:
            self._succeeded += 1
            self._bytes_recovered += outcome.bytes_recovered
        else:
            self._failed += 1
        self._outcomes.append(outcome)
        return outcome

    def finalize(self) -> RunSummary:
        return RunSummary(
            total_images=len(self._outcomes),
            succeeded=self._succeeded,
            failed=self._failed,
            bytes_recovered=self._bytes_recovered,
            outcomes=tuple(self._outcomes),
        )


def _stat_size(path: Path) -> int:
    return path.stat().st_size
