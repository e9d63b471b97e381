#!/usr/bin/env python3
"""Tests for human-readable output."""

from __future__ import annotations

from vhdcompact.formatting import format_delta, format_image_line, format_summary_lines
from vhdcompact.models import CompactionMethod, CompactionOutcome, RunSummary

from conftest import GB, make_image


def test_format_delta():
    assert format_delta(2 * GB) == "2 GiB"
    assert format_delta(-2 * GB) == "-2 GiB"
    assert format_delta(0) == "0 bytes"


def test_format_image_line():
    line = format_image_line(make_image("/data/Ubuntu/ext4.vhdx", 3 * GB))
    assert line.startswith("Ubuntu/ext4.vhdx: ")
    assert "(3 GiB, modified 2024-01-01 12:00)" in line


def test_summary_lines():
    good = CompactionOutcome(
        image=make_image("/A/ext4.vhdx", 50 * GB),
        method_used=CompactionMethod.NATIVE,
        succeeded=True,
        size_bytes_after=20 * GB,
    )
    bad = CompactionOutcome(
        image=make_image("/B/ext4.vhdx", 10 * GB),
        method_used=CompactionMethod.FALLBACK,
        succeeded=False,
        failure_detail="diskpart exited with code 1: in use",
    )
    summary = RunSummary(total_images=2, succeeded=1, failed=1, bytes_recovered=30 * GB, outcomes=(good, bad))

    lines = format_summary_lines(summary)

    assert lines[0] == "Compacted 1/2 image(s), 1 failed"
    assert lines[1] == "  A/ext4.vhdx [native]: 50 GiB -> 20 GiB (30 GiB recovered)"
    assert lines[2] == "  B/ext4.vhdx [failed]: diskpart exited with code 1: in use"
    assert lines[-1] == "Total space recovered: 30 GiB"
