#!/usr/bin/env python3
"""Human-readable rendering of images and run summaries."""

from __future__ import annotations

import humanfriendly

from vhdcompact.models import RunSummary, VirtualDiskImage


def format_bytes(num_bytes: int) -> str:
    return humanfriendly.format_size(num_bytes, binary=True)


def format_delta(num_bytes: int) -> str:
    """Signed size; a negative value means the image grew."""
    if num_bytes < 0:
        return f"-{format_bytes(-num_bytes)}"
    return format_bytes(num_bytes)


def format_image_line(image: VirtualDiskImage) -> str:
    return (
        f"{image.label}: {image.path} "
        f"({format_bytes(image.size_bytes_before)}, modified {image.last_modified:%Y-%m-%d %H:%M})"
    )


def format_summary_lines(summary: RunSummary) -> list[str]:
    lines = [f"Compacted {summary.succeeded}/{summary.total_images} image(s), {summary.failed} failed"]
    for outcome in summary.outcomes:
        if outcome.succeeded:
            lines.append(
                f"  {outcome.image.label} [{outcome.method_used.value}]: "
                f"{format_bytes(outcome.image.size_bytes_before)} -> {format_bytes(outcome.size_bytes_after or 0)} "
                f"({format_delta(outcome.bytes_recovered)} recovered)"
            )
        else:
            lines.append(f"  {outcome.image.label} [failed]: {outcome.failure_detail}")
    lines.append(f"Total space recovered: {format_delta(summary.bytes_recovered)}")
    return lines
