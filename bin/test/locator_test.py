#!/usr/bin/env python3
"""Tests for image discovery."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from vhdcompact.locator import ImageLocator


def test_finds_images_under_all_roots(tmp_path, image_file):
    first = image_file("packages/CanonicalGroupLimited.Ubuntu/LocalState/ext4.vhdx", size=4096)
    second = image_file("docker/wsl/main/ext4.vhdx", size=2048)
    image_file("packages/Other/LocalState/notes.txt")

    images = ImageLocator([tmp_path / "packages", tmp_path / "docker"]).discover()

    assert [image.path for image in images] == [first, second]
    assert images[0].size_bytes_before == 4096
    assert images[0].origin_directory == "LocalState"
    assert images[1].origin_directory == "main"
    assert images[1].label == "main/ext4.vhdx"


def test_missing_roots_are_skipped(tmp_path, image_file):
    found = image_file("present/ext4.vhdx")

    images = ImageLocator([tmp_path / "absent", tmp_path / "present"]).discover()

    assert [image.path for image in images] == [found]


def test_nothing_found_is_empty_not_error(tmp_path):
    (tmp_path / "empty").mkdir()
    assert ImageLocator([tmp_path / "empty", tmp_path / "missing"]).discover() == []


def test_no_roots(tmp_path):
    assert ImageLocator([]).discover() == []


def test_match_is_case_insensitive(tmp_path, image_file):
    found = image_file("distro/EXT4.VHDX")
    assert [image.path for image in ImageLocator([tmp_path]).discover()] == [found]


def test_overlapping_roots_report_each_file_once(tmp_path, image_file):
    found = image_file("outer/inner/ext4.vhdx")

    images = ImageLocator([tmp_path / "outer", tmp_path / "outer" / "inner"]).discover()

    assert [image.path for image in images] == [found]


def test_root_spelled_with_parent_reference_reports_file_once(tmp_path, image_file):
    found = image_file("outer/inner/ext4.vhdx")

    images = ImageLocator([tmp_path / "outer" / "inner", tmp_path / "outer" / "inner" / ".." / "inner"]).discover()

    assert [image.path for image in images] == [found]


def test_image_reached_through_symlink_reported_once(tmp_path, image_file):
    found = image_file("real/ext4.vhdx")
    link = tmp_path / "linked"
    try:
        link.symlink_to(tmp_path / "real", target_is_directory=True)
    except (OSError, NotImplementedError):
        pytest.skip("symlinks not supported here")

    images = ImageLocator([tmp_path / "real", link]).discover()

    assert [image.path for image in images] == [found]


def test_custom_filename(tmp_path, image_file):
    found = image_file("vm/disk.vhdx")
    image_file("vm/ext4.vhdx")

    images = ImageLocator([tmp_path], image_filename="disk.vhdx").discover()

    assert [image.path for image in images] == [found]


@pytest.mark.skipif(sys.platform == "win32" or os.geteuid() == 0, reason="needs POSIX permissions as non-root")
def test_unreadable_subtree_does_not_stop_discovery(tmp_path, image_file):
    locked = tmp_path / "locked"
    image_file("locked/hidden/ext4.vhdx")
    found = image_file("open/ext4.vhdx")
    locked.chmod(0)
    try:
        images = ImageLocator([tmp_path]).discover()
    finally:
        locked.chmod(0o755)

    assert [image.path for image in images] == [found]


def test_file_vanishing_before_stat_is_skipped(tmp_path, image_file, monkeypatch):
    gone = image_file("a/ext4.vhdx")
    kept = image_file("b/ext4.vhdx")
    real_stat = Path.stat

    def flaky_stat(self, *args, **kwargs):
        if self == gone:
            raise FileNotFoundError(str(self))
        return real_stat(self, *args, **kwargs)

    monkeypatch.setattr(Path, "stat", flaky_stat)

    images = ImageLocator([tmp_path]).discover()

    assert [image.path for image in images] == [kept]
