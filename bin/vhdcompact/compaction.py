#!/usr/bin/env python3
"""Two-tier compaction of virtual disk images.

The native tier asks the Hyper-V PowerShell module (``Optimize-VHD -Mode Full``) to do the work.
That module is missing on Windows Home editions and anywhere Hyper-V management tools aren't
installed, so a tier that reports itself unavailable (or fails) drops through to the fallback tier,
which drives ``diskpart`` with a generated script. Either tier succeeding ends the attempt; the
fallback failing is final for that image.
"""

from __future__ import annotations

import logging
import os
import subprocess
import sys
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from vhdcompact.models import CompactionMethod, CompactionOutcome, VirtualDiskImage

_LOGGER = logging.getLogger(__name__)

# Exit code our PowerShell snippet uses to say "Optimize-VHD isn't installed here".
NATIVE_UNAVAILABLE_EXIT_CODE = 3

# diskpart writes in the console OEM code page.
CONSOLE_ENCODING = "oem" if sys.platform == "win32" else "utf-8"


class TierStatus(Enum):
    UNAVAILABLE = "unavailable"
    FAILED = "failed"
    SUCCEEDED = "succeeded"


@dataclass(frozen=True)
class TierResult:
    """What a single compaction tier reports back."""

    status: TierStatus
    detail: str = ""

    @classmethod
    def succeeded(cls) -> TierResult:
        return cls(TierStatus.SUCCEEDED)

    @classmethod
    def failed(cls, detail: str) -> TierResult:
        return cls(TierStatus.FAILED, detail)

    @classmethod
    def unavailable(cls, detail: str) -> TierResult:
        return cls(TierStatus.UNAVAILABLE, detail)


def _powershell_quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def build_native_command(path: Path) -> str:
    return (
        f"if (-not (Get-Command Optimize-VHD -ErrorAction SilentlyContinue)) "
        f"{{ exit {NATIVE_UNAVAILABLE_EXIT_CODE} }}; "
        f"Optimize-VHD -Path {_powershell_quote(str(path))} -Mode Full -ErrorAction Stop"
    )


def build_diskpart_script(path: Path) -> str:
    """The diskpart script that compacts a single image; one command per line."""
    lines = [
        f'select vdisk file="{path.absolute()}"',
        "attach vdisk readonly",
        "compact vdisk",
        "detach vdisk",
        "exit",
    ]
    return "\n".join(lines) + "\n"


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace").strip()


def _decode_console(raw: bytes) -> str:
    return raw.decode(CONSOLE_ENCODING, errors="replace").strip()


class NativeCompactor:
    """Compacts through ``Optimize-VHD``. Either fully succeeds or leaves the image untouched."""

    def __init__(self, powershell_executable: str = "powershell.exe"):
        self._powershell = powershell_executable

    def attempt(self, path: Path) -> TierResult:
        cmd = [
            self._powershell,
            "-NoProfile",
            "-NonInteractive",
            "-Command",
            build_native_command(path),
        ]
        _LOGGER.debug("Running: %s", " ".join(cmd))
        try:
            result = subprocess.run(cmd, capture_output=True, check=False)
        except FileNotFoundError:
            return TierResult.unavailable(f"{self._powershell} not found")
        except OSError as e:
            return TierResult.failed(f"could not run {self._powershell}: {e}")

        if result.returncode == 0:
            return TierResult.succeeded()
        if result.returncode == NATIVE_UNAVAILABLE_EXIT_CODE:
            return TierResult.unavailable("Optimize-VHD is not installed (Hyper-V PowerShell module missing)")
        error_text = _decode(result.stderr) or _decode(result.stdout)
        return TierResult.failed(f"Optimize-VHD exited with code {result.returncode}: {error_text}")


class DiskpartCompactor:
    """Compacts by running a generated script through ``diskpart /s``.

    The script and both captured output streams live in temporary files that are removed however
    the attempt ends.
    """

    def __init__(self, diskpart_executable: str = "diskpart.exe", temp_dir: Path | None = None):
        self._diskpart = diskpart_executable
        self._temp_dir = temp_dir

    def attempt(self, path: Path) -> TierResult:
        temp_files: list[Path] = []
        try:
            try:
                script_path = self._write_script(path, temp_files)
                stdout_path = self._new_temp_file("stdout", temp_files)
                stderr_path = self._new_temp_file("stderr", temp_files)
            except OSError as e:
                return TierResult.failed(f"could not prepare diskpart script: {e}")

            cmd = [self._diskpart, "/s", str(script_path)]
            _LOGGER.debug("Running: %s", " ".join(cmd))
            try:
                with stdout_path.open("wb") as stdout_file, stderr_path.open("wb") as stderr_file:
                    result = subprocess.run(cmd, stdout=stdout_file, stderr=stderr_file, check=False)
            except FileNotFoundError:
                return TierResult.failed(f"{self._diskpart} not found")
            except OSError as e:
                return TierResult.failed(f"could not run {self._diskpart}: {e}")

            try:
                stdout_text = _decode_console(stdout_path.read_bytes())
                stderr_text = _decode_console(stderr_path.read_bytes())
            except OSError as e:
                _LOGGER.debug("Could not read diskpart output: %s", e)
                stdout_text = stderr_text = f"(output unavailable: {e})"

            if result.returncode == 0:
                _LOGGER.debug("diskpart output:\n%s", stdout_text)
                return TierResult.succeeded()

            # diskpart reports most of its errors on stdout, so use that if stderr is empty.
            return TierResult.failed(f"diskpart exited with code {result.returncode}: {stderr_text or stdout_text}")
        finally:
            for temp_file in temp_files:
                _remove_quietly(temp_file)

    def _write_script(self, path: Path, temp_files: list[Path]) -> Path:
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            newline="\r\n",
            prefix="vhd-compact-",
            suffix=".txt",
            dir=self._temp_dir,
            delete=False,
        ) as script_file:
            temp_files.append(Path(script_file.name))
            script_file.write(build_diskpart_script(path))
        return Path(script_file.name)

    def _new_temp_file(self, stream: str, temp_files: list[Path]) -> Path:
        fd, name = tempfile.mkstemp(prefix=f"vhd-compact-{stream}-", suffix=".log", dir=self._temp_dir)
        temp_files.append(Path(name))
        os.close(fd)
        return Path(name)


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        _LOGGER.debug("Could not remove temporary file %s: %s", path, e)


class CompactionEngine:
    """Runs the native tier, then the fallback tier if the native one didn't succeed."""

    def __init__(self, fallback: DiskpartCompactor, native: NativeCompactor | None = None):
        self._fallback = fallback
        self._native = native

    def compact(self, image: VirtualDiskImage) -> CompactionOutcome:
        if self._native is None:
            _LOGGER.debug("Native compaction disabled, using diskpart for %s", image.path)
        else:
            _LOGGER.info("Compacting %s with Optimize-VHD", image.path)
            native_result = self._native.attempt(image.path)
            match native_result.status:
                case TierStatus.SUCCEEDED:
                    return CompactionOutcome(image=image, method_used=CompactionMethod.NATIVE, succeeded=True)
                case TierStatus.UNAVAILABLE:
                    _LOGGER.warning("Native compaction unavailable: %s. Falling back to diskpart", native_result.detail)
                case TierStatus.FAILED:
                    _LOGGER.warning(
                        "Native compaction of %s failed: %s. Falling back to diskpart", image.path, native_result.detail
                    )

        _LOGGER.info("Compacting %s with diskpart", image.path)
        fallback_result = self._fallback.attempt(image.path)
        if fallback_result.status is TierStatus.SUCCEEDED:
            return CompactionOutcome(image=image, method_used=CompactionMethod.FALLBACK, succeeded=True)
        return CompactionOutcome(
            image=image,
            method_used=CompactionMethod.FALLBACK,
            succeeded=False,
            failure_detail=fallback_result.detail,
        )
