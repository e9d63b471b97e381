#!/usr/bin/env python3
"""Configuration management for vhd-compact.

Handles loading configuration from a YAML file. The environment is only consulted for default
search roots and the default config location, when a run or a listing is set up.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

_LOGGER = logging.getLogger(__name__)

# Time allowed after `wsl --shutdown` returns for the VM process to let go of the image file.
# This is a heuristic: nothing checks the file is actually unlocked afterwards.
DEFAULT_SHUTDOWN_GRACE_SECONDS = 8.0

DEFAULT_IMAGE_FILENAME = "ext4.vhdx"


class DiscoveryConfig(BaseModel):
    """Where to look for virtual disk images."""

    # Empty means "derive from the environment" (see default_search_roots).
    search_roots: list[Path] = Field(default_factory=list)
    image_filename: str = DEFAULT_IMAGE_FILENAME

    model_config = ConfigDict(frozen=True, extra="forbid")


class GuestConfig(BaseModel):
    """How to talk to the WSL subsystem."""

    wsl_executable: str = "wsl.exe"
    shutdown_grace_seconds: float = Field(default=DEFAULT_SHUTDOWN_GRACE_SECONDS, ge=0)

    model_config = ConfigDict(frozen=True, extra="forbid")


class CompactionConfig(BaseModel):
    """Tools used by the two compaction tiers."""

    powershell_executable: str = "powershell.exe"
    diskpart_executable: str = "diskpart.exe"
    native_enabled: bool = True

    model_config = ConfigDict(frozen=True, extra="forbid")


class Config(BaseModel):
    """Main vhd-compact configuration."""

    discovery: DiscoveryConfig = DiscoveryConfig()
    guest: GuestConfig = GuestConfig()
    compaction: CompactionConfig = CompactionConfig()

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def load(cls, config_path: Path) -> Config:
        """Load configuration from config path.

        Args:
            config_path: Path to the configuration file

        Returns:
            Config instance with loaded values, or defaults if file doesn't exist

        Raises:
            ValidationError: If config contains invalid values or unknown keys
        """
        if not config_path.exists():
            _LOGGER.debug("Config file %s does not exist, using defaults", config_path)
            return cls()

        try:
            with config_path.open(encoding="utf-8") as config_file:
                config_data = yaml.safe_load(config_file)

            if config_data is None:
                _LOGGER.warning("Config file %s is empty, using defaults", config_path)
                return cls()

            return cls.model_validate(config_data)

        except ValidationError as e:
            _LOGGER.error("Invalid config in %s: %s", config_path, e)
            raise
        except Exception as e:
            _LOGGER.error("Failed to load config from %s: %s", config_path, e)
            raise

    def with_cli_overrides(
        self,
        search_roots: list[Path] | None = None,
        shutdown_grace_seconds: float | None = None,
        native_enabled: bool | None = None,
    ) -> Config:
        """Create a new Config with CLI overrides applied.

        Args:
            search_roots: Replace the configured search roots
            shutdown_grace_seconds: Override the wait after guest shutdown
            native_enabled: Enable or disable the native compaction tier

        Returns:
            New Config instance with overrides applied
        """
        config_dict = self.model_dump()
        if search_roots:
            config_dict["discovery"]["search_roots"] = list(search_roots)
            _LOGGER.debug("CLI override: search roots = %s", ", ".join(str(root) for root in search_roots))

        if shutdown_grace_seconds is not None:
            config_dict["guest"]["shutdown_grace_seconds"] = shutdown_grace_seconds
            _LOGGER.debug("CLI override: shutdown grace = %ss", shutdown_grace_seconds)

        if native_enabled is not None:
            config_dict["compaction"]["native_enabled"] = native_enabled
            _LOGGER.debug("CLI override: native compaction %s", "enabled" if native_enabled else "disabled")

        return self.__class__.model_validate(config_dict)

    def resolved_search_roots(self, environ: Mapping[str, str] | None = None) -> list[Path]:
        """The configured search roots, or the environment-derived defaults if none are configured."""
        if self.discovery.search_roots:
            return list(self.discovery.search_roots)
        return default_search_roots(os.environ if environ is None else environ)


def _env_path(value: str) -> Path:
    # Values are Windows paths; normalise separators when running anywhere else.
    return Path(value) if os.name == "nt" else Path(value.replace("\\", "/"))


def default_search_roots(environ: Mapping[str, str]) -> list[Path]:
    """Conventional locations of WSL images on a Windows host.

    Store-installed distributions live under ``%LOCALAPPDATA%\\Packages``, Docker Desktop keeps its
    data distributions under ``%LOCALAPPDATA%\\Docker`` and ``wsl --import`` defaults to
    ``%USERPROFILE%\\AppData\\Local\\wsl``. Unset variables contribute nothing.
    """
    roots: list[Path] = []
    if local_app_data := environ.get("LOCALAPPDATA"):
        roots.append(_env_path(local_app_data) / "Packages")
        roots.append(_env_path(local_app_data) / "Docker")
    if user_profile := environ.get("USERPROFILE"):
        roots.append(_env_path(user_profile) / "AppData" / "Local" / "wsl")
    return list(dict.fromkeys(roots))


def default_config_path(environ: Mapping[str, str]) -> Path:
    if app_data := environ.get("APPDATA"):
        return _env_path(app_data) / "vhd-compact" / "config.yaml"
    return Path.home() / ".config" / "vhd-compact" / "config.yaml"
