from __future__ import annotations

import ctypes
import logging
import os
import sys

_LOGGER = logging.getLogger(__name__)


def is_elevated() -> bool:
    """Whether the current process can compact disk images (Administrator on Windows, root elsewhere)."""
    if sys.platform == "win32":
        try:
            return bool(ctypes.windll.shell32.IsUserAnAdmin())
        except (AttributeError, OSError) as e:
            _LOGGER.debug("Could not determine elevation: %s", e)
            return False
    return os.geteuid() == 0
