"""
Process environment — fixed search path and the connectivity precondition.

Every command is launched with the inherited environment but a fixed
``PATH``, so ``brew``/``mas`` resolve the same way whether brewpipe was
started from a login shell, launchd, or a test runner.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess

from brewpipe.core.models.settings import DEFAULT_SEARCH_PATH

logger = logging.getLogger(__name__)

_PING_TARGET = "8.8.8.8"


def make_environment(search_path: str = DEFAULT_SEARCH_PATH) -> dict[str, str]:
    """Inherited environment with PATH replaced by ``search_path``."""
    env = os.environ.copy()
    env["PATH"] = search_path
    return env


def is_connected(timeout: int = 3) -> bool:
    """Single ping to a public resolver. Missing ping counts as connected."""
    ping = shutil.which("ping")
    if ping is None:
        logger.debug("ping not available, assuming connectivity")
        return True
    try:
        result = subprocess.run(
            [ping, "-c", "1", _PING_TARGET],
            capture_output=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        return False
    except OSError as e:
        logger.debug("Connectivity probe failed to start: %s", e)
        return True
    return result.returncode == 0


def disk_free_bytes(path: str = "/") -> int:
    """Free bytes on the filesystem holding ``path`` (0 if unknown)."""
    try:
        return shutil.disk_usage(path).free
    except OSError:
        return 0
