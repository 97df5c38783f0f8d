"""Finding and stopping other running sync processes."""

import logging
import os
from pathlib import Path

import psutil

logger = logging.getLogger(__name__)

PROGRAM_NAMES = ("bazarr-sync", "bazarr_sync")
SHORT_NAMES = ("bs",)  # Matched on the executable name only
SYNC_WORDS = ("sync", "s", "movies", "shows", "show", "tv", "series", "schedule", "--schedule")
CANCEL_WORDS = ("cancel", "stop", "c")


def is_sync_process(cmdline: list[str]) -> bool:
    """Whether a command line belongs to a running bazarr-sync job."""
    if not cmdline:
        return False
    joined = " ".join(cmdline)
    if not any(name in joined for name in PROGRAM_NAMES) and not any(
        Path(arg).name in SHORT_NAMES for arg in cmdline[:2]
    ):
        return False
    if any(word in cmdline for word in CANCEL_WORDS):
        return False
    return any(word in cmdline[1:] for word in SYNC_WORDS)


def find_sync_processes() -> list[psutil.Process]:
    """Running bazarr-sync jobs other than this process."""
    own_pid = os.getpid()
    found = []
    for proc in psutil.process_iter(["pid", "cmdline"]):
        try:
            if proc.info["pid"] == own_pid:
                continue
            if is_sync_process(proc.info["cmdline"] or []):
                found.append(proc)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    return found


def cancel_running_syncs() -> list[int]:
    """Send SIGTERM to every running sync job. Returns the signalled pids."""
    cancelled = []
    for proc in find_sync_processes():
        try:
            proc.terminate()
        except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
            logger.warning("Could not stop process %d: %s", proc.pid, e)
            continue
        cancelled.append(proc.pid)
    return cancelled
