"""Best-effort cleanup of helper processes left behind by a crashed run."""
import os
import re
from abc import ABC, abstractmethod
from typing import Iterable, List, Set
from ytscribe.utils.logger import logger

import psutil

HELPER_PATTERNS = (
    re.compile(r"(^|[/\s])yt[-_]dlp(\s|$)"),
    re.compile(r"-m\s+yt_dlp\b"),
    re.compile(r"-m\s+whisper\b"),
    re.compile(r"(^|/)whisper(\s|$)"),
    re.compile(r"\bmlx_whisper\b"),
    re.compile(r"\bpyannote\b"),
)
TERMINATE_GRACE_SECONDS = 5.0


def matches_helper(cmdline: str) -> bool:
    return any(p.search(cmdline) for p in HELPER_PATTERNS)


class ProcessReaper(ABC):
    @abstractmethod
    def sweep(self) -> int:
        """Kill orphaned helpers; return how many were signalled. Never raises."""
        pass


class NullReaper(ProcessReaper):
    """Used when the startup sweep is disabled."""

    def sweep(self) -> int:
        return 0


class PsutilReaper(ProcessReaper):
    def __init__(self, grace: float = TERMINATE_GRACE_SECONDS):
        self.grace = grace

    def _protected_pids(self) -> Set[int]:
        me = psutil.Process(os.getpid())
        pids = {me.pid}
        try:
            pids.update(p.pid for p in me.parents())
        except psutil.Error:
            pass
        return pids

    def find_orphans(self) -> List["psutil.Process"]:
        protected = self._protected_pids()
        try:
            user = psutil.Process(os.getpid()).username()
        except psutil.Error:
            user = None

        found = []
        for proc in psutil.process_iter(["pid", "name", "cmdline", "username"]):
            info = proc.info
            if info["pid"] in protected:
                continue
            if user and info.get("username") and info["username"] != user:
                continue
            cmdline = " ".join(info.get("cmdline") or []) or (info.get("name") or "")
            if matches_helper(cmdline):
                found.append(proc)
        return found

    def _terminate(self, procs: Iterable["psutil.Process"]) -> int:
        signalled = []
        for proc in procs:
            try:
                logger.info(f"Terminating orphaned helper pid={proc.pid}: {' '.join(proc.info.get('cmdline') or [])[:120]}")
                proc.terminate()
                signalled.append(proc)
            except psutil.Error as e:
                logger.debug(f"Could not terminate pid={proc.pid}: {e}")
        _, alive = psutil.wait_procs(signalled, timeout=self.grace)
        for proc in alive:
            try:
                proc.kill()
            except psutil.Error as e:
                logger.debug(f"Could not kill pid={proc.pid}: {e}")
        return len(signalled)

    def sweep(self) -> int:
        try:
            orphans = self.find_orphans()
            if not orphans:
                logger.debug("No orphaned helper processes found")
                return 0
            return self._terminate(orphans)
        except Exception as e:
            logger.warning(f"Orphan process sweep skipped: {e}")
            return 0


def default_reaper(enabled: bool = True) -> ProcessReaper:
    return PsutilReaper() if enabled else NullReaper()
