"""
Descendant process discovery.

Signals are broadcast by enumerating the supervisor's descendant tree rather
than by process group, because process groups interfere with TTY ownership
detection in descendant processes.
"""
import os
import re
import sys
import logging
import subprocess
from typing import Dict, Iterable, List, Optional, Set, Tuple

import psutil

log = logging.getLogger(__name__)

ProcPair = Tuple[int, int]  # (pid, ppid)

RE_PS_LINE = re.compile(r"^\s*(-?\d+)\s+(-?\d+)\s*$")


#* --- Pure Helpers ---
def ps_output_to_pairs(output: str) -> List[ProcPair]:
    """
    Parses `ps -eo pid=,ppid=` output into (pid, ppid) pairs.
    Lines that don't consist of exactly two integers (headers, garbage) are skipped.
    """
    pairs = []
    for line in output.splitlines():
        match = RE_PS_LINE.match(line)
        if match:
            pairs.append((int(match.group(1)), int(match.group(2))))
    return pairs


def pairs_to_index(pairs: Iterable[ProcPair]) -> Dict[int, List[int]]:
    """Builds a parent -> children adjacency map."""
    index: Dict[int, List[int]] = {}
    for pid, ppid in pairs:
        index.setdefault(ppid, []).append(pid)
    return index


def descendants_from_index(index: Dict[int, List[int]], top_pid: int, skip_pid: int = 0) -> List[int]:
    """
    Returns every pid transitively descended from `top_pid`, sorted descending.

    `skip_pid` and its own subtree are left out. The visited set guards against
    cyclic data from a listing taken while processes come and go.

    :param index: Parent -> children map.
    :param top_pid: Root of the traversal, not included in the result.
    :param skip_pid: A pid to exclude, typically a helper spawned for the listing.
    :return list: Descendant pids, highest first.
    """
    found: Set[int] = set()
    stack = [pid for pid in index.get(top_pid, []) if pid != skip_pid]
    while stack:
        pid = stack.pop()
        if pid in found or pid == top_pid:
            continue
        found.add(pid)
        stack.extend(child for child in index.get(pid, []) if child != skip_pid)
    return sorted(found, reverse=True)


def status_to_ppid(status: str) -> int:
    """Extracts the parent pid from the contents of `/proc/<pid>/status`; 0 if absent."""
    for line in status.splitlines():
        if line.startswith(("PPid:", "Ppid:")):
            try:
                return int(line.split(":", 1)[1].strip())
            except ValueError:
                return 0
    return 0


#* --- Listing Strategies ---
class ProcessLister:
    """Produces a full (pid, ppid) listing of the OS process table."""
    name = "abstract"

    def __init__(self) -> None:
        # Pid of a helper process spawned by the last listing, if any.
        self.helper_pid = 0

    def list_pairs(self) -> List[ProcPair]:
        raise NotImplementedError


class ProcFsLister(ProcessLister):
    """Linux: scans the `/proc` virtual filesystem."""
    name = "procfs"

    def __init__(self, root: str = "/proc") -> None:
        super().__init__()
        self.root = root

    def list_pairs(self) -> List[ProcPair]:
        pairs = []
        for entry in os.scandir(self.root):
            if not entry.name.isdigit():
                continue
            try:
                with open(os.path.join(entry.path, "status"), "r") as f:
                    ppid = status_to_ppid(f.read())
            except OSError:
                # Process terminated between listing and reading.
                continue
            if ppid:
                pairs.append((int(entry.name), ppid))
        return pairs


class PsutilLister(ProcessLister):
    """Reads the kernel process table through psutil (sysctl on macOS/BSD)."""
    name = "psutil"

    def list_pairs(self) -> List[ProcPair]:
        pairs = []
        for proc in psutil.process_iter(["pid", "ppid"]):
            ppid = proc.info.get("ppid")
            if ppid:
                pairs.append((proc.info["pid"], ppid))
        return pairs


class PsLister(ProcessLister):
    """Portable fallback: shells out to `ps` and parses its output."""
    name = "ps"

    def list_pairs(self) -> List[ProcPair]:
        proc = subprocess.Popen(
            ["ps", "-eo", "pid=,ppid="],
            stdin=subprocess.DEVNULL, stdout=subprocess.PIPE, stderr=subprocess.DEVNULL,
        )
        self.helper_pid = proc.pid
        output, _ = proc.communicate()
        if proc.returncode != 0:
            raise RuntimeError(f"unable to invoke 'ps' to get subprocess pids: exit code {proc.returncode}")
        return ps_output_to_pairs(output.decode("utf-8", errors="replace"))


LISTERS = {
    "procfs": ProcFsLister,
    "psutil": PsutilLister,
    "ps": PsLister,
}


def native_lister_name(platform: str = sys.platform) -> str:
    """Returns the name of the preferred lister for a platform."""
    if platform.startswith("linux"):
        return "procfs"
    if platform == "darwin" or "bsd" in platform or platform.startswith("dragonfly"):
        return "psutil"
    return "ps"


class DescendantFinder:
    """
    Finds the descendant pids of a process using a primary listing strategy,
    falling back on `ps` if the primary one fails for any reason.
    """

    def __init__(self, primary: ProcessLister, fallback: Optional[ProcessLister] = None, verbose: bool = False):
        self.primary = primary
        self.fallback = fallback
        self.verbose = verbose

    @classmethod
    def from_name(cls, name: str = "auto", verbose: bool = False) -> "DescendantFinder":
        """
        Builds a finder for a configured lister name.

        :param name: One of 'auto', 'procfs', 'psutil', 'ps'.
        :param verbose: Whether fallbacks are reported at INFO level.
        """
        if name == "auto":
            name = native_lister_name()
        primary = LISTERS[name]()
        fallback = None if name == "ps" else PsLister()
        return cls(primary, fallback, verbose)

    def descendants(self, top_pid: int) -> List[int]:
        """
        Returns all pids transitively descended from `top_pid`, sorted descending.

        :raises Exception: Only when the fallback lister fails too.
        """
        try:
            return self._descendants_via(self.primary, top_pid)
        except Exception as e:
            if self.fallback is None:
                raise
            message = f"unable to list processes via {self.primary.name!r}, falling back on {self.fallback.name!r}: {e}"
            if self.verbose:
                log.info(message)
            else:
                log.debug(message)
        return self._descendants_via(self.fallback, top_pid)

    @staticmethod
    def _descendants_via(lister: ProcessLister, top_pid: int) -> List[int]:
        lister.helper_pid = 0
        pairs = lister.list_pairs()
        return descendants_from_index(pairs_to_index(pairs), top_pid, lister.helper_pid)
