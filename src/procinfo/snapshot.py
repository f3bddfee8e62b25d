"""Resource snapshot of the running process."""

import logging
import os
import sys
import time
from datetime import datetime, timedelta, timezone

import psutil

from procinfo.hostnames import NameQuery, resolve_host_names
from procinfo.models import HostNames, ProcessCounters

logger = logging.getLogger(__name__)

SNAPSHOT_KEYS = (
    "processId",
    "hostname",
    "fqdn",
    "domain",
    "localFqdn",
    "cpuHandles",
    "cpuThreads",
    "cpuCores",
    "memPeakWorkingSet",
    "memWorkingSet",
    "memPrivateBytes",
    "timeStartup",
    "timeCurrent",
    "uptime",
)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


class ProcessHandleError(RuntimeError):
    """Raised when the handle to the current process is unavailable."""


def _peak_rss_bytes() -> int:
    """Peak resident set size of the calling process."""
    import resource

    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss is bytes on macOS, kilobytes elsewhere
    if sys.platform == "darwin":
        return peak
    return peak * 1024


def read_memory_counters(process: psutil.Process) -> tuple[int, int, int]:
    """
    Read peak working set, working set and private bytes for the calling process.

    Values are in bytes. Windows reports all three directly. Elsewhere the
    working set is RSS, private bytes is USS and the peak comes from getrusage.
    """
    info = process.memory_info()
    if sys.platform == "win32":
        return info.peak_wset, info.wset, info.private

    working_set = info.rss
    peak = max(_peak_rss_bytes(), working_set)
    private = process.memory_full_info().uss
    return peak, working_set, private


def read_handle_count(process: psutil.Process) -> int:
    """Open handles on Windows, open file descriptors elsewhere."""
    if sys.platform == "win32":
        return process.num_handles()
    return process.num_fds()


def read_thread_count(pid: int) -> int:
    """
    Find the thread count of `pid` in the system-wide process inventory.

    Walks a fresh process_iter() until the pid matches. Returns 0 when the pid
    is not found, which cannot be told apart from a process with no threads.
    """
    for proc in psutil.process_iter(["pid", "num_threads"]):
        if proc.info["pid"] == pid:
            return proc.info["num_threads"] or 0
    return 0


class ProcessSnapshot:
    """
    Point-in-time resource snapshot of the running process.

    Identity facts (pid, logical cores, host names, startup time) are captured
    once at construction. Resource counters stay at zero until sample() is
    called and are replaced as a group on every call.

    sample() walks every process on the host. Call it from a low-priority
    background task, never from a hot path. The class does no locking: callers
    sharing an instance across threads must serialize sample() and reads.

    The instance owns a handle to the process; release it with close() or by
    using the snapshot as a context manager.
    """

    def __init__(self, name_resolver: NameQuery | None = None) -> None:
        """
        Initialize the ProcessSnapshot.

        Args:
            name_resolver: Host name query to use instead of the platform one.

        Raises:
            ProcessHandleError: If the current process cannot be opened.
        """
        self._handle: psutil.Process | None = None
        self._process_id = os.getpid()
        self._cpu_cores = psutil.cpu_count(logical=True) or 0

        try:
            self._handle = psutil.Process(self._process_id)
        except psutil.Error as exc:
            raise ProcessHandleError(f"Cannot open process {self._process_id}") from exc

        self._names = resolve_host_names(name_resolver)
        self._counters = ProcessCounters()
        self._startup_time = datetime.now(timezone.utc)
        self._startup_clock = time.monotonic()

        logger.info(
            "Opened process snapshot for pid %d on %s",
            self._process_id,
            self._names.fqdn or "<unknown host>",
        )

    def __enter__(self) -> "ProcessSnapshot":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __del__(self) -> None:
        self._release()

    @property
    def process_id(self) -> int:
        """Identifier of the process this snapshot describes."""
        return self._process_id

    @property
    def cpu_cores(self) -> int:
        """Logical processors visible at construction."""
        return self._cpu_cores

    @property
    def host_names(self) -> HostNames:
        return self._names

    @property
    def hostname(self) -> str:
        return self._names.hostname

    @property
    def fqdn(self) -> str:
        return self._names.fqdn

    @property
    def local_fqdn(self) -> str:
        return self._names.local_fqdn

    @property
    def domain(self) -> str:
        return self._names.domain

    @property
    def startup_time(self) -> datetime:
        """UTC construction time, the uptime epoch."""
        return self._startup_time

    @property
    def counters(self) -> ProcessCounters:
        """Counters from the most recent sample()."""
        return self._counters

    @property
    def handle_count(self) -> int:
        return self._counters.handle_count

    @property
    def thread_count(self) -> int:
        return self._counters.thread_count

    @property
    def peak_working_set(self) -> int:
        return self._counters.peak_working_set

    @property
    def working_set(self) -> int:
        return self._counters.working_set

    @property
    def private_bytes(self) -> int:
        return self._counters.private_bytes

    @property
    def closed(self) -> bool:
        """True once the process handle has been released."""
        return self._handle is None

    def sample(self) -> None:
        """
        Refresh memory, handle and thread counters.

        Each counter group is read independently. A group whose OS query fails
        keeps its previous values; the others still update. The new group is
        assigned in one step once every read has finished.

        Raises:
            ProcessHandleError: If the snapshot has been closed.
        """
        handle = self._handle
        if handle is None:
            raise ProcessHandleError(f"Snapshot for process {self._process_id} is closed")

        previous = self._counters
        peak_working_set = previous.peak_working_set
        working_set = previous.working_set
        private_bytes = previous.private_bytes
        handle_count = previous.handle_count
        thread_count = previous.thread_count

        try:
            peak, current, private = read_memory_counters(handle)
        except (psutil.Error, OSError) as exc:
            logger.debug("Memory counters unavailable: %s", exc)
        else:
            peak_working_set = peak // 1024
            working_set = current // 1024
            private_bytes = private // 1024

        try:
            handle_count = read_handle_count(handle)
        except (psutil.Error, OSError) as exc:
            logger.debug("Handle count unavailable: %s", exc)

        try:
            thread_count = read_thread_count(self._process_id)
        except (psutil.Error, OSError) as exc:
            logger.debug("Thread count unavailable: %s", exc)

        self._counters = ProcessCounters(
            handle_count=handle_count,
            thread_count=thread_count,
            peak_working_set=peak_working_set,
            working_set=working_set,
            private_bytes=private_bytes,
        )

    def uptime(self) -> timedelta:
        """
        Time elapsed since construction, measured on the monotonic clock.

        Never decreases, even when the wall clock steps; it may then differ
        from the gap between startup_time and the current wall-clock time.
        """
        return timedelta(seconds=time.monotonic() - self._startup_clock)

    def as_dict(self) -> dict[str, int | str]:
        """
        Flat record of every field, keyed as in SNAPSHOT_KEYS.

        timeCurrent and uptime are computed at call time; nothing else changes
        between calls unless sample() runs in between. uptime comes from the
        monotonic clock, so after a wall-clock step it no longer equals
        timeCurrent minus timeStartup.
        """
        counters = self._counters
        names = self._names
        return {
            "processId": self._process_id,
            "hostname": names.hostname,
            "fqdn": names.fqdn,
            "domain": names.domain,
            "localFqdn": names.local_fqdn,
            "cpuHandles": counters.handle_count,
            "cpuThreads": counters.thread_count,
            "cpuCores": self._cpu_cores,
            "memPeakWorkingSet": counters.peak_working_set,
            "memWorkingSet": counters.working_set,
            "memPrivateBytes": counters.private_bytes,
            "timeStartup": self._startup_time.strftime(TIMESTAMP_FORMAT),
            "timeCurrent": datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT),
            "uptime": self.uptime() // timedelta(microseconds=1),
        }

    def close(self) -> None:
        """Release the process handle. Safe to call more than once."""
        if self._release():
            logger.info("Closed process snapshot for pid %d", self._process_id)

    def _release(self) -> bool:
        """Drop the handle if held; returns True if this call released it."""
        if getattr(self, "_handle", None) is None:
            return False
        self._handle = None
        return True
