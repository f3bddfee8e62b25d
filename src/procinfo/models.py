"""Data models for procinfo."""

from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class ProcessCounters:
    """Resource counters captured by a single sample."""

    handle_count: int = 0
    thread_count: int = 0
    peak_working_set: int = 0  # Kilobytes
    working_set: int = 0  # Kilobytes
    private_bytes: int = 0  # Kilobytes


@dataclass(slots=True, frozen=True)
class HostNames:
    """Host identity resolved once per snapshot."""

    hostname: str = ""
    fqdn: str = ""
    local_fqdn: str = ""
    domain: str = ""
