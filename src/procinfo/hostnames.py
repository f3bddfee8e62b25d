"""Host name resolution for procinfo."""

import logging
import socket
import sys
from collections.abc import Callable
from enum import Enum

from procinfo.models import HostNames

logger = logging.getLogger(__name__)

MAX_COMPUTERNAME_LENGTH = 15
INITIAL_BUFFER_SIZE = MAX_COMPUTERNAME_LENGTH + 1
ERROR_MORE_DATA = 234


class NameFormat(Enum):
    """Name forms, valued as Windows COMPUTER_NAME_FORMAT members."""

    HOSTNAME = 1  # ComputerNameDnsHostname
    DOMAIN = 2  # ComputerNameDnsDomain
    FQDN = 3  # ComputerNameDnsFullyQualified
    LOCAL_FQDN = 7  # ComputerNamePhysicalDnsFullyQualified


# A name query takes a format and a buffer size (in characters, including the
# terminator). It returns (name, size_used) on success, or (None, size_required)
# when the buffer is too small. Failures raise OSError.
NameQuery = Callable[[NameFormat, int], tuple[str | None, int]]


def windows_name_query(fmt: NameFormat, size: int) -> tuple[str | None, int]:
    """Query a host name through GetComputerNameExW."""
    import ctypes

    kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)
    buffer = ctypes.create_unicode_buffer(size)
    length = ctypes.c_ulong(size)  # DWORD
    if kernel32.GetComputerNameExW(fmt.value, buffer, ctypes.byref(length)):
        return buffer.value, length.value

    error = ctypes.get_last_error()
    if error == ERROR_MORE_DATA:
        return None, length.value
    raise ctypes.WinError(error)


def socket_name_query(fmt: NameFormat, size: int) -> tuple[str | None, int]:
    """
    Query a host name through the socket module.

    The physical name is derived from the node name the kernel reports, the
    DNS names from the resolver. Buffer semantics mirror the Windows call so
    callers handle both the same way.
    """
    if fmt is NameFormat.HOSTNAME:
        name = socket.gethostname().split(".", 1)[0]
    elif fmt is NameFormat.FQDN:
        name = socket.getfqdn()
    elif fmt is NameFormat.LOCAL_FQDN:
        name = socket.getfqdn(socket.gethostname())
    else:
        fqdn = socket.getfqdn()
        name = fqdn.partition(".")[2]

    required = len(name) + 1
    if required > size:
        return None, required
    return name, len(name)


def platform_name_query() -> NameQuery:
    """Return the name query for the running platform."""
    if sys.platform == "win32":
        return windows_name_query
    return socket_name_query


def resolve_host_name(fmt: NameFormat, query: NameQuery | None = None) -> str:
    """
    Resolve one host name form, best-effort.

    Starts from INITIAL_BUFFER_SIZE and retries once with the size the query
    reports as required. Any failure or empty result gives an empty string.
    """
    if query is None:
        query = platform_name_query()

    size = INITIAL_BUFFER_SIZE
    for _ in range(2):
        try:
            name, reported = query(fmt, size)
        except OSError as exc:
            logger.debug("Host name %s not resolved: %s", fmt.name, exc)
            return ""

        if name is not None:
            return name

        if reported <= size:
            break
        size = reported

    logger.debug("Host name %s did not fit a %d character buffer", fmt.name, size)
    return ""


def resolve_host_names(query: NameQuery | None = None) -> HostNames:
    """Resolve all four host name forms."""
    return HostNames(
        hostname=resolve_host_name(NameFormat.HOSTNAME, query),
        fqdn=resolve_host_name(NameFormat.FQDN, query),
        local_fqdn=resolve_host_name(NameFormat.LOCAL_FQDN, query),
        domain=resolve_host_name(NameFormat.DOMAIN, query),
    )
