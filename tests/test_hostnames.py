"""Tests for host name resolution."""

import socket
from unittest.mock import patch

import pytest

from procinfo.hostnames import (
    ERROR_MORE_DATA,
    INITIAL_BUFFER_SIZE,
    NameFormat,
    platform_name_query,
    resolve_host_name,
    resolve_host_names,
    socket_name_query,
    windows_name_query,
)


class RecordingQuery:
    """Name query that answers from a table and records every call."""

    def __init__(self, names: dict[NameFormat, str]) -> None:
        self.names = names
        self.calls: list[tuple[NameFormat, int]] = []

    def __call__(self, fmt: NameFormat, size: int) -> tuple[str | None, int]:
        self.calls.append((fmt, size))
        name = self.names[fmt]
        if len(name) + 1 > size:
            return None, len(name) + 1
        return name, len(name)


class TestNameFormat:
    """Tests for NameFormat enum."""

    def test_name_format_values(self):
        """Test NameFormat values match COMPUTER_NAME_FORMAT."""
        assert NameFormat.HOSTNAME.value == 1
        assert NameFormat.DOMAIN.value == 2
        assert NameFormat.FQDN.value == 3
        assert NameFormat.LOCAL_FQDN.value == 7

    def test_name_format_members(self):
        """Test NameFormat has the four resolved forms."""
        assert len(list(NameFormat)) == 4


class TestResolveHostName:
    """Tests for resolve_host_name."""

    def test_short_name_fits_first_buffer(self):
        """Test a short name resolves without a retry."""
        query = RecordingQuery({NameFormat.HOSTNAME: "build01"})

        assert resolve_host_name(NameFormat.HOSTNAME, query) == "build01"
        assert query.calls == [(NameFormat.HOSTNAME, INITIAL_BUFFER_SIZE)]

    def test_long_name_retries_with_reported_size(self):
        """Test a name longer than the initial buffer is retried once."""
        fqdn = "build01.ci.example.internal"
        query = RecordingQuery({NameFormat.FQDN: fqdn})

        assert resolve_host_name(NameFormat.FQDN, query) == fqdn
        assert query.calls == [
            (NameFormat.FQDN, INITIAL_BUFFER_SIZE),
            (NameFormat.FQDN, len(fqdn) + 1),
        ]

    def test_retry_is_bounded_to_one(self):
        """Test a query that keeps asking for more space gives up after one retry."""
        calls = []

        def growing_query(fmt, size):
            calls.append(size)
            return None, size * 2

        assert resolve_host_name(NameFormat.FQDN, growing_query) == ""
        assert calls == [INITIAL_BUFFER_SIZE, INITIAL_BUFFER_SIZE * 2]

    def test_too_small_without_larger_size_gives_up(self):
        """Test no retry happens when the reported size is not larger."""
        calls = []

        def stuck_query(fmt, size):
            calls.append(size)
            return None, size

        assert resolve_host_name(NameFormat.DOMAIN, stuck_query) == ""
        assert calls == [INITIAL_BUFFER_SIZE]

    def test_os_error_gives_empty_string(self):
        """Test a failing query leaves the name empty."""

        def failing_query(fmt, size):
            raise OSError("no name service")

        assert resolve_host_name(NameFormat.HOSTNAME, failing_query) == ""

    def test_empty_result_gives_empty_string(self):
        """Test an empty name stays empty."""
        query = RecordingQuery({NameFormat.DOMAIN: ""})

        assert resolve_host_name(NameFormat.DOMAIN, query) == ""


class TestResolveHostNames:
    """Tests for resolve_host_names."""

    def test_all_forms_resolved(self):
        """Test each HostNames field comes from its own name form."""
        query = RecordingQuery(
            {
                NameFormat.HOSTNAME: "build01",
                NameFormat.FQDN: "build01.ci.example.internal",
                NameFormat.LOCAL_FQDN: "build01.local.example.internal",
                NameFormat.DOMAIN: "ci.example.internal",
            }
        )

        names = resolve_host_names(query)

        assert names.hostname == "build01"
        assert names.fqdn == "build01.ci.example.internal"
        assert names.local_fqdn == "build01.local.example.internal"
        assert names.domain == "ci.example.internal"

    def test_one_failure_does_not_affect_others(self):
        """Test forms are resolved independently."""

        def partial_query(fmt, size):
            if fmt is NameFormat.DOMAIN:
                raise OSError("not joined to a domain")
            return "node", 4

        names = resolve_host_names(partial_query)

        assert names.domain == ""
        assert names.hostname == "node"
        assert names.fqdn == "node"
        assert names.local_fqdn == "node"


class TestSocketNameQuery:
    """Tests for the socket-based name query."""

    def test_forms_from_socket(self):
        """Test each form is derived from the resolver."""
        with (
            patch("procinfo.hostnames.socket.gethostname", return_value="web1.example.org"),
            patch("procinfo.hostnames.socket.getfqdn", return_value="web1.example.org"),
        ):
            assert socket_name_query(NameFormat.HOSTNAME, 64) == ("web1", 4)
            assert socket_name_query(NameFormat.FQDN, 64) == ("web1.example.org", 16)
            assert socket_name_query(NameFormat.LOCAL_FQDN, 64) == ("web1.example.org", 16)
            assert socket_name_query(NameFormat.DOMAIN, 64) == ("example.org", 11)

    def test_reports_required_size(self):
        """Test a small buffer reports the size needed with the terminator."""
        with patch("procinfo.hostnames.socket.getfqdn", return_value="web1.example.org"):
            assert socket_name_query(NameFormat.FQDN, 8) == (None, 17)

    def test_resolves_live_host(self):
        """Test the live host's short name matches the socket module."""
        expected = socket.gethostname().split(".", 1)[0]

        assert resolve_host_name(NameFormat.HOSTNAME, socket_name_query) == expected

    def test_platform_query_off_windows(self):
        """Test non-Windows platforms use the socket query."""
        with patch("procinfo.hostnames.sys.platform", "linux"):
            assert platform_name_query() is socket_name_query

    def test_platform_query_on_windows(self):
        """Test Windows uses GetComputerNameExW."""
        with patch("procinfo.hostnames.sys.platform", "win32"):
            assert platform_name_query() is windows_name_query


class FakeKernel32:
    """Stand-in for kernel32 answering GetComputerNameExW from one name."""

    def __init__(self, name: str, error: int = 0) -> None:
        self.name = name
        self.error = error
        self.last_error = 0
        self.calls: list[tuple[int, int]] = []

    def GetComputerNameExW(self, fmt_value, buffer, length):
        self.calls.append((fmt_value, length.value))
        if self.error:
            self.last_error = self.error
            return 0
        if len(self.name) + 1 > length.value:
            length.value = len(self.name) + 1
            self.last_error = ERROR_MORE_DATA
            return 0
        buffer.value = self.name
        length.value = len(self.name)
        return 1


def patch_kernel32(kernel32: FakeKernel32):
    """Patch ctypes so windows_name_query talks to `kernel32`."""
    return (
        patch("ctypes.WinDLL", return_value=kernel32, create=True),
        patch("ctypes.byref", side_effect=lambda obj: obj),
        patch("ctypes.get_last_error", side_effect=lambda: kernel32.last_error, create=True),
        patch(
            "ctypes.WinError",
            side_effect=lambda code: OSError(code, "Windows error"),
            create=True,
        ),
    )


class TestWindowsNameQuery:
    """Tests for the GetComputerNameExW name query."""

    def test_name_fits(self):
        """Test a short name is returned with its length."""
        kernel32 = FakeKernel32("BUILD01")
        win_dll, byref, last_error, win_error = patch_kernel32(kernel32)

        with win_dll, byref, last_error, win_error:
            assert windows_name_query(NameFormat.HOSTNAME, INITIAL_BUFFER_SIZE) == ("BUILD01", 7)

        assert kernel32.calls == [(NameFormat.HOSTNAME.value, INITIAL_BUFFER_SIZE)]

    def test_more_data_reports_required_size(self):
        """Test ERROR_MORE_DATA returns no name and the required size."""
        fqdn = "build01.ci.example.internal"
        kernel32 = FakeKernel32(fqdn)
        win_dll, byref, last_error, win_error = patch_kernel32(kernel32)

        with win_dll, byref, last_error, win_error:
            assert windows_name_query(NameFormat.FQDN, INITIAL_BUFFER_SIZE) == (None, len(fqdn) + 1)

    def test_more_data_then_retry_succeeds(self):
        """Test resolution grows the buffer once after ERROR_MORE_DATA."""
        fqdn = "build01.ci.example.internal"
        kernel32 = FakeKernel32(fqdn)
        win_dll, byref, last_error, win_error = patch_kernel32(kernel32)

        with win_dll, byref, last_error, win_error:
            assert resolve_host_name(NameFormat.FQDN, windows_name_query) == fqdn

        assert kernel32.calls == [
            (NameFormat.FQDN.value, INITIAL_BUFFER_SIZE),
            (NameFormat.FQDN.value, len(fqdn) + 1),
        ]

    def test_other_error_raises(self):
        """Test any other error code is raised as an OSError."""
        kernel32 = FakeKernel32("BUILD01", error=5)
        win_dll, byref, last_error, win_error = patch_kernel32(kernel32)

        with win_dll, byref, last_error, win_error:
            with pytest.raises(OSError) as exc_info:
                windows_name_query(NameFormat.DOMAIN, INITIAL_BUFFER_SIZE)
            assert resolve_host_name(NameFormat.DOMAIN, windows_name_query) == ""

        assert exc_info.value.errno == 5
