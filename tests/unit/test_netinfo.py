"""Tests for local address lookup."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from localnet_speed.netinfo import NOT_FOUND, local_ipv4


def _fake_socket(address: str) -> MagicMock:
    sock = MagicMock()
    sock.__enter__.return_value = sock
    sock.getsockname.return_value = (address, 54321)
    return sock


class TestLocalIpv4:
    """Test cases for local_ipv4()."""

    def test_returns_routed_address(self) -> None:
        """The address of the default route should be returned."""
        with patch("localnet_speed.netinfo.socket.socket", return_value=_fake_socket("192.168.1.20")):
            assert local_ipv4() == "192.168.1.20"

    @pytest.mark.parametrize("address", ["127.0.0.1", "0.0.0.0", ""])
    def test_unusable_addresses(self, address: str) -> None:
        """Loopback or unspecified addresses should report not found."""
        with patch("localnet_speed.netinfo.socket.socket", return_value=_fake_socket(address)):
            assert local_ipv4() == NOT_FOUND

    def test_no_network(self) -> None:
        """A socket error should report not found."""
        sock = _fake_socket("192.168.1.20")
        sock.connect.side_effect = OSError("Network is unreachable")
        with patch("localnet_speed.netinfo.socket.socket", return_value=sock):
            assert local_ipv4() == NOT_FOUND

    def test_real_lookup_returns_string(self) -> None:
        """A real lookup should return an address or the not-found marker."""
        assert isinstance(local_ipv4(), str)
