"""Working out the address other nodes can reach this server on."""

from __future__ import annotations

import ipaddress
import os
import socket

_ALL_ETHS = "0.0.0.0"
_ENV_POD_IP = "POD_IP"
_PROBE_ADDRESS = ("10.255.255.255", 1)


def _usable(address: str) -> bool:
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return False
    return ip.version == 4 and not ip.is_loopback and not ip.is_unspecified


def internal_ip() -> str:
    """Return a non-loopback IPv4 address of this host, or "" if none is found."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as probe:
            probe.connect(_PROBE_ADDRESS)
            address = probe.getsockname()[0]
        if _usable(address):
            return address
    except OSError:
        pass
    try:
        _, _, addresses = socket.gethostbyname_ex(socket.gethostname())
    except OSError:
        return ""
    return next((address for address in addresses if _usable(address)), "")


def figure_out_listen_on(listen_on: str) -> str:
    """Replace a wildcard or empty host in ``listen_on`` with a reachable IP.

    The ``POD_IP`` environment variable wins over the detected address; if no
    address is known, ``listen_on`` is returned unchanged.
    """
    fields = listen_on.split(":")
    host = fields[0]
    if host and host != _ALL_ETHS:
        return listen_on

    ip = os.environ.get(_ENV_POD_IP, "") or internal_ip()
    if not ip:
        return listen_on
    return ":".join([ip, *fields[1:]])