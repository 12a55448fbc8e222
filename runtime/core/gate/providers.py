"""Collaborators queried by the gate engine: a clock and a connectivity source.

Both are injectable so decisions are testable without real time passing or a
real network. A missing connectivity source is valid and means "do not
constrain on connectivity".
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from pathlib import Path

from utils import utcnow

logger = logging.getLogger(__name__)

_CELLULAR_PREFIXES = ("wwan", "wwp", "rmnet", "ppp")
_UP_STATES = {"up"}


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current time as a timezone-aware datetime."""


class SystemClock(Clock):
    def now(self) -> datetime:
        return utcnow()


class Connection(str, Enum):
    NONE = "none"
    CELLULAR = "cellular"
    # Wifi or wired LAN.
    WIFI = "wifi"


class ConnectivityState(ABC):
    @property
    @abstractmethod
    def connection(self) -> Connection:
        """Current reachability classification of the host."""


class StaticConnectivity(ConnectivityState):
    def __init__(self, connection: Connection):
        self._connection = Connection(connection)

    @property
    def connection(self) -> Connection:
        return self._connection


class InterfaceConnectivityProbe(ConnectivityState):
    """Classify the host from Linux network interface state (`/sys/class/net`).

    Any operationally-up, non-loopback interface that is not a cellular modem
    counts as WIFI (wireless or wired LAN). Cellular modems count only when
    nothing better is up.
    """

    def __init__(self, sys_net_dir: Path = Path("/sys/class/net")):
        self._root = sys_net_dir

    @property
    def connection(self) -> Connection:
        if not self._root.is_dir():
            logger.debug("connectivity_probe_unavailable", extra={"event": "connectivity_probe_unavailable"})
            return Connection.NONE

        cellular_up = False
        for iface in sorted(self._root.iterdir()):
            if iface.name == "lo" or not _is_up(iface):
                continue
            if iface.name.startswith(_CELLULAR_PREFIXES):
                cellular_up = True
                continue
            return Connection.WIFI

        return Connection.CELLULAR if cellular_up else Connection.NONE


def _is_up(iface: Path) -> bool:
    try:
        state = (iface / "operstate").read_text(encoding="utf-8").strip().lower()
    except OSError:
        return False
    return state in _UP_STATES
