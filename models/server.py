"""
models/server.py
----------------
Value type describing where a SQL Server instance lives.

Accepted address forms::

    sql01               default instance, default port
    sql01\\INST2        named instance
    sql01:1533          explicit port
    sql01,1533          explicit port (SQL Server client syntax)
"""
from __future__ import annotations

import re
from dataclasses import dataclass

_ADDRESS_RE = re.compile(
    r"^(?P<host>[^\\:,\s]+)"
    r"(?:\\(?P<instance>[^\\:,\s]+))?"
    r"(?:[:,](?P<port>\d{1,5}))?$"
)


@dataclass(frozen=True, eq=False)
class ServerAddress:
    """
    Network location of one SQL Server instance.

    Equality and hashing ignore case in host and instance, and treat an
    omitted port as the default one.

    Attributes:
        host:     Host name or IP address.
        instance: Named instance (``None`` for the default instance).
        port:     TCP port (``None`` → driver/config default).
    """
    host: str
    instance: str | None = None
    port: int | None = None

    @staticmethod
    def parse(text: str) -> "ServerAddress":
        """
        Parse ``host[\\instance][:port|,port]``.

        Raises:
            ValueError: If *text* is not a recognisable address.
        """
        match = _ADDRESS_RE.match(text.strip())
        if not match:
            raise ValueError(f"Invalid SQL Server address: {text!r}")
        port = match.group("port")
        if port is not None and not 0 < int(port) < 65536:
            raise ValueError(f"Port out of range in address: {text!r}")
        return ServerAddress(
            host=match.group("host"),
            instance=match.group("instance"),
            port=int(port) if port else None,
        )

    @property
    def instance_id(self) -> str:
        """Canonical, case-folded identifier used as the report key."""
        ident = self.host.lower()
        if self.instance:
            ident += "\\" + self.instance.lower()
        if self.port:
            ident += f",{self.port}"
        return ident

    def _key(self) -> tuple[str, str, int]:
        return (self.host.lower(), (self.instance or "").lower(), self.port or 0)

    def same_instance(self, other: "ServerAddress") -> bool:
        """True when both addresses name the same host and instance."""
        return self._key() == other._key()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ServerAddress):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        text = self.host
        if self.instance:
            text += "\\" + self.instance
        if self.port:
            text += f",{self.port}"
        return text


@dataclass(frozen=True)
class Credential:
    """SQL login used for every connection in one run (never persisted)."""
    user: str
    password: str = ""

    def __repr__(self) -> str:
        return f"Credential(user={self.user!r}, password='***')"
