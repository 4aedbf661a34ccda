"""
core/database.py
----------------
SQL Server connection management and query execution.

Design Decisions:
    * ``ServerConnection`` is a context manager so callers can use it with
      ``with`` statements and be guaranteed the connection is closed on exit.
    * Connections run in autocommit mode: every transfer statement is its
      own batch and partial success is an accepted outcome, so there is no
      surrounding transaction to roll back.
    * Retry logic is implemented for transient connection errors using
      back-off (configurable via ``max_retries`` / ``retry_delay``).
    * Driver exceptions are translated into :class:`DatabaseError` carrying
      the server error number, which the applier uses for classification.
    * Queries never use Python string interpolation for values; only
      bracket-quoted identifiers are inserted into SQL strings.
"""
from __future__ import annotations

import time
from typing import Any

import pymssql

from config import CONFIG
from logger import get_logger
from models.objects import quote_name
from models.server import Credential, ServerAddress

log = get_logger(__name__)

# DB-Library codes raised when the session itself is gone.
_CONNECTION_LOST_NUMBERS = frozenset({20003, 20004, 20006, 20047})


class DatabaseError(Exception):
    """Raised for database-level failures reported by this module."""

    def __init__(self, message: str, number: int | None = None) -> None:
        super().__init__(message)
        self.number = number
        self.message = message


class ServerConnectionError(DatabaseError):
    """Raised when an instance cannot be reached or the login is rejected."""


class ConnectionLostError(DatabaseError):
    """Raised when an open connection is detected as lost."""


class PrivilegeError(Exception):
    """Raised when the login lacks the administrative rights required."""


def _error_details(exc: Exception) -> tuple[int | None, str]:
    """Extract ``(number, message)`` from a pymssql exception."""
    args = getattr(exc, "args", ())
    if len(args) >= 2 and isinstance(args[0], int):
        message = args[1]
        if isinstance(message, bytes):
            message = message.decode("utf-8", errors="replace")
        return args[0], str(message).strip()
    number = getattr(exc, "number", None)
    return (number if isinstance(number, int) else None), str(exc).strip()


def translate_error(exc: Exception) -> DatabaseError:
    """Map a driver exception onto this module's exception hierarchy."""
    number, message = _error_details(exc)
    if number in _CONNECTION_LOST_NUMBERS:
        return ConnectionLostError(message, number)
    return DatabaseError(message, number)


class ServerConnection:
    """
    Borrowable handle to one SQL Server instance.

    Provides:
        * Connect with retry back-off.
        * Context-manager support (``with ServerConnection(...) as conn``).
        * ``query`` returning dict rows for catalog reads.
        * Database switching and the sysadmin privilege check.

    Example::

        with ServerConnection(ServerAddress.parse("sql01"), cred) as conn:
            conn.select_database("msdb")
            rows = conn.query("SELECT name FROM sys.objects")
    """

    def __init__(
        self,
        address: ServerAddress,
        credential: Credential,
        connect_timeout: int | None = None,
        login_timeout: int | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
    ) -> None:
        self.address = address
        self._credential = credential
        self._connect_timeout = connect_timeout or CONFIG.server.connect_timeout
        self._login_timeout = login_timeout or CONFIG.server.login_timeout
        self._max_retries = max_retries or CONFIG.server.max_retries
        self._retry_delay = CONFIG.server.retry_delay if retry_delay is None else retry_delay

        self._conn: Any = None
        self.current_database: str | None = None

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    def __enter__(self) -> "ServerConnection":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is not None:
            log.warning("Unhandled exception in ServerConnection context: %s", exc_val)
        self.close()
        return False  # Never suppress exceptions

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    @property
    def instance_id(self) -> str:
        return self.address.instance_id

    def connect(self) -> None:
        """
        Open the connection with back-off retries.

        Raises:
            ServerConnectionError: If connection fails after all retries.
        """
        server = self.address.host
        if self.address.instance:
            server += "\\" + self.address.instance
        port = self.address.port or CONFIG.server.port

        last_error = ""
        for attempt in range(1, self._max_retries + 1):
            try:
                log.info(
                    "Connecting to %s (attempt %d/%d)",
                    self.address, attempt, self._max_retries,
                )
                self._conn = pymssql.connect(
                    server=server,
                    port=str(port),
                    user=self._credential.user,
                    password=self._credential.password,
                    timeout=self._connect_timeout,
                    login_timeout=self._login_timeout,
                    autocommit=True,
                    appname=CONFIG.app_name,
                )
                self.current_database = None
                log.info("Connected to %s.", self.address)
                return
            except pymssql.Error as exc:
                _, last_error = _error_details(exc)
                log.warning("Connection attempt %d to %s failed: %s", attempt, self.address, last_error)
                if attempt < self._max_retries:
                    time.sleep(self._retry_delay * attempt)
        raise ServerConnectionError(
            f"Could not connect to {self.address} after {self._max_retries} attempts: {last_error}"
        )

    def close(self) -> None:
        """Close the connection, logging (not raising) cleanup errors."""
        if self._conn is None:
            return
        try:
            self._conn.close()
            log.info("Connection to %s closed.", self.address)
        except pymssql.Error as exc:
            log.warning("Error closing connection to %s: %s", self.address, exc)
        self._conn = None
        self.current_database = None

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    def _ensure_connected(self) -> None:
        if not self.is_connected:
            raise ConnectionLostError(
                f"Connection to {self.address} is not open. Call connect() first."
            )

    # ------------------------------------------------------------------
    # Public query helpers
    # ------------------------------------------------------------------

    def execute(self, sql: str, params: tuple | None = None) -> int:
        """
        Execute one batch and return the affected row count.

        Raises:
            ConnectionLostError: If not connected or the session dropped.
            DatabaseError: On server execution errors.
        """
        self._ensure_connected()
        cursor = self._conn.cursor()
        try:
            cursor.execute(sql, params)
            return cursor.rowcount
        except pymssql.Error as exc:
            error = translate_error(exc)
            log.debug("SQL execution error %s: %s | SQL: %.500s", error.number, error, sql)
            raise error from exc
        finally:
            cursor.close()

    def query(self, sql: str, params: tuple | None = None) -> list[dict[str, Any]]:
        """Run a SELECT and return rows as dicts keyed by column name."""
        self._ensure_connected()
        cursor = self._conn.cursor(as_dict=True)
        try:
            cursor.execute(sql, params)
            return list(cursor.fetchall() or [])
        except pymssql.Error as exc:
            error = translate_error(exc)
            log.error("Catalog query failed: %s | SQL: %.500s", error, sql)
            raise error from exc
        finally:
            cursor.close()

    # ------------------------------------------------------------------
    # High-level operations
    # ------------------------------------------------------------------

    def select_database(self, name: str) -> None:
        """
        Switch the session's database context.

        Raises:
            DatabaseError: If the USE statement fails.
        """
        if self.current_database == name:
            return
        self.execute(f"USE {quote_name(name)}")
        self.current_database = name
        log.debug("%s: using database %s", self.address, name)

    def has_administrative_privilege(self) -> bool:
        """True when the login is a member of the sysadmin server role."""
        rows = self.query("SELECT IS_SRVROLEMEMBER(N'sysadmin') AS is_admin")
        return bool(rows and rows[0].get("is_admin") == 1)

    def __repr__(self) -> str:
        state = "open" if self.is_connected else "closed"
        return f"<ServerConnection {self.address} ({state})>"


def connect(address: ServerAddress, credential: Credential) -> ServerConnection:
    """Default connector collaborator: open and return a connection."""
    conn = ServerConnection(address, credential)
    conn.connect()
    return conn
