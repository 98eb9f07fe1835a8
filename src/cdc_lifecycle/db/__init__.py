"""Database access for capture control statements.

The harness only needs two operations from the database, modelled by
:class:`ServiceProxy`.  :class:`ConnectionProxy` implements them on top of any
DB-API 2.0 connection factory; :func:`connect_from_settings` supplies the Db2
one (``ibm_db_dbi``).
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Iterator,
    Optional,
    Protocol,
    Sequence,
    TypeVar,
)

from ..errors import CommandError

if TYPE_CHECKING:  # pragma: no cover - import-time helper only
    from cdc_lifecycle.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")
Row = Sequence[Any]
RowMapper = Callable[[Sequence[Row]], T]


class ServiceProxy(Protocol):
    """Executes control statements against the captured database."""

    def execute(self, command: str, params: Optional[Sequence[Any]] = None) -> None: ...

    def query(
        self,
        command: str,
        row_mapper: RowMapper[T],
        params: Optional[Sequence[Any]] = None,
    ) -> T: ...


class ConnectionProxy:
    """:class:`ServiceProxy` backed by a DB-API connection factory.

    Outside a ``with`` block every call opens and closes its own connection.
    Inside one, a single connection is held until the block exits.
    """

    def __init__(self, connection_factory: Callable[[], Any]) -> None:
        self._connection_factory = connection_factory
        self._conn: Optional[Any] = None

    def __enter__(self) -> "ConnectionProxy":
        if self._conn is None:
            self._conn = self._open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        conn, self._conn = self._conn, None
        if conn is not None:
            conn.close()

    def execute(self, command: str, params: Optional[Sequence[Any]] = None) -> None:
        logger.debug("executing %s params=%s", command, params)
        with self._connection() as conn:
            try:
                cursor = conn.cursor()
                try:
                    self._run(cursor, command, params)
                finally:
                    cursor.close()
                conn.commit()
            except Exception as exc:  # noqa: BLE001 - driver errors share no base class
                raise CommandError(f"command failed: {exc}", command=command) from exc

    def query(
        self,
        command: str,
        row_mapper: RowMapper[T],
        params: Optional[Sequence[Any]] = None,
    ) -> T:
        logger.debug("querying %s params=%s", command, params)
        with self._connection() as conn:
            try:
                cursor = conn.cursor()
                try:
                    self._run(cursor, command, params)
                    rows = list(cursor.fetchall() or [])
                finally:
                    cursor.close()
                conn.commit()
            except Exception as exc:  # noqa: BLE001 - driver errors share no base class
                raise CommandError(f"query failed: {exc}", command=command) from exc
        return row_mapper(rows)

    @staticmethod
    def _run(cursor: Any, command: str, params: Optional[Sequence[Any]]) -> None:
        if params is None:
            cursor.execute(command)
        else:
            cursor.execute(command, tuple(params))

    def _open(self) -> Any:
        try:
            return self._connection_factory()
        except Exception as exc:  # noqa: BLE001
            raise CommandError(f"unable to connect: {exc}") from exc

    @contextmanager
    def _connection(self) -> Iterator[Any]:
        if self._conn is not None:
            yield self._conn
            return
        conn = self._open()
        try:
            yield conn
        finally:
            conn.close()


def build_dsn(settings: "Settings") -> str:
    return (
        f"DATABASE={settings.db_name};"
        f"HOSTNAME={settings.db_host};"
        f"PORT={settings.db_port};"
        "PROTOCOL=TCPIP;"
        f"UID={settings.db_user};"
        f"PWD={settings.db_password};"
    )


def connect_from_settings(settings: "Settings") -> Any:
    """Open a Db2 DB-API connection using the provided settings.

    The driver ships with the ``db2`` extra (``pip install cdc-lifecycle[db2]``);
    a RuntimeError explains how to enable it when it is missing.
    """

    try:
        import ibm_db_dbi
    except ImportError as exc:  # pragma: no cover - depends on installed extras
        raise RuntimeError(
            "ibm_db is required for live Db2 access; install the 'db2' extra"
        ) from exc
    return ibm_db_dbi.connect(build_dsn(settings), "", "")


def proxy_from_settings(settings: "Settings") -> ConnectionProxy:
    return ConnectionProxy(lambda: connect_from_settings(settings))


__all__ = [
    "ConnectionProxy",
    "Row",
    "RowMapper",
    "ServiceProxy",
    "build_dsn",
    "connect_from_settings",
    "proxy_from_settings",
]
