"""SQL statements driving the ASN capture programs and registration table."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CaptureCommands:
    """Statements for one capture schema/server pair.

    ``add_table`` and ``remove_table`` are stored procedure calls that do not
    accept bind parameters for the source identifiers, so they are rendered
    from validated identifiers.  The remaining statements bind their values.
    """

    capture_schema: str = "ASNCDC"
    capture_server: str = "asncdc"

    def _service(self, action: str) -> str:
        return (
            f"VALUES {self.capture_schema}.ASNCDCSERVICES"
            f"('{action}','{self.capture_server}')"
        )

    @property
    def start(self) -> str:
        return self._service("start")

    @property
    def stop(self) -> str:
        return self._service("stop")

    @property
    def status(self) -> str:
        return self._service("status")

    @property
    def reinit(self) -> str:
        return self._service("reinit")

    def add_table(self, schema: str, table: str) -> str:
        return f"CALL {self.capture_schema}.ADDTABLE('{schema}', '{table}')"

    def remove_table(self, schema: str, table: str) -> str:
        return f"CALL {self.capture_schema}.REMOVETABLE('{schema}', '{table}')"

    @property
    def set_state(self) -> str:
        return (
            f"UPDATE {self.capture_schema}.IBMSNAP_REGISTER SET STATE = ? "
            "WHERE SOURCE_OWNER = ? AND SOURCE_TABLE = ?"
        )

    @property
    def registration_state(self) -> str:
        return (
            f"SELECT STATE FROM {self.capture_schema}.IBMSNAP_REGISTER "
            "WHERE SOURCE_OWNER = ? AND SOURCE_TABLE = ?"
        )

    @property
    def change_table(self) -> str:
        return (
            f"SELECT CD_OWNER, CD_TABLE FROM {self.capture_schema}.IBMSNAP_REGISTER "
            "WHERE SOURCE_OWNER = ? AND SOURCE_TABLE = ?"
        )

    @property
    def list_tables(self) -> str:
        return "SELECT TABNAME FROM SYSCAT.TABLES WHERE TABSCHEMA = ? AND TYPE = 'T'"

    def drop_table(self, schema: str, table: str) -> str:
        return f"DROP TABLE IF EXISTS {schema}.{table}"


__all__ = ["CaptureCommands"]
