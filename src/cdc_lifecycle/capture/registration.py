"""Table registration management for the ASN capture service.

Being *registered* (``ADDTABLE``/``REMOVETABLE``) and being *active* (the
``STATE`` flag of ``IBMSNAP_REGISTER``) are independent states of the capture
service, so they are driven through separate operations.
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from typing import Optional, Sequence

from ..db import Row, ServiceProxy
from ..errors import InvalidIdentifier
from .service import CaptureServiceController, first_value
from .waiting import FixedDelayWaiter, WaitOutcome

logger = logging.getLogger(__name__)

MAX_IDENTIFIER_LENGTH = 128
_IDENTIFIER = re.compile(r"^[A-Za-z_@#$][A-Za-z0-9_@#$]*$")


class ActivationState(str, enum.Enum):
    ACTIVE = "A"
    INACTIVE = "I"

    @classmethod
    def from_flag(cls, flag: object) -> Optional["ActivationState"]:
        if flag is None:
            return None
        text = str(flag).strip().upper()
        for state in cls:
            if state.value == text:
                return state
        return None


def validate_identifier(kind: str, value: object) -> str:
    if not isinstance(value, str) or not value:
        raise InvalidIdentifier(kind, value)
    if len(value) > MAX_IDENTIFIER_LENGTH or not _IDENTIFIER.match(value):
        raise InvalidIdentifier(kind, value)
    return value


@dataclass(frozen=True)
class TableRegistration:
    schema: str
    table: str

    @classmethod
    def of(cls, schema: object, table: object) -> "TableRegistration":
        return cls(
            schema=validate_identifier("schema", schema),
            table=validate_identifier("table", table),
        )

    @property
    def qualified_name(self) -> str:
        return f"{self.schema}.{self.table}"


def _qualified_change_table(rows: Sequence[Row]) -> Optional[str]:
    if not rows:
        return None
    owner, table = rows[0][0], rows[0][1]
    if owner is None or table is None:
        return None
    return f"{str(owner).strip()}.{str(table).strip()}"


class TableRegistrationManager:
    """Adds, removes, activates and deactivates captured tables.

    ``enable_table`` and ``disable_table`` never wait; callers follow them with
    a propagation wait.  ``set_table_active`` performs that wait itself.
    """

    def __init__(
        self,
        proxy: ServiceProxy,
        controller: CaptureServiceController,
        propagation: FixedDelayWaiter,
    ) -> None:
        self._proxy = proxy
        self._controller = controller
        self._commands = controller.commands
        self._propagation = propagation

    def enable_table(self, schema: str, table: str) -> TableRegistration:
        registration = TableRegistration.of(schema, table)
        logger.info("enabling capture for %s", registration.qualified_name)
        self._proxy.execute(
            self._commands.add_table(registration.schema, registration.table)
        )
        self._update_state(registration, ActivationState.ACTIVE)
        self._controller.refresh()
        return registration

    def disable_table(self, schema: str, table: str) -> TableRegistration:
        registration = TableRegistration.of(schema, table)
        logger.info("disabling capture for %s", registration.qualified_name)
        self._proxy.execute(
            self._commands.remove_table(registration.schema, registration.table)
        )
        self._controller.refresh()
        return registration

    def set_table_active(self, schema: str, table: str, active: bool) -> WaitOutcome:
        registration = TableRegistration.of(schema, table)
        state = ActivationState.ACTIVE if active else ActivationState.INACTIVE
        logger.info(
            "marking %s %s", registration.qualified_name, state.name.lower()
        )
        self._update_state(registration, state)
        self._controller.refresh()
        return self._propagation.wait()

    def registration_state(self, schema: str, table: str) -> Optional[ActivationState]:
        registration = TableRegistration.of(schema, table)
        flag = self._proxy.query(
            self._commands.registration_state,
            first_value,
            (registration.schema, registration.table),
        )
        return ActivationState.from_flag(flag)

    def cdc_table_name(self, schema: str, table: str) -> Optional[str]:
        """Return ``OWNER.TABLE`` of the change-data table capturing ``table``."""
        registration = TableRegistration.of(schema, table)
        return self._proxy.query(
            self._commands.change_table,
            _qualified_change_table,
            (registration.schema, registration.table),
        )

    def _update_state(
        self, registration: TableRegistration, state: ActivationState
    ) -> None:
        self._proxy.execute(
            self._commands.set_state,
            (state.value, registration.schema, registration.table),
        )


__all__ = [
    "ActivationState",
    "MAX_IDENTIFIER_LENGTH",
    "TableRegistration",
    "TableRegistrationManager",
    "validate_identifier",
]
