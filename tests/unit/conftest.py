"""Manual clocks and an in-memory ASN capture server for unit tests."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pytest

from cdc_lifecycle.capture.commands import CaptureCommands
from cdc_lifecycle.capture.waiting import Metronome

_ADD = re.compile(r"^CALL (\w+)\.ADDTABLE\('([^']*)', '([^']*)'\)$")
_REMOVE = re.compile(r"^CALL (\w+)\.REMOVETABLE\('([^']*)', '([^']*)'\)$")


class ManualClock:
    def __init__(self, start: float = 0.0) -> None:
        self._current = start

    def advance(self, seconds: float) -> float:
        self._current += seconds
        return self._current

    def __call__(self) -> float:
        return self._current


class ManualMetronome(Metronome):
    """Metronome whose pauses advance a manual clock instead of sleeping."""

    def __init__(self, clock: ManualClock, cancel_after: Optional[int] = None) -> None:
        super().__init__(clock=clock)
        self.clock = clock
        self.pauses: List[float] = []
        self._cancel_after = cancel_after

    def pause(self, seconds: float) -> bool:
        if self.cancelled:
            return False
        if self._cancel_after is not None and len(self.pauses) >= self._cancel_after:
            self.cancel()
            return False
        self.pauses.append(seconds)
        self.clock.advance(seconds)
        return True


@dataclass
class _PendingChange:
    key: Tuple[str, str]
    action: str
    state: Optional[str] = None
    visible_at: Optional[float] = None


class FakeCaptureServer:
    """Mimics the ASN capture service behind the ServiceProxy interface.

    Registration changes are queued until a ``reinit`` and become visible
    ``latency`` seconds later, like the real capture program.
    """

    def __init__(
        self,
        clock: ManualClock,
        *,
        statuses: Iterable[Optional[str]] = ("asncap is doing work",),
        latency: float = 10.0,
        commands: Optional[CaptureCommands] = None,
    ) -> None:
        self.clock = clock
        self.commands = commands or CaptureCommands()
        self.latency = latency
        self._statuses = list(statuses)
        self.executed: List[Tuple[str, Optional[Tuple[object, ...]]]] = []
        self.queries: List[str] = []
        self.registrations: Dict[Tuple[str, str], str] = {}
        self.tables: Dict[str, List[str]] = {}
        self.dropped: List[str] = []
        self.failures: Dict[str, Exception] = {}
        self._pending: List[_PendingChange] = []

    # ------------------------------------------------------------------ ServiceProxy
    def execute(self, command: str, params: Optional[Sequence[object]] = None) -> None:
        self.executed.append((command, tuple(params) if params is not None else None))
        self._maybe_fail(command)
        if command == self.commands.reinit:
            for change in self._pending:
                if change.visible_at is None:
                    change.visible_at = self.clock() + self.latency
            return
        if command == self.commands.set_state:
            state, schema, table = params  # type: ignore[misc]
            self._pending.append(_PendingChange((schema, table), "state", state))
            return
        add = _ADD.match(command)
        if add:
            self._pending.append(_PendingChange((add.group(2), add.group(3)), "add"))
            return
        remove = _REMOVE.match(command)
        if remove:
            self._pending.append(
                _PendingChange((remove.group(2), remove.group(3)), "remove")
            )
            return
        if command.startswith("DROP TABLE"):
            self.dropped.append(command.split()[-1])

    def query(self, command: str, row_mapper, params: Optional[Sequence[object]] = None):
        self.queries.append(command)
        self._maybe_fail(command)
        self._apply_visible()
        rows: List[Tuple[object, ...]] = []
        if command == self.commands.status:
            status = self._next_status()
            rows = [] if status is None else [(status,)]
        elif command == self.commands.registration_state:
            key = (params[0], params[1])  # type: ignore[index]
            if key in self.registrations:
                rows = [(self.registrations[key],)]
        elif command == self.commands.change_table:
            schema, table = params  # type: ignore[misc]
            if (schema, table) in self.registrations:
                rows = [("ASNCDC  ", f"CDC_{schema}_{table}")]
        elif command == self.commands.list_tables:
            rows = [(name,) for name in self.tables.get(params[0], [])]  # type: ignore[index]
        return row_mapper(rows)

    # ------------------------------------------------------------------ helpers
    def register(self, schema: str, table: str, state: str = "A") -> None:
        self.registrations[(schema, table)] = state

    def command_count(self, command: str) -> int:
        return sum(1 for executed, _ in self.executed if executed == command)

    def _next_status(self) -> Optional[str]:
        if len(self._statuses) > 1:
            return self._statuses.pop(0)
        return self._statuses[0] if self._statuses else None

    def _maybe_fail(self, command: str) -> None:
        failure = self.failures.get(command)
        if failure is not None:
            raise failure

    def _apply_visible(self) -> None:
        now = self.clock()
        remaining: List[_PendingChange] = []
        for change in self._pending:
            if change.visible_at is None or change.visible_at > now:
                remaining.append(change)
                continue
            if change.action == "add":
                self.registrations.setdefault(change.key, "I")
            elif change.action == "remove":
                self.registrations.pop(change.key, None)
            elif change.key in self.registrations:
                self.registrations[change.key] = change.state or "I"
        self._pending = remaining


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def metronome(clock: ManualClock) -> ManualMetronome:
    return ManualMetronome(clock)


@pytest.fixture
def server(clock: ManualClock) -> FakeCaptureServer:
    return FakeCaptureServer(clock)


@pytest.fixture
def make_metronome(clock: ManualClock):
    def _make(cancel_after: Optional[int] = None) -> ManualMetronome:
        return ManualMetronome(clock, cancel_after=cancel_after)

    return _make


@pytest.fixture
def make_server(clock: ManualClock):
    def _make(**kwargs) -> FakeCaptureServer:
        return FakeCaptureServer(clock, **kwargs)

    return _make
