"""Test fixtures: sample catalog JSON and a scripted SchemaCatalog."""

from __future__ import annotations

import json
from collections.abc import Iterable
from pathlib import Path
from typing import Union

from guardql.catalog.base import SchemaCatalog
from guardql.errors import ExecutionError
from guardql.schema.catalog import CatalogSnapshot, ExecutionResult

_FIXTURES_DIR = Path(__file__).parent

# One entry per execute() call: a message raises ExecutionError, an
# exception instance is raised as is, None succeeds.
ScriptStep = Union[str, Exception, None]


def load_catalog_snapshot() -> CatalogSnapshot:
    """Load the sample CatalogSnapshot from catalog.json."""
    data = json.loads((_FIXTURES_DIR / "catalog.json").read_text())
    return CatalogSnapshot.model_validate(data)


class FakeCatalog(SchemaCatalog):
    """A SchemaCatalog that replays scripted probe outcomes.

    Calls beyond the script succeed.

    Args:
        snapshot: Returned by :meth:`describe`; ``None`` makes describe fail.
        script: Outcomes for successive :meth:`execute` calls.
    """

    def __init__(
        self,
        snapshot: CatalogSnapshot | None = None,
        script: Iterable[ScriptStep] = (),
    ) -> None:
        self._snapshot = snapshot
        self._script = list(script)
        self.executed: list[str] = []
        self.timeouts: list[float | None] = []
        self.describe_calls = 0

    def describe(self) -> CatalogSnapshot:
        self.describe_calls += 1
        if self._snapshot is None:
            raise ExecutionError("Login failed for user 'reader'.")
        return self._snapshot

    def execute(self, sql: str, timeout: float | None = None) -> ExecutionResult:
        self.executed.append(sql)
        self.timeouts.append(timeout)
        step = self._script.pop(0) if self._script else None
        if isinstance(step, Exception):
            raise step
        if step is not None:
            raise ExecutionError(step, sql)
        return ExecutionResult()
