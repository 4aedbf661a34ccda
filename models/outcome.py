"""
models/outcome.py
-----------------
Result types for applying transfer scripts.

Design Decision:
    Failures are recorded as classified values rather than swallowed, so
    callers (and tests) read skip/failure counts directly instead of
    inferring success from the absence of an exception.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator

from models.script import GenerationDiagnostic, ScriptStatement


class StatementStatus(str, Enum):
    APPLIED = "applied"
    SKIPPED_ALREADY_EXISTS = "skipped_already_exists"
    FAILED = "failed"
    PLANNED = "planned"  # preview only; never executed


@dataclass(frozen=True)
class StatementResult:
    statement: ScriptStatement
    status: StatementStatus
    reason: str | None = None


@dataclass
class ApplyOutcome:
    """
    Outcome of one (destination, database) pass.

    Attributes:
        destination: Destination instance identifier.
        database:    System database name.
        attempted:   False when the pass never ran (unreachable destination,
                     privilege failure, cancellation, aborted generation).
        completed:   True once every statement has been processed, even if
                     some of them failed.
        error:       Why the pass was not attempted or did not complete.
    """
    destination: str
    database: str
    results: list[StatementResult] = field(default_factory=list)
    diagnostics: list[GenerationDiagnostic] = field(default_factory=list)
    attempted: bool = True
    completed: bool = False
    dry_run: bool = False
    error: str | None = None

    @classmethod
    def not_attempted(cls, destination: str, database: str, reason: str) -> "ApplyOutcome":
        return cls(
            destination=destination,
            database=database,
            attempted=False,
            completed=False,
            error=reason,
        )

    def record(
        self,
        statement: ScriptStatement,
        status: StatementStatus,
        reason: str | None = None,
    ) -> StatementResult:
        result = StatementResult(statement=statement, status=status, reason=reason)
        self.results.append(result)
        return result

    @property
    def counts(self) -> Counter:
        return Counter(r.status for r in self.results)

    @property
    def applied(self) -> int:
        return self.counts[StatementStatus.APPLIED]

    @property
    def skipped(self) -> int:
        return self.counts[StatementStatus.SKIPPED_ALREADY_EXISTS]

    @property
    def failed(self) -> int:
        return self.counts[StatementStatus.FAILED]

    @property
    def planned(self) -> int:
        return self.counts[StatementStatus.PLANNED]

    @property
    def has_failures(self) -> bool:
        return self.failed > 0

    def not_applied(self) -> list[StatementResult]:
        """Results that were not Applied, for verbose reporting."""
        return [r for r in self.results if r.status != StatementStatus.APPLIED]

    def __str__(self) -> str:
        if not self.attempted:
            return f"[NOT ATTEMPTED] {self.destination}/{self.database}: {self.error}"
        if self.dry_run:
            return f"[PREVIEW] {self.destination}/{self.database}: {self.planned} statement(s)"
        status = "OK" if self.completed and not self.has_failures else "FAILED"
        return (
            f"[{status}] {self.destination}/{self.database}: "
            f"applied={self.applied} skipped={self.skipped} failed={self.failed}"
        )


PassKey = tuple[str, str]  # (destination id, database)


@dataclass
class MigrationReport:
    """Per-(destination, database) outcomes of one run, in processing order."""
    source: str
    outcomes: dict[PassKey, ApplyOutcome] = field(default_factory=dict)
    destination_errors: dict[str, str] = field(default_factory=dict)

    def add(self, outcome: ApplyOutcome) -> None:
        self.outcomes[(outcome.destination, outcome.database)] = outcome

    def __getitem__(self, key: PassKey) -> ApplyOutcome:
        return self.outcomes[key]

    def __iter__(self) -> Iterator[ApplyOutcome]:
        return iter(self.outcomes.values())

    def __len__(self) -> int:
        return len(self.outcomes)

    @property
    def has_failures(self) -> bool:
        return any(o.has_failures for o in self.outcomes.values())

    @property
    def has_unattempted(self) -> bool:
        return any(not o.attempted for o in self.outcomes.values())

    def totals(self) -> Counter:
        total: Counter = Counter()
        for outcome in self.outcomes.values():
            total.update(outcome.counts)
        return total
