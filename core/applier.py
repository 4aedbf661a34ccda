"""
core/applier.py
---------------
Executes a transfer script against one destination database.

Design Decisions:
    * Statements run strictly in script order. A failing statement is
      classified and recorded, then execution moves on. A re-run against
      a destination that already holds some objects is expected to hit
      many already-exists conflicts, and those are not actionable.
    * Classification is explicit: :class:`AlreadyExistsConflict` and
      :class:`ApplyError` are raised by :meth:`ScriptApplier._execute` and
      turned into :class:`StatementResult` values by the loop, never
      silently dropped.
    * Only :class:`DatabaseError` is treated as a statement failure.
      Anything else is a programming error and propagates.
    * No rollback is attempted on partial failure.
"""
from __future__ import annotations

from core.database import ConnectionLostError, DatabaseError, ServerConnection
from logger import get_logger
from models.outcome import ApplyOutcome, StatementStatus
from models.script import ScriptStatement, TransferScript

log = get_logger(__name__)

#: Server error numbers meaning "the thing being created is already there".
ALREADY_EXISTS_ERRORS = frozenset({
    219,    # type already exists
    1913,   # index already exists
    2705,   # column names must be unique
    2714,   # object already exists
    2759,   # CREATE SCHEMA failed due to previous errors
    6246,   # assembly already exists
    15023,  # user, group or role already exists
    15025,  # server principal already exists
    15063,  # login already has an account under a different user name
})


class ApplyError(Exception):
    """A statement failed on the destination for a reason worth reporting."""

    def __init__(self, statement: ScriptStatement, reason: str, number: int | None = None) -> None:
        super().__init__(reason)
        self.statement = statement
        self.reason = reason
        self.number = number


class AlreadyExistsConflict(ApplyError):
    """A statement failed only because its object is already present."""


def is_already_exists(error: DatabaseError) -> bool:
    """True when *error* means the target object/role/permission exists."""
    if error.number in ALREADY_EXISTS_ERRORS:
        return True
    return "already exists" in (error.message or "").lower()


class ScriptApplier:
    """
    Applies :class:`TransferScript` objects to one destination handle.

    The handle is borrowed: the applier never opens or closes it.

    Example::

        applier = ScriptApplier(dest_conn, drop_existing=False)
        outcome = applier.apply("msdb", script, dry_run=False)
        print(outcome)
    """

    def __init__(self, target: ServerConnection, drop_existing: bool = False) -> None:
        self._target = target
        self._drop_existing = drop_existing

    @property
    def destination_id(self) -> str:
        return self._target.instance_id

    def apply(self, database: str, script: TransferScript, dry_run: bool = False) -> ApplyOutcome:
        """
        Run *script* in the context of *database* on the destination.

        Args:
            database: System database to apply to.
            script:   Statements in application order.
            dry_run:  When True nothing is executed; every statement is
                      reported as ``PLANNED``.

        Returns:
            :class:`ApplyOutcome` with one result per statement.

        Raises:
            ConnectionLostError: If the database context cannot be set
                                 because the session is gone.
        """
        outcome = ApplyOutcome(
            destination=self.destination_id,
            database=database,
            diagnostics=list(script.diagnostics),
            dry_run=dry_run,
        )

        if dry_run:
            for statement in script:
                log.info("[DRY RUN] %s/%s would apply: %s", self.destination_id, database, statement.object_name)
                log.debug("[DRY RUN] %s", statement.text)
                outcome.record(statement, StatementStatus.PLANNED)
            outcome.completed = True
            return outcome

        self._target.select_database(database)
        statements = list(script)
        for position, statement in enumerate(statements):
            try:
                self._execute(statement)
            except AlreadyExistsConflict as exc:
                outcome.record(statement, StatementStatus.SKIPPED_ALREADY_EXISTS, exc.reason)
                log.debug(
                    "Already exists on %s/%s: %s\n%s",
                    self.destination_id, database, statement.object_name, statement.text,
                )
                continue
            except ConnectionLostError as exc:
                reason = f"connection lost: {exc}"
                log.error("%s/%s: %s", self.destination_id, database, reason)
                for remaining in statements[position:]:
                    outcome.record(remaining, StatementStatus.FAILED, reason)
                outcome.error = reason
                return outcome
            except ApplyError as exc:
                outcome.record(statement, StatementStatus.FAILED, exc.reason)
                log.warning(
                    "Failed on %s/%s: %s (%s)",
                    self.destination_id, database, statement.object_name, exc.reason,
                )
                log.debug("Failed statement:\n%s", statement.text)
                continue
            outcome.record(statement, StatementStatus.APPLIED)
            log.debug("Applied on %s/%s: %s", self.destination_id, database, statement.object_name)

        outcome.completed = True
        log.info("%s", outcome)
        return outcome

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _execute(self, statement: ScriptStatement) -> None:
        """
        Execute one statement, translating failures.

        Raises:
            AlreadyExistsConflict: The object is already on the destination
                                   (and replacing it was not requested or
                                   not possible).
            ApplyError:            Any other database failure.
            ConnectionLostError:   The session dropped.
        """
        try:
            self._target.execute(statement.text)
            return
        except ConnectionLostError:
            raise
        except DatabaseError as exc:
            if not is_already_exists(exc):
                raise ApplyError(statement, exc.message, exc.number) from exc
            conflict = AlreadyExistsConflict(statement, exc.message, exc.number)

        if not (self._drop_existing and statement.drop_text):
            raise conflict
        self._replace(statement, conflict)

    def _replace(self, statement: ScriptStatement, conflict: AlreadyExistsConflict) -> None:
        """
        Drop the destination object and re-run *statement*.

        A refused DROP leaves the existing object in place, so the
        statement stays classified as the original conflict.
        """
        log.info("Replacing existing %s on %s", statement.object_name, self.destination_id)
        try:
            self._target.execute(statement.drop_text)
        except ConnectionLostError:
            raise
        except DatabaseError as exc:
            log.warning(
                "Could not drop %s on %s, keeping the existing object: %s",
                statement.object_name, self.destination_id, exc.message,
            )
            raise conflict from exc

        try:
            self._target.execute(statement.text)
        except ConnectionLostError:
            raise
        except DatabaseError as exc:
            raise ApplyError(
                statement,
                f"replace after conflict ({conflict.reason}) failed: {exc.message}",
                exc.number,
            ) from exc


def apply_script(
    target: ServerConnection,
    database: str,
    script: TransferScript,
    dry_run: bool = False,
    drop_existing: bool = False,
) -> ApplyOutcome:
    """Apply *script* to *database* on *target* with a throwaway applier."""
    return ScriptApplier(target, drop_existing=drop_existing).apply(database, script, dry_run)
