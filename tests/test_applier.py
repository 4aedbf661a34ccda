"""
tests/test_applier.py
---------------------
Unit tests for core/applier.py against an in-memory destination.
Run with: python -m pytest tests/
"""
from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from conftest import FakeServer, descriptor
from core.applier import ScriptApplier, apply_script, is_already_exists
from core.database import ConnectionLostError, DatabaseError
from core.script_generator import generate_script
from models.objects import ColumnDescriptor, ObjectCategory
from models.policy import TransferPolicy
from models.outcome import StatementStatus
from models.script import ScriptPhase, ScriptStatement, TransferScript


def _statement(name: str, text: str | None = None, drop: bool = True) -> ScriptStatement:
    return ScriptStatement(
        text=text or f"CREATE PROCEDURE [dbo].[{name}] AS SELECT 1",
        phase=ScriptPhase.ROUTINE,
        category=ObjectCategory.STORED_PROCEDURE,
        object_name=f"[dbo].[{name}]",
        drop_text=f"DROP PROCEDURE [dbo].[{name}]" if drop else None,
    )


def _script(*statements: ScriptStatement) -> TransferScript:
    return TransferScript(database="msdb", statements=list(statements))


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

class TestIsAlreadyExists:
    @pytest.mark.parametrize("number", [2714, 15023, 1913, 219])
    def test_known_numbers(self, number: int) -> None:
        assert is_already_exists(DatabaseError("boom", number))

    def test_message_fallback(self) -> None:
        assert is_already_exists(DatabaseError("Membership of ops in app_reader already exists.", 50000))

    def test_other_error(self) -> None:
        assert not is_already_exists(DatabaseError("Incorrect syntax near 'x'.", 102))


# ---------------------------------------------------------------------------
# Apply
# ---------------------------------------------------------------------------

class TestApply:
    def test_applies_in_order(self, destination: FakeServer) -> None:
        script = _script(_statement("a"), _statement("b"))
        outcome = apply_script(destination, "msdb", script)
        assert outcome.applied == 2
        assert outcome.completed
        assert [sql for _, sql in destination.executed] == script.texts()
        assert destination.current_database == "msdb"

    def test_failure_does_not_stop_later_statements(self, destination: FakeServer) -> None:
        script = _script(_statement("a"), _statement("bad", "CREATE VIEW SYNTAX ERROR"), _statement("c"))
        outcome = ScriptApplier(destination).apply("msdb", script)
        assert [r.status for r in outcome.results] == [
            StatementStatus.APPLIED, StatementStatus.FAILED, StatementStatus.APPLIED,
        ]
        assert outcome.results[1].reason == "Incorrect syntax near 'SYNTAX'."
        assert outcome.completed
        assert outcome.has_failures

    def test_second_run_skips_everything(self, destination: FakeServer) -> None:
        script = _script(_statement("a"), _statement("b"))
        applier = ScriptApplier(destination)
        applier.apply("msdb", script)
        outcome = applier.apply("msdb", script)
        assert outcome.applied == 0
        assert outcome.skipped == 2
        assert not outcome.has_failures

    def test_same_script_independent_per_database(self, destination: FakeServer) -> None:
        script = _script(_statement("a"))
        applier = ScriptApplier(destination)
        assert applier.apply("master", script).applied == 1
        assert applier.apply("msdb", script).applied == 1

    def test_empty_script(self, destination: FakeServer) -> None:
        outcome = ScriptApplier(destination).apply("model", _script())
        assert outcome.results == []
        assert outcome.completed

    def test_unexpected_error_propagates(self) -> None:
        target = MagicMock()
        target.execute.side_effect = RuntimeError("bug")
        with pytest.raises(RuntimeError):
            ScriptApplier(target).apply("msdb", _script(_statement("a")))


class TestDryRun:
    def test_nothing_executed(self, destination: FakeServer) -> None:
        script = _script(_statement("a"), _statement("b"))
        outcome = ScriptApplier(destination).apply("msdb", script, dry_run=True)
        assert destination.executed == []
        assert destination.current_database is None
        assert outcome.planned == 2
        assert outcome.dry_run

    def test_lists_exact_statements_in_order(self, destination: FakeServer) -> None:
        script = _script(_statement("b"), _statement("a"))
        outcome = ScriptApplier(destination).apply("msdb", script, dry_run=True)
        assert [r.statement for r in outcome.results] == script.statements


class TestDropExisting:
    def test_conflict_replaced(self, destination: FakeServer) -> None:
        script = _script(_statement("a"))
        ScriptApplier(destination).apply("msdb", script)
        outcome = ScriptApplier(destination, drop_existing=True).apply("msdb", script)
        assert outcome.applied == 1
        assert destination.dropped == ["DROP PROCEDURE [dbo].[a]"]

    def test_conflict_without_drop_text_still_skipped(self, destination: FakeServer) -> None:
        script = _script(_statement("a", drop=False))
        ScriptApplier(destination).apply("msdb", script)
        outcome = ScriptApplier(destination, drop_existing=True).apply("msdb", script)
        assert outcome.skipped == 1
        assert destination.dropped == []

    def test_schema_holding_objects_is_kept(self, destination: FakeServer) -> None:
        objects = [
            descriptor(ObjectCategory.SCHEMA, "ops", schema=None),
            descriptor(ObjectCategory.TABLE, "audit", schema="ops",
                       columns=(ColumnDescriptor("id", "int", is_nullable=False),)),
        ]
        script = generate_script(objects, TransferPolicy(drop_existing=True), "msdb")
        ScriptApplier(destination).apply("msdb", script)
        rerun = ScriptApplier(destination, drop_existing=True).apply("msdb", script)
        assert [(r.statement.object_name, r.status) for r in rerun.results] == [
            ("[ops]", StatementStatus.SKIPPED_ALREADY_EXISTS),
            ("[ops].[audit]", StatementStatus.APPLIED),
        ]
        assert destination.dropped == ["DROP TABLE [ops].[audit]"]

    def test_refused_drop_stays_skipped(self, destination: FakeServer) -> None:
        schema = ScriptStatement(
            text="CREATE SCHEMA [ops]",
            phase=ScriptPhase.SCHEMA,
            category=ObjectCategory.SCHEMA,
            object_name="[ops]",
            drop_text="DROP SCHEMA [ops]",
        )
        table = _statement("t", "CREATE TABLE [ops].[t] (id int)", drop=False)
        script = _script(schema, table)
        ScriptApplier(destination).apply("msdb", script)
        rerun = ScriptApplier(destination, drop_existing=True).apply("msdb", script)
        assert rerun.skipped == 2
        assert not rerun.has_failures
        assert destination.dropped == []


class TestPrincipals:
    def test_user_membership_applies_on_first_run(self, destination: FakeServer) -> None:
        objects = [
            descriptor(ObjectCategory.ROLE, "app_reader", schema=None),
            descriptor(ObjectCategory.USER, "ops", schema=None,
                       attributes={"type": "S", "login_name": "ops"},
                       role_memberships=("app_reader",)),
        ]
        script = generate_script(objects, TransferPolicy(), "msdb")
        applier = ScriptApplier(destination)

        first = applier.apply("msdb", script)
        second = applier.apply("msdb", script)

        assert first.failed == 0
        assert first.applied == len(script) == 3
        assert second.applied == 0
        assert second.skipped == len(script)

    def test_membership_for_missing_user_fails(self, destination: FakeServer) -> None:
        user = descriptor(ObjectCategory.USER, "ops", schema=None,
                          attributes={"type": "S"}, role_memberships=("app_reader",))
        script = generate_script([user], TransferPolicy(), "msdb")
        outcome = ScriptApplier(destination).apply("msdb", script)
        assert [r.status for r in outcome.results] == [StatementStatus.APPLIED, StatementStatus.FAILED]


class TestConnectionLost:
    def test_remaining_statements_failed(self, destination: FakeServer) -> None:
        destination.lose_connection_on = "[b]"
        script = _script(_statement("a"), _statement("b"), _statement("c"))
        outcome = ScriptApplier(destination).apply("msdb", script)
        assert [r.status for r in outcome.results] == [
            StatementStatus.APPLIED, StatementStatus.FAILED, StatementStatus.FAILED,
        ]
        assert not outcome.completed
        assert outcome.error.startswith("connection lost")

    def test_lost_before_database_context_propagates(self, destination: FakeServer) -> None:
        destination.lose_connection_on_use = True
        with pytest.raises(ConnectionLostError):
            ScriptApplier(destination).apply("msdb", _script(_statement("a")))
