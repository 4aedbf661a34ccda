"""
tests/test_main.py
------------------
Unit tests for the command-line entry point (main.py).
Run with: python -m pytest tests/
"""
from __future__ import annotations

from unittest.mock import patch

import pytest

import main
from core.database import PrivilegeError
from models.objects import ObjectCategory
from models.outcome import ApplyOutcome, MigrationReport, StatementStatus
from models.script import GenerationDiagnostic, ScriptPhase, ScriptStatement

_ARGS = ["--source", "sql01", "--destination", "sql02", "--user", "sa"]


def _report(*outcomes: ApplyOutcome) -> MigrationReport:
    report = MigrationReport(source="sql01")
    for outcome in outcomes:
        report.add(outcome)
    return report


def _outcome(*statuses: StatementStatus, database: str = "master") -> ApplyOutcome:
    outcome = ApplyOutcome(destination="sql02", database=database, completed=True)
    for i, status in enumerate(statuses):
        statement = ScriptStatement(
            text=f"CREATE PROCEDURE [dbo].[p{i}] AS SELECT 1",
            phase=ScriptPhase.ROUTINE,
            category=ObjectCategory.STORED_PROCEDURE,
            object_name=f"[dbo].[p{i}]",
        )
        outcome.record(statement, status, None if status is StatementStatus.APPLIED else "boom")
    return outcome


# ---------------------------------------------------------------------------
# Argument handling
# ---------------------------------------------------------------------------

class TestBuildPolicy:
    def test_defaults(self) -> None:
        policy = main.build_policy(main.parse_args(_ARGS))
        assert policy.includes(ObjectCategory.USER)
        assert policy.include_permissions
        assert policy.continue_on_generation_error

    def test_flags(self) -> None:
        args = main.parse_args(_ARGS + [
            "--exclude-category", "user", "--exclude-category", "role",
            "--no-permissions", "--stop-on-generation-error", "--no-preserve-owner",
        ])
        policy = main.build_policy(args)
        assert not policy.includes(ObjectCategory.USER)
        assert not policy.includes(ObjectCategory.ROLE)
        assert not policy.include_permissions
        assert not policy.continue_on_generation_error
        assert not policy.preserve_owner_schema

    def test_unknown_category_rejected_by_parser(self) -> None:
        with pytest.raises(SystemExit):
            main.parse_args(_ARGS + ["--exclude-category", "widgets"])

    def test_repeated_destinations(self) -> None:
        args = main.parse_args(_ARGS + ["-d", "sql03,1533"])
        assert args.destination == ["sql02", "sql03,1533"]


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

class TestRenderReport:
    def test_summary_line(self) -> None:
        text = main.render_report(_report(_outcome(StatementStatus.APPLIED, StatementStatus.FAILED)))
        line = text.splitlines()[-1]
        assert line.split()[:5] == ["sql02", "master", "1", "0", "1"]
        assert line.endswith("FAILED")

    def test_not_attempted(self) -> None:
        text = main.render_report(_report(ApplyOutcome.not_attempted("sql02", "msdb", "cancelled")))
        assert "NOT ATTEMPTED (cancelled)" in text

    def test_verbose_lists_non_applied_statements(self) -> None:
        outcome = _outcome(StatementStatus.APPLIED, StatementStatus.SKIPPED_ALREADY_EXISTS)
        outcome.diagnostics.append(
            GenerationDiagnostic(ObjectCategory.VIEW, "[dbo].[v]", "definition is not available")
        )
        text = main.render_report(_report(outcome), verbose=True)
        assert "[SKIPPED_ALREADY_EXISTS] [dbo].[p1]: boom" in text
        assert "CREATE PROCEDURE [dbo].[p1] AS SELECT 1" in text
        assert "[dbo].[p0]" not in text
        assert "[NOT SCRIPTED] view [dbo].[v]: definition is not available" in text


class TestExitCode:
    def test_clean(self) -> None:
        assert main.exit_code_for(_report(_outcome(StatementStatus.APPLIED))) == main.EXIT_OK

    def test_skips_are_clean(self) -> None:
        report = _report(_outcome(StatementStatus.SKIPPED_ALREADY_EXISTS))
        assert main.exit_code_for(report) == main.EXIT_OK

    def test_failure(self) -> None:
        assert main.exit_code_for(_report(_outcome(StatementStatus.FAILED))) == main.EXIT_FAILURES

    def test_unattempted(self) -> None:
        report = _report(ApplyOutcome.not_attempted("sql02", "master", "connection failed"))
        assert main.exit_code_for(report) == main.EXIT_FAILURES


# ---------------------------------------------------------------------------
# main()
# ---------------------------------------------------------------------------

class TestMain:
    def test_dry_run_success(self, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
        monkeypatch.setenv("SQL_PASSWORD", "secret")
        with patch("main.migrate_system_objects", return_value=_report(_outcome())) as migrate:
            code = main.main(_ARGS + ["--dry-run"])
        assert code == main.EXIT_OK
        kwargs = migrate.call_args.kwargs
        assert kwargs["dry_run"] is True
        assert kwargs["confirm"] is None
        assert kwargs["credential"].password == "secret"
        assert "Source: sql01" in capsys.readouterr().out

    def test_interactive_confirmation_used(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SQL_PASSWORD", "secret")
        with patch("main.migrate_system_objects", return_value=_report(_outcome())) as migrate:
            main.main(_ARGS)
        assert migrate.call_args.kwargs["confirm"] is main.confirm_prompt

    def test_source_privilege_failure_aborts(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SQL_PASSWORD", "secret")
        with patch("main.migrate_system_objects", side_effect=PrivilegeError("not sysadmin")):
            assert main.main(_ARGS + ["--yes"]) == main.EXIT_ABORTED

    def test_bad_address(self) -> None:
        assert main.main(["--source", "sql01:", "--destination", "sql02", "--user", "sa"]) == main.EXIT_ABORTED

    def test_missing_user(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("SQL_USER", raising=False)
        assert main.main(["--source", "sql01", "--destination", "sql02"]) == main.EXIT_ABORTED


class TestConfirmPrompt:
    def test_yes(self) -> None:
        with patch("builtins.input", return_value=" YES "):
            assert main.confirm_prompt("sql02/master", ["CREATE ROLE [r]"])

    def test_anything_else(self) -> None:
        with patch("builtins.input", return_value="y"):
            assert not main.confirm_prompt("sql02/master", ["CREATE ROLE [r]"])

    def test_empty_script_needs_no_answer(self) -> None:
        with patch("builtins.input") as prompt:
            assert main.confirm_prompt("sql02/model", [])
        prompt.assert_not_called()
