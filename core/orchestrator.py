"""
core/orchestrator.py
--------------------
Top-level driver: every destination × every system database.

Design Decisions:
    * The orchestrator is a plain class with injected collaborators
      (connector, confirmation callback, cancel event). No global state.
    * Source failures (connection, privilege, lost session) abort the run.
      Destination failures are contained: the destination's passes are
      reported as not attempted and the next destination proceeds.
    * Each (destination, database) pass regenerates its script from the
      source; nothing is cached between passes.
    * Destinations may run on a thread pool. The source connection is not
      safe for concurrent use, so enumeration and generation happen under a
      lock; applying runs unlocked on each worker's own destination handle.
      Passes for one destination always stay sequential, and the report
      keeps the input destination order.
    * Cancellation is checked between passes, never mid-statement.
"""
from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Callable, Sequence

from config import CONFIG
from core.applier import ScriptApplier
from core.database import (
    ConnectionLostError,
    DatabaseError,
    PrivilegeError,
    ServerConnection,
    connect,
)
from core.enumerator import enumerate_objects
from core.script_generator import GenerationError, ScriptGenerator
from logger import get_logger
from models.outcome import ApplyOutcome, MigrationReport, StatementStatus
from models.policy import SYSTEM_DATABASES, TransferPolicy
from models.server import Credential, ServerAddress

log = get_logger(__name__)

Connector = Callable[[ServerAddress], ServerConnection]
ConfirmCallback = Callable[[str, Sequence[str]], bool]  # target, statement preview


class SourceLostError(Exception):
    """The shared source session dropped; the whole run is aborted."""


class MigrationOrchestrator:
    """
    Copies user objects from the source system databases to destinations.

    Args:
        connector:    Opens a :class:`ServerConnection` for a destination
                      address; raises :class:`DatabaseError` on failure.
        policy:       Transfer policy (defaults to :class:`TransferPolicy`).
        confirm:      Optional gate consulted once per live pass with
                      ``("<destination>/<database>", statements)``. A False
                      answer turns that pass into a preview.
        max_workers:  Destinations processed concurrently (1 → sequential).
        cancel_event: Set it to stop before the next pass starts.

    Example::

        orchestrator = MigrationOrchestrator(connector=my_connect)
        report = orchestrator.run(source_conn, [ServerAddress.parse("sql02")])
        for outcome in report:
            print(outcome)
    """

    def __init__(
        self,
        connector: Connector,
        policy: TransferPolicy | None = None,
        confirm: ConfirmCallback | None = None,
        max_workers: int = 1,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self._connector = connector
        self._policy = policy or TransferPolicy()
        self._confirm = confirm
        self._max_workers = max(1, max_workers)
        self._cancel_event = cancel_event or threading.Event()
        self._generator = ScriptGenerator(self._policy)
        self._source_lock = threading.Lock()

    @property
    def policy(self) -> TransferPolicy:
        return self._policy

    def cancel(self) -> None:
        self._cancel_event.set()

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------

    def run(
        self,
        source: ServerConnection,
        destinations: Sequence[ServerAddress],
        dry_run: bool = False,
    ) -> MigrationReport:
        """
        Process every destination and database.

        Returns:
            :class:`MigrationReport` keyed by ``(destination_id, database)``.

        Raises:
            PrivilegeError:        The source login is not sysadmin.
            ServerConnectionError: The source handle is not usable.
            SourceLostError:       The source session dropped mid-run.
        """
        self._check_source(source)
        destinations = self._unique(destinations)
        report = MigrationReport(source=source.instance_id)
        log.info(
            "Copying system database objects from %s to %d destination(s)%s",
            source.address, len(destinations), " (dry run)" if dry_run else "",
        )

        if self._max_workers > 1 and len(destinations) > 1:
            workers = min(self._max_workers, len(destinations))
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = [
                    executor.submit(self._process_destination, source, address, dry_run)
                    for address in destinations
                ]
                results = [future.result() for future in futures]
        else:
            results = [self._process_destination(source, address, dry_run) for address in destinations]

        for outcomes, error in results:
            for outcome in outcomes:
                report.add(outcome)
            if error:
                report.destination_errors[outcomes[0].destination] = error

        totals = report.totals()
        log.info(
            "Run finished: %d pass(es), applied=%d skipped=%d failed=%d",
            len(report),
            totals[StatementStatus.APPLIED],
            totals[StatementStatus.SKIPPED_ALREADY_EXISTS],
            totals[StatementStatus.FAILED],
        )
        return report

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _unique(destinations: Sequence[ServerAddress]) -> list[ServerAddress]:
        """Drop repeated destinations, keeping the first spelling of each."""
        unique: list[ServerAddress] = []
        for address in destinations:
            if address in unique:
                log.warning("Destination %s listed more than once, processing it once", address)
                continue
            unique.append(address)
        return unique

    def _check_source(self, source: ServerConnection) -> None:
        if not source.is_connected:
            source.connect()
        if not source.has_administrative_privilege():
            raise PrivilegeError(f"Login on source {source.address} is not a member of sysadmin.")

    def _not_attempted(self, destination: str, reason: str, databases=SYSTEM_DATABASES) -> list[ApplyOutcome]:
        return [ApplyOutcome.not_attempted(destination, db, reason) for db in databases]

    def _process_destination(
        self,
        source: ServerConnection,
        address: ServerAddress,
        dry_run: bool,
    ) -> tuple[list[ApplyOutcome], str | None]:
        """All three passes for one destination; never raises for destination faults."""
        dest_id = address.instance_id
        if address.same_instance(source.address):
            reason = "source and destination are the same instance"
            log.warning("Skipping %s: %s", address, reason)
            return self._not_attempted(dest_id, reason), reason

        try:
            target = self._connector(address)
        except DatabaseError as exc:
            reason = f"connection failed: {exc}"
            log.error("Skipping destination %s: %s", address, reason)
            return self._not_attempted(dest_id, reason), reason

        outcomes: list[ApplyOutcome] = []
        error: str | None = None
        try:
            if not target.has_administrative_privilege():
                raise PrivilegeError(f"login on {address} is not a member of sysadmin")

            applier = ScriptApplier(target, drop_existing=self._policy.drop_existing)
            for database in SYSTEM_DATABASES:
                if self._cancel_event.is_set():
                    error = "cancelled"
                    outcomes.append(ApplyOutcome.not_attempted(dest_id, database, error))
                    continue
                outcomes.append(self._run_pass(source, applier, database, dry_run))
        except (PrivilegeError, DatabaseError) as exc:
            error = str(exc)
            log.error("Destination %s abandoned: %s", address, error)
            done = {o.database for o in outcomes}
            outcomes.extend(
                self._not_attempted(dest_id, error, [db for db in SYSTEM_DATABASES if db not in done])
            )
        finally:
            target.close()
        return outcomes, error

    def _run_pass(
        self,
        source: ServerConnection,
        applier: ScriptApplier,
        database: str,
        dry_run: bool,
    ) -> ApplyOutcome:
        dest_id = applier.destination_id
        log.info("Pass %s -> %s/%s", database, dest_id, database)

        with self._source_lock:
            try:
                objects = enumerate_objects(source, database, self._policy)
                script = self._generator.generate(database, objects)
            except GenerationError as exc:
                return ApplyOutcome.not_attempted(dest_id, database, f"generation aborted: {exc}")
            except ConnectionLostError:
                raise SourceLostError(f"source {source.address} connection lost") from None
            except DatabaseError as exc:
                log.error("Reading %s on source failed: %s", database, exc)
                return ApplyOutcome.not_attempted(dest_id, database, f"source catalog read failed: {exc}")

        preview = dry_run
        if not dry_run and self._confirm is not None:
            if not self._confirm(f"{dest_id}/{database}", script.texts()):
                log.info("Pass %s/%s declined; reporting a preview only", dest_id, database)
                preview = True

        try:
            return applier.apply(database, script, dry_run=preview)
        except ConnectionLostError:
            raise
        except DatabaseError as exc:
            log.error("Could not use %s on %s: %s", database, dest_id, exc)
            return ApplyOutcome.not_attempted(dest_id, database, f"database context failed: {exc}")


def migrate_system_objects(
    source: ServerAddress,
    destinations: Sequence[ServerAddress],
    credential: Credential,
    destination_credential: Credential | None = None,
    policy: TransferPolicy | None = None,
    dry_run: bool = False,
    confirm: ConfirmCallback | None = None,
    max_workers: int | None = None,
    cancel_event: threading.Event | None = None,
    connector: Callable[[ServerAddress, Credential], ServerConnection] = connect,
) -> MigrationReport:
    """
    Single entry point for callers such as the CLI.

    Connects to *source*, runs the orchestrator, and closes the source.

    Raises:
        ServerConnectionError: The source cannot be reached.
        PrivilegeError:        The source login is not sysadmin.
        SourceLostError:       The source session dropped mid-run.
    """
    source_conn = connector(source, credential)
    try:
        orchestrator = MigrationOrchestrator(
            connector=partial(connector, credential=destination_credential or credential),
            policy=policy,
            confirm=confirm,
            max_workers=max_workers or CONFIG.transfer.workers,
            cancel_event=cancel_event,
        )
        return orchestrator.run(source_conn, destinations, dry_run=dry_run)
    finally:
        source_conn.close()
