"""imapfetch.core.engine

What:
  Coordinate one backup run: authenticate against the server, discover the
  hierarchy delimiter, enumerate the target mailboxes, and for each mailbox
  compute the set of messages missing from the local archive, fetch them, and
  append them through the mbox writer.

Why:
  The archive is append-only and the server is the source of truth. Comparing
  the Message-IDs already on disk with the envelopes on the server keeps every
  run incremental, and appending one durable record at a time makes an
  interrupted run resumable: whatever did not reach the disk is simply fetched
  again next time.

How:
  - :meth:`SyncEngine.run` owns the session for the whole run and always
    attempts a logout in ``finally``.
  - Per mailbox, :func:`~imapfetch.core.index.build_index` rebuilds the seen
    set, :meth:`SyncEngine.compute_pending` pages through ``UID ENVELOPE`` in
    fixed batches, and pending UIDs are fetched in ascending order.
  - Progress is reported twice per message through a :class:`Progress`
    object: once while scanning envelopes, once while fetching bodies.

Interfaces:
  - :class:`SyncState`, :class:`FailurePolicy` enums.
  - :class:`Progress` protocol and :class:`NullProgress`.
  - :class:`MailboxReport`, :class:`SyncReport` data containers.
  - :func:`batch_ranges` and :class:`SyncEngine`.

Invariants & Safety:
  - Mailboxes are processed strictly one after another over a single session.
  - A mailbox reporting zero messages never causes a file to be created or
    touched.
  - The archive's memory map is closed before the writer opens the file.
  - A logout failure is reported but never replaces an earlier error.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Set, Tuple, Union

from ..errors import FormatError, ImapFetchError
from ..imap.client import ImapConfig, ImapSession, Mailbox, RetryPolicy
from ..mbox import DEFAULT_SENDER, MboxWriter
from ..utils.ids import new_run_id
from ..utils.logging import JsonLogger, get_logger
from .index import build_index


DEFAULT_BATCH_SIZE = 100

LOGGER = get_logger("imapfetch.engine")


def _decode_id(value: Optional[bytes]) -> Optional[str]:
    return value.decode("utf-8", errors="replace") if value is not None else None


class SyncState(enum.Enum):
    """Lifecycle of a :class:`SyncEngine` run."""

    DISCONNECTED = "disconnected"
    AUTHENTICATED = "authenticated"
    MAILBOX_SELECTED = "mailbox_selected"
    SYNCING = "syncing"
    DONE = "done"
    FAILED = "failed"


class FailurePolicy(str, enum.Enum):
    """What to do with the remaining mailboxes after one of them failed."""

    CONTINUE = "continue"
    ABORT = "abort"


class Progress(Protocol):
    """Receiver of advisory progress counters."""

    def begin(self, phase: str, mailbox: str, total: int) -> None:
        ...

    def advance(self, count: int = 1) -> None:
        ...

    def end(self) -> None:
        ...


class NullProgress:
    """Progress sink that discards every update."""

    def begin(self, phase: str, mailbox: str, total: int) -> None:
        return None

    def advance(self, count: int = 1) -> None:
        return None

    def end(self) -> None:
        return None


@dataclass
class MailboxReport:
    """Counters collected while syncing one mailbox.

    Attributes:
      mailbox: Remote mailbox name.
      filename: Local archive filename derived from ``mailbox``.
      remote: Message count reported by ``EXAMINE``.
      local_entries: Records found in the archive before the run.
      skipped: Remote messages whose Message-ID was already archived.
      pending: UIDs selected for fetching.
      appended: Records written to the archive.
      rejected: Fetched bodies the writer refused as malformed.
      error: Message of the error that aborted the mailbox, if any.
    """

    mailbox: str
    filename: str
    remote: int = 0
    local_entries: int = 0
    skipped: int = 0
    pending: int = 0
    appended: int = 0
    rejected: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class SyncReport:
    """Outcome of a whole run."""

    run_id: str
    mailboxes: List[MailboxReport] = field(default_factory=list)
    logout_error: Optional[str] = None

    @property
    def failed(self) -> List[MailboxReport]:
        return [report for report in self.mailboxes if not report.ok]

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def appended(self) -> int:
        return sum(report.appended for report in self.mailboxes)


def batch_ranges(count: int, size: int = DEFAULT_BATCH_SIZE) -> List[Tuple[int, int]]:
    """Split sequence numbers ``1..count`` into inclusive ``(start, end)`` pairs.

    ``ceil(count / size)`` pairs are returned; the last one is clipped to
    ``count``.
    """

    if size <= 0:
        raise ValueError("batch size must be positive")
    return [(start, min(start + size - 1, count)) for start in range(1, count + 1, size)]


class SyncEngine:
    """Incremental IMAP to mbox synchroniser.

    What:
      Runs the state machine ``DISCONNECTED -> AUTHENTICATED ->
      MAILBOX_SELECTED -> SYNCING -> DONE | FAILED`` against one server.

    Why:
      Keeping orchestration in one class with injected collaborators (session
      factory, progress sink, logger) lets tests drive the whole flow against
      an in-memory IMAP fake and a temporary directory.

    How:
      :meth:`run` opens and authenticates the session, resolves the mailbox
      list, and hands each mailbox to :meth:`sync_mailbox`. Per-mailbox errors
      are recorded in the report; the :class:`FailurePolicy` decides whether the
      remaining mailboxes are still processed.
    """

    def __init__(
        self,
        config: ImapConfig,
        *,
        connect: Callable[[ImapConfig], ImapSession] = ImapSession.connect,
        progress: Optional[Progress] = None,
        logger: Optional[JsonLogger] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        sender: str = DEFAULT_SENDER,
        failure_policy: FailurePolicy = FailurePolicy.CONTINUE,
        retry_policy: RetryPolicy = RetryPolicy(),
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch size must be positive")
        self.config = config
        self._connect = connect
        self.progress: Progress = progress or NullProgress()
        self.logger = logger or LOGGER
        self.batch_size = batch_size
        self.sender = sender
        self.failure_policy = failure_policy
        self.retry_policy = retry_policy
        self.state = SyncState.DISCONNECTED

    def open_session(
        self,
        user: str,
        secret: str,
        prompt: Optional[Callable[[], str]] = None,
    ) -> ImapSession:
        """Connect and authenticate, leaving the engine ``AUTHENTICATED``.

        On an authentication failure the half-open session is logged out
        before the error propagates.
        """

        session = self._connect(self.config)
        try:
            session.authenticate(user, secret, self.retry_policy, prompt)
        except ImapFetchError:
            self.state = SyncState.FAILED
            self._logout(session, None)
            raise
        self.state = SyncState.AUTHENTICATED
        return session

    def list_mailboxes(
        self,
        user: str,
        secret: str,
        prompt: Optional[Callable[[], str]] = None,
    ) -> List[Mailbox]:
        """Return every remote mailbox; used by ``imapfetch list``."""

        session = self.open_session(user, secret, prompt)
        try:
            delimiter = session.discover_delimiter()
            mailboxes = self._enumerate(session, delimiter, None)
        except BaseException:
            self.state = SyncState.FAILED
            raise
        finally:
            self._logout(session, None)
        self.state = SyncState.DONE
        return mailboxes

    def run(
        self,
        user: str,
        secret: str,
        output_dir: Union[str, Path],
        mailboxes: Optional[Sequence[str]] = None,
        prompt: Optional[Callable[[], str]] = None,
    ) -> SyncReport:
        """Back up ``mailboxes`` (or every mailbox) into ``output_dir``.

        Args:
          user: Login name.
          secret: Password for the first login attempt.
          output_dir: Directory receiving the ``.mbox`` files.
          mailboxes: Explicit mailbox names; ``None`` lists all of them.
          prompt: Callable asked for a new password after a rejection.

        Returns:
          A :class:`SyncReport`; inspect :attr:`SyncReport.ok` for mailbox
          failures recorded under :attr:`FailurePolicy.CONTINUE`.

        Raises:
          AuthError: When the credentials are rejected for good.
          IoError / ProtocolError: On connection failures, a missing delimiter,
            or the first mailbox failure under :attr:`FailurePolicy.ABORT`.
        """

        report = SyncReport(run_id=new_run_id())
        target = Path(output_dir)
        session = self.open_session(user, secret, prompt)
        self.logger.info("run_started", run_id=report.run_id, host=self.config.host)
        try:
            delimiter = session.discover_delimiter()
            targets = self._enumerate(session, delimiter, mailboxes)
            self._warn_filenames(targets)
            for mailbox in targets:
                mailbox_report = MailboxReport(mailbox=mailbox.name, filename=mailbox.filename)
                report.mailboxes.append(mailbox_report)
                try:
                    self.sync_mailbox(session, mailbox, target, mailbox_report)
                except ImapFetchError as exc:
                    mailbox_report.error = str(exc)
                    self.logger.error(
                        "mailbox_failed",
                        run_id=report.run_id,
                        mailbox=mailbox.name,
                        error=str(exc),
                    )
                    if self.failure_policy is FailurePolicy.ABORT:
                        raise
        except BaseException:
            self.state = SyncState.FAILED
            raise
        finally:
            self._logout(session, report)

        self.state = SyncState.DONE if report.ok else SyncState.FAILED
        self.logger.info(
            "run_completed",
            run_id=report.run_id,
            mailboxes=len(report.mailboxes),
            appended=report.appended,
            failed=len(report.failed),
        )
        return report

    def sync_mailbox(
        self,
        session: ImapSession,
        mailbox: Mailbox,
        output_dir: Path,
        report: Optional[MailboxReport] = None,
    ) -> MailboxReport:
        """Bring the archive of ``mailbox`` up to date with the server."""

        if report is None:
            report = MailboxReport(mailbox=mailbox.name, filename=mailbox.filename)
        self.state = SyncState.MAILBOX_SELECTED
        report.remote = session.examine(mailbox.name)
        if report.remote == 0:
            self.logger.info("mailbox_empty", mailbox=mailbox.name)
            return report

        path = output_dir / mailbox.filename
        index = build_index(path)
        report.local_entries = index.entries
        if index.malformed:
            self.logger.warning("archive_malformed_entries", path=str(path), count=index.malformed)

        self.state = SyncState.SYNCING
        pending = self.compute_pending(session, mailbox, report.remote, index.seen, report)
        report.pending = len(pending)
        self._fetch_pending(session, mailbox, path, pending, report)
        self.logger.info(
            "mailbox_synced",
            mailbox=mailbox.name,
            remote=report.remote,
            skipped=report.skipped,
            appended=report.appended,
        )
        return report

    def compute_pending(
        self,
        session: ImapSession,
        mailbox: Mailbox,
        count: int,
        seen: Set[bytes],
        report: MailboxReport,
    ) -> List[int]:
        """Return the ascending UIDs whose Message-ID is not in ``seen``.

        Messages without a Message-ID cannot be deduplicated and are always
        pending.
        """

        pending: Set[int] = set()
        self.progress.begin("scan", mailbox.name, count)
        try:
            for start, end in batch_ranges(count, self.batch_size):
                for record in session.fetch_envelopes(start, end):
                    self.logger.debug(
                        "envelope",
                        mailbox=mailbox.name,
                        uid=record.uid,
                        date=record.date,
                        sender=record.sender,
                        message_id=_decode_id(record.message_id),
                    )
                    if record.message_id is not None and record.message_id in seen:
                        report.skipped += 1
                    else:
                        pending.add(record.uid)
                    self.progress.advance()
        finally:
            self.progress.end()
        return sorted(pending)

    def _fetch_pending(
        self,
        session: ImapSession,
        mailbox: Mailbox,
        path: Path,
        pending: List[int],
        report: MailboxReport,
    ) -> None:
        """Append the bodies of ``pending`` to the archive at ``path``.

        The fetch phase counts every remote message: the ones skipped during
        the scan are advanced in one step up front, so each message ticks
        once per phase. The writer opens the file lazily, so nothing pending
        leaves the archive untouched.
        """

        self.progress.begin("fetch", mailbox.name, report.skipped + len(pending))
        try:
            if report.skipped:
                self.progress.advance(report.skipped)
            with MboxWriter(path, sender=self.sender) as writer:
                for uid in pending:
                    body = session.fetch_body(uid)
                    try:
                        writer.append(body)
                    except FormatError as exc:
                        report.rejected += 1
                        self.logger.warning("body_rejected", mailbox=mailbox.name, uid=uid, error=str(exc))
                    else:
                        report.appended += 1
                    self.progress.advance()
        finally:
            self.progress.end()

    def _enumerate(
        self,
        session: ImapSession,
        delimiter: str,
        names: Optional[Sequence[str]],
    ) -> List[Mailbox]:
        if names:
            return [Mailbox(name=name, delimiter=delimiter) for name in names]
        return [
            Mailbox(name=mailbox.name, delimiter=mailbox.delimiter or delimiter)
            for mailbox in session.list("", "*")
        ]

    def _warn_filenames(self, mailboxes: Sequence[Mailbox]) -> None:
        owners: Dict[str, str] = {}
        for mailbox in mailboxes:
            if mailbox.escaped:
                self.logger.warning(
                    "filename_escaped",
                    mailbox=mailbox.name,
                    filename=mailbox.filename,
                )
            other = owners.setdefault(mailbox.filename, mailbox.name)
            if other != mailbox.name:
                self.logger.warning(
                    "filename_collision",
                    filename=mailbox.filename,
                    mailboxes=[other, mailbox.name],
                )

    def _logout(self, session: ImapSession, report: Optional[SyncReport]) -> None:
        try:
            session.logout()
        except ImapFetchError as exc:
            self.logger.warning("logout_failed", error=str(exc))
            if report is not None:
                report.logout_error = str(exc)
