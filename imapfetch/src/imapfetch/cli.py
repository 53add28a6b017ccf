"""imapfetch command-line interface.

What:
  Provide a Typer-based entry point with three commands: ``list`` enumerates
  the remote mailboxes with their local archive names, ``backup`` runs an
  incremental sync into a directory of ``.mbox`` files, and ``info`` counts the
  records stored in an existing archive.

Why:
  Backups usually run from cron or by hand. Both need the same behaviour:
  listings and progress on standard output, JSON diagnostics on standard
  error, a single readable error line, and a non-zero exit status whenever
  something was not archived.

How:
  Load the runtime configuration, resolve connection settings (command-line
  flags win over ``imapfetch.yaml``), prompt for the password when it was not
  given, and hand off to :class:`~imapfetch.core.engine.SyncEngine`. Errors from
  the :mod:`imapfetch.errors` taxonomy and configuration errors are turned into
  ``Error: ...`` plus exit code ``1``.

Interfaces:
  ``app`` (Typer application), ``list_command``, ``backup``, ``info``, ``main``.

Invariants & Safety:
  - Exit codes follow shell expectations (``0`` success, ``1`` failure).
  - Passwords never appear in output or logs.
  - ``--compress`` is accepted for compatibility and ignored with a warning.
"""
from __future__ import annotations

import contextlib
import sys
from pathlib import Path
from typing import Any, List, Optional

import typer

from .config.loader import ConfigLoadError, load_runtime_config
from .config.schema import RuntimeConfig
from .core.engine import FailurePolicy, SyncEngine, SyncReport
from .errors import ImapFetchError
from .imap.client import ImapConfig, RetryPolicy, Transport
from .mbox import count_entries, describe_entries
from .utils.logging import get_logger


app = typer.Typer(help="Incrementally back up IMAP mailboxes into mbox files")

LOGGER = get_logger("imapfetch.cli")

_PHASE_LABELS = {"scan": "Scanning", "fetch": "Fetching"}


class ConsoleProgress:
    """Render engine progress as Typer progress bars on standard output."""

    def __init__(self) -> None:
        self._stack: Optional[contextlib.ExitStack] = None
        self._bar: Any = None

    def begin(self, phase: str, mailbox: str, total: int) -> None:
        self.end()
        self._stack = contextlib.ExitStack()
        label = f"{_PHASE_LABELS.get(phase, phase)} {mailbox}"
        self._bar = self._stack.enter_context(
            typer.progressbar(length=max(total, 1), label=label, file=sys.stdout)
        )

    def advance(self, count: int = 1) -> None:
        if self._bar is not None:
            self._bar.update(count)

    def end(self) -> None:
        if self._stack is not None:
            self._stack.close()
        self._stack = None
        self._bar = None


def _fail(message: str) -> typer.Exit:
    typer.echo(f"Error: {message}", err=True)
    return typer.Exit(code=1)


def _load_config(path: Optional[Path]) -> RuntimeConfig:
    try:
        return load_runtime_config(path)
    except ConfigLoadError as exc:
        raise _fail(str(exc)) from exc


def _prompt_password(user: str) -> str:
    return typer.prompt(f"Enter password for {user}", hide_input=True)


def _build_engine(
    runtime: RuntimeConfig,
    *,
    host: str,
    tls: bool,
    port: Optional[int],
    progress: Any = None,
    failure_policy: Optional[FailurePolicy] = None,
    debug: bool = False,
) -> SyncEngine:
    """Combine command-line flags and runtime settings into a :class:`SyncEngine`."""

    imap_config = ImapConfig(
        host=host,
        transport=Transport.TLS if tls else Transport.PLAIN,
        port=port if port is not None else runtime.imap.port,
        timeout=runtime.imap.timeout,
    )
    retry = RetryPolicy(
        max_attempts=runtime.auth.max_attempts,
        backoff=runtime.auth.backoff_seconds,
    )
    return SyncEngine(
        imap_config,
        progress=progress,
        logger=get_logger("imapfetch.engine", debug=debug),
        batch_size=runtime.sync.batch_size,
        sender=runtime.sync.placeholder_sender,
        failure_policy=failure_policy or FailurePolicy(runtime.sync.failure_policy),
        retry_policy=retry,
    )


def _print_report(report: SyncReport) -> None:
    for mailbox in report.mailboxes:
        if mailbox.ok:
            typer.echo(
                f"{mailbox.mailbox}: {mailbox.appended} new, {mailbox.skipped} already archived"
                f" ({mailbox.remote} on server) -> {mailbox.filename}"
            )
        else:
            typer.echo(f"{mailbox.mailbox}: FAILED ({mailbox.error})")
    if report.logout_error:
        typer.echo(f"Warning: logout failed: {report.logout_error}", err=True)


@app.command("list")
def list_command(
    host: str = typer.Argument(..., help="IMAP host"),
    user: str = typer.Option(..., "--user", help="IMAP username"),
    password: Optional[str] = typer.Option(None, "--password", help="IMAP password (prompted if omitted)"),
    tls: bool = typer.Option(False, "--tls", help="Use TLS (port 993)"),
    port: Optional[int] = typer.Option(None, "--port", help="Override the server port"),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to imapfetch.yaml"),
) -> None:
    """List remote mailboxes and the archive file each one maps to."""

    runtime = _load_config(config)
    engine = _build_engine(runtime, host=host, tls=tls, port=port)
    secret = password if password is not None else _prompt_password(user)
    try:
        mailboxes = engine.list_mailboxes(user, secret, prompt=lambda: _prompt_password(user))
    except ImapFetchError as exc:
        LOGGER.error("list_failed", host=host, error=str(exc))
        raise _fail(str(exc)) from exc

    if mailboxes:
        typer.echo("Found mailboxes:")
    for mailbox in mailboxes:
        typer.echo(f"  {mailbox.name}: {mailbox.filename}")


@app.command("backup")
def backup(
    host: str = typer.Argument(..., help="IMAP host"),
    user: str = typer.Option(..., "--user", help="IMAP username"),
    password: Optional[str] = typer.Option(None, "--password", help="IMAP password (prompted if omitted)"),
    tls: bool = typer.Option(False, "--tls", help="Use TLS (port 993)"),
    port: Optional[int] = typer.Option(None, "--port", help="Override the server port"),
    path: Optional[Path] = typer.Option(
        None,
        "--path",
        help="Output directory (default: current working directory)",
    ),
    compress: bool = typer.Option(False, "--compress", help="Compress mbox files (not implemented)"),
    mailboxes: Optional[List[str]] = typer.Option(
        None,
        "--mailboxes",
        help="Only back up this mailbox; repeat for several",
    ),
    abort_on_error: bool = typer.Option(
        False,
        "--abort-on-error",
        help="Stop at the first failing mailbox instead of continuing",
    ),
    debug: bool = typer.Option(False, "--debug", help="Log every scanned envelope to standard error"),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to imapfetch.yaml"),
) -> None:
    """Append messages missing from the local archives.

    Exits with status 1 if the run failed or any mailbox could not be synced.
    """

    runtime = _load_config(config)
    if compress:
        typer.echo("Warning: --compress is not implemented; archives are written uncompressed", err=True)
    engine = _build_engine(
        runtime,
        host=host,
        tls=tls,
        port=port,
        progress=ConsoleProgress(),
        failure_policy=FailurePolicy.ABORT if abort_on_error else None,
        debug=debug,
    )
    secret = password if password is not None else _prompt_password(user)
    output_dir = path if path is not None else Path.cwd()
    try:
        report = engine.run(
            user,
            secret,
            output_dir,
            mailboxes=mailboxes or None,
            prompt=lambda: _prompt_password(user),
        )
    except ImapFetchError as exc:
        LOGGER.error("backup_failed", host=host, error=str(exc))
        raise _fail(str(exc)) from exc
    except KeyboardInterrupt:
        typer.echo("Backup interrupted; archived messages are kept", err=True)
        raise typer.Exit(code=1) from None

    _print_report(report)
    if not report.ok:
        names = ", ".join(mailbox.mailbox for mailbox in report.failed)
        raise _fail(f"{len(report.failed)} mailbox(es) failed: {names}")


@app.command("info")
def info(
    path: Path = typer.Argument(..., help="mbox file to inspect"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Print one line per entry"),
) -> None:
    """Count the records stored in an mbox archive."""

    if not path.exists():
        raise _fail(f"No such file: {path}")
    try:
        if verbose:
            lines = describe_entries(path)
            for line in lines:
                typer.echo(line)
            count = len(lines)
        else:
            count = count_entries(path)
    except ImapFetchError as exc:
        raise _fail(str(exc)) from exc
    typer.echo(f"Found {count} E-mails in mbox file")


def main() -> None:
    """Execute the Typer application entry point."""

    app()


if __name__ == "__main__":  # pragma: no cover
    main()
