"""IMAP session used by the sync engine to reach the remote mailboxes.

What:
  Wrap the third-party ``imapclient`` library behind a small, read-only surface:
  connect, authenticate with a bounded retry policy, list mailboxes, examine a
  mailbox, fetch envelopes by sequence range, fetch bodies by UID, and log out.

Why:
  The engine only needs a handful of operations, and it needs them to fail with
  imapfetch's own error taxonomy. Keeping ``imapclient`` specifics (bytes vs.
  str delimiters, UID vs. sequence mode, exception classes) in one module lets
  the engine be tested against an in-memory fake and keeps the transport
  choice a single value.

How:
  :class:`ImapConfig` carries host, port, :class:`Transport` and timeout.
  :meth:`ImapSession.connect` builds an ``IMAPClient`` (TLS or plain) and
  translates socket failures into :class:`~imapfetch.errors.IoError`.
  :meth:`ImapSession.authenticate` applies a :class:`RetryPolicy`, asking the
  supplied prompt for a new secret after each rejection.

Interfaces:
  :class:`Transport`, :class:`ImapConfig`, :class:`RetryPolicy`,
  :class:`Mailbox`, :class:`EnvelopeRecord`, :class:`ImapSession`.

Invariants & Safety:
  - Mailboxes are always opened read-only (``EXAMINE``); nothing is ever
    modified on the server.
  - Transport failures are never retried here; only credential rejections are.
  - Envelope paging uses sequence numbers, body fetches use UIDs. The client is
    switched back to UID mode even when a paged fetch fails.
"""
from __future__ import annotations

import enum
import ssl
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, List, Optional

from imapclient import IMAPClient
from imapclient.exceptions import IMAPClientAbortError, IMAPClientError, LoginError

from ..errors import AuthError, IoError, NoDelimiterError, ProtocolError
from ..utils.logging import get_logger


LOGGER = get_logger("imapfetch.imap")

TLS_PORT = 993
PLAIN_PORT = 143

_UNSAFE_FILENAME_CHARS = ("/", "\\", "\x00")


class Transport(str, enum.Enum):
    """How the connection to the server is established."""

    PLAIN = "plain"
    TLS = "tls"


@dataclass(frozen=True)
class ImapConfig:
    """Connection parameters for one IMAP server.

    Attributes:
      host: IMAP hostname.
      transport: :class:`Transport` variant chosen at connect time.
      port: Explicit port, or ``None`` for the transport default.
      timeout: Socket timeout in seconds handed to ``imapclient``.
    """

    host: str
    transport: Transport = Transport.TLS
    port: Optional[int] = None
    timeout: Optional[float] = 60.0

    @property
    def resolved_port(self) -> int:
        if self.port is not None:
            return self.port
        return TLS_PORT if self.transport is Transport.TLS else PLAIN_PORT


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry for credential rejection.

    Attributes:
      max_attempts: Total login attempts, including the first one.
      backoff: Seconds to wait between attempts; ``0`` disables waiting.
      reprompt: Whether a fresh secret is requested after each rejection.
    """

    max_attempts: int = 3
    backoff: float = 0.0
    reprompt: bool = True


@dataclass(frozen=True)
class Mailbox:
    """A remote mailbox and the hierarchy delimiter of its server."""

    name: str
    delimiter: str

    def _joined(self) -> str:
        return self.name.replace(self.delimiter, ".") if self.delimiter else self.name

    @property
    def filename(self) -> str:
        """Local archive name: delimiters become dots, plus ``.mbox``.

        Path separators left after that (a ``/`` in a name whose server uses
        ``.`` as delimiter) are replaced by ``_`` so the archive always lands
        directly inside the output directory.

        Distinct names can map to the same filename (``a/b`` and ``a.b`` with
        ``/`` as delimiter); collisions are not detected here.
        """

        name = self._joined()
        for char in _UNSAFE_FILENAME_CHARS:
            name = name.replace(char, "_")
        return f"{name}.mbox"

    @property
    def escaped(self) -> bool:
        """Whether :attr:`filename` had to replace path separators."""

        name = self._joined()
        return any(char in name for char in _UNSAFE_FILENAME_CHARS)


@dataclass(frozen=True)
class EnvelopeRecord:
    """UID plus the envelope fields the engine reports on."""

    uid: int
    message_id: Optional[bytes]
    date: Optional[datetime] = None
    sender: Optional[str] = None


def _decode(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _format_sender(envelope: Any) -> Optional[str]:
    addresses = getattr(envelope, "from_", None) or ()
    if not addresses:
        return None
    address = addresses[0]
    mailbox = _decode(address.mailbox) if address.mailbox else ""
    host = _decode(address.host) if address.host else ""
    if mailbox and host:
        return f"{mailbox}@{host}"
    return mailbox or None


class ImapSession:
    """One connected ``imapclient`` session.

    What:
      Owns the ``IMAPClient`` instance for the duration of a run and exposes
      the operations the engine consumes.

    Why:
      Plain and TLS connections differ only in how the client is constructed,
      so a single session class covers both :class:`Transport` variants.

    How:
      Every method delegates to the wrapped client and maps ``imapclient``
      errors: aborts and ``OSError`` become :class:`IoError`, other
      ``IMAPClientError`` instances become :class:`ProtocolError`.
    """

    def __init__(self, client: IMAPClient, config: ImapConfig) -> None:
        self._client = client
        self.config = config
        self.authenticated = False

    @classmethod
    def connect(cls, config: ImapConfig) -> "ImapSession":
        """Open a connection to ``config.host``.

        Raises:
          IoError: If the TCP or TLS connection cannot be established.
          ProtocolError: If the server greeting is unusable.
        """

        use_tls = config.transport is Transport.TLS
        try:
            client = IMAPClient(
                config.host,
                port=config.resolved_port,
                ssl=use_tls,
                ssl_context=ssl.create_default_context() if use_tls else None,
                timeout=config.timeout,
            )
        except (OSError, IMAPClientAbortError) as exc:
            raise IoError(f"Unable to connect to {config.host}:{config.resolved_port}: {exc}") from exc
        except IMAPClientError as exc:
            raise ProtocolError(f"Unexpected greeting from {config.host}: {exc}") from exc
        LOGGER.info(
            "connected",
            host=config.host,
            port=config.resolved_port,
            transport=config.transport.value,
        )
        return cls(client, config)

    def authenticate(
        self,
        user: str,
        secret: str,
        policy: RetryPolicy = RetryPolicy(),
        prompt: Optional[Callable[[], str]] = None,
    ) -> None:
        """Log in, retrying rejected credentials according to ``policy``.

        What:
          Attempts ``LOGIN`` up to ``policy.max_attempts`` times in total.

        Why:
          Interactive users mistype passwords; a bounded retry on the same
          connection saves a reconnect while still failing deterministically.

        How:
          On ``LoginError`` the attempt is counted and, if budget remains, a new
          secret is obtained from ``prompt``. Without a prompt (or with
          ``policy.reprompt`` disabled) the first rejection is final. Transport
          failures propagate immediately.

        Args:
          user: Login name.
          secret: Password for the first attempt.
          policy: Retry bounds.
          prompt: Callable returning a fresh secret after a rejection.

        Raises:
          AuthError: When every permitted attempt was rejected.
          IoError: When the connection drops during login.
        """

        attempts = 0
        while True:
            attempts += 1
            try:
                self._client.login(user, secret)
            except LoginError as exc:
                LOGGER.warning("login_rejected", user=user, attempt=attempts)
                if attempts >= policy.max_attempts or prompt is None or not policy.reprompt:
                    raise AuthError(
                        f"Login rejected for {user} after {attempts} attempt(s): {exc}",
                        attempts=attempts,
                    ) from exc
                if policy.backoff > 0:
                    time.sleep(policy.backoff)
                secret = prompt()
                continue
            except (OSError, IMAPClientAbortError) as exc:
                raise IoError(f"Connection lost during login: {exc}") from exc
            except IMAPClientError as exc:
                raise ProtocolError(f"Login failed: {exc}") from exc
            self.authenticated = True
            LOGGER.info("authenticated", user=user, attempts=attempts)
            return

    def _call(self, description: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except (OSError, IMAPClientAbortError) as exc:
            raise IoError(f"{description} failed: {exc}") from exc
        except IMAPClientError as exc:
            raise ProtocolError(f"{description} failed: {exc}") from exc

    def list(self, reference: str = "", pattern: str = "*") -> List[Mailbox]:
        """Return the mailboxes matching ``pattern`` under ``reference``."""

        folders = self._call("LIST", self._client.list_folders, reference, pattern)
        mailboxes: List[Mailbox] = []
        for _flags, delimiter, name in folders:
            mailboxes.append(Mailbox(name=_decode(name), delimiter=_decode(delimiter) if delimiter else ""))
        return mailboxes

    def discover_delimiter(self) -> str:
        """Query the root listing once and return the hierarchy delimiter.

        Raises:
          NoDelimiterError: If the listing is empty or carries no delimiter.
        """

        folders = self._call("LIST", self._client.list_folders, "", "")
        if not folders:
            raise NoDelimiterError()
        delimiter = folders[0][1]
        if not delimiter:
            raise NoDelimiterError()
        return _decode(delimiter)

    def examine(self, name: str) -> int:
        """Select ``name`` read-only and return its message count."""

        response = self._call(f"EXAMINE {name}", self._client.select_folder, name, readonly=True)
        try:
            return int(response[b"EXISTS"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ProtocolError(f"EXAMINE {name} returned no EXISTS count") from exc

    def fetch_envelopes(self, start: int, end: int) -> List[EnvelopeRecord]:
        """Fetch ``UID`` and ``ENVELOPE`` for sequence numbers ``start..end``."""

        self._client.use_uid = False
        try:
            response = self._call(
                f"FETCH {start}:{end}",
                self._client.fetch,
                f"{start}:{end}",
                ["UID", "ENVELOPE"],
            )
        finally:
            self._client.use_uid = True

        records: List[EnvelopeRecord] = []
        for seq in sorted(response):
            data = response[seq]
            if b"UID" not in data:
                raise ProtocolError(f"FETCH response for message {seq} carries no UID")
            envelope = data.get(b"ENVELOPE")
            records.append(
                EnvelopeRecord(
                    uid=int(data[b"UID"]),
                    message_id=getattr(envelope, "message_id", None) or None,
                    date=getattr(envelope, "date", None),
                    sender=_format_sender(envelope) if envelope is not None else None,
                )
            )
        return records

    def fetch_body(self, uid: int) -> bytes:
        """Fetch the full ``RFC822`` octets of ``uid``."""

        response = self._call(f"UID FETCH {uid}", self._client.fetch, [uid], ["RFC822"])
        data = response.get(uid)
        if not data or b"RFC822" not in data:
            raise ProtocolError(f"UID FETCH {uid} returned no body")
        return data[b"RFC822"]

    def logout(self) -> None:
        """Terminate the session; errors are translated, not swallowed."""

        self._call("LOGOUT", self._client.logout)
        self.authenticated = False
