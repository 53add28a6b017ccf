"""Error taxonomy shared by the archive codec, the IMAP layer, and the engine.

What:
  Define the exception hierarchy rooted at :class:`ImapFetchError` so callers
  can tell storage failures, server misbehaviour, rejected credentials, and
  malformed archive content apart.

How:
  Plain :class:`Exception` subclasses without extra state. Third-party errors
  (``OSError``, ``imapclient`` exceptions) are translated at the boundary where
  they occur and chained with ``raise ... from``.

Interfaces:
  :class:`ImapFetchError`, :class:`IoError`, :class:`ProtocolError`,
  :class:`NoDelimiterError`, :class:`AuthError`, :class:`FormatError`.
"""
from __future__ import annotations


class ImapFetchError(Exception):
    """Base class for every error raised by imapfetch."""


class IoError(ImapFetchError):
    """Archive file or network transport could not be used.

    Raised when an mbox file cannot be opened, mapped, or written, and when the
    connection to the IMAP server fails below the protocol level.
    """


class ProtocolError(ImapFetchError):
    """The IMAP server answered with something the engine cannot use."""


class NoDelimiterError(ProtocolError):
    """The root ``LIST`` response did not carry a hierarchy delimiter."""

    def __init__(self, message: str = "server did not report a hierarchy delimiter") -> None:
        super().__init__(message)


class AuthError(ImapFetchError):
    """Credentials were rejected after the retry budget was exhausted."""

    def __init__(self, message: str, *, attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts


class FormatError(ImapFetchError):
    """Local archive content or a message body is too malformed to handle."""
