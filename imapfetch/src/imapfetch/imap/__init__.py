"""Facade for the IMAP access layer.

What:
  Surface the connection value types and :class:`ImapSession`, the only object
  the sync engine talks to when it needs the server.

Interfaces:
  ``Transport``, ``ImapConfig``, ``RetryPolicy``, ``Mailbox``,
  ``EnvelopeRecord`` and ``ImapSession``.
"""

from .client import EnvelopeRecord, ImapConfig, ImapSession, Mailbox, RetryPolicy, Transport

__all__ = [
    "EnvelopeRecord",
    "ImapConfig",
    "ImapSession",
    "Mailbox",
    "RetryPolicy",
    "Transport",
]
