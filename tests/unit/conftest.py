"""Pytest fixtures for unit tests requiring the IMAP fake.

What:
  Make ``tests/unit`` importable and expose a ``backend`` fixture: a fresh
  :class:`FakeImapBackend` installed in place of ``imapclient.IMAPClient``.

How:
  Monkeypatch ``imapfetch.imap.client.IMAPClient`` with a factory that records
  its constructor arguments and returns the shared backend, so
  :meth:`ImapSession.connect` runs unchanged.
"""

import sys
from pathlib import Path

import pytest

UNIT_DIR = Path(__file__).resolve().parent
if str(UNIT_DIR) not in sys.path:
    sys.path.insert(0, str(UNIT_DIR))

from fakes import FakeImapBackend


@pytest.fixture
def backend(monkeypatch: pytest.MonkeyPatch) -> FakeImapBackend:
    """Yield the in-memory backend every ``IMAPClient(...)`` call returns."""

    fake = FakeImapBackend()
    fake.connections = []

    def _factory(host, **kwargs):
        fake.connections.append((host, kwargs))
        return fake

    monkeypatch.setattr("imapfetch.imap.client.IMAPClient", _factory)
    return fake
