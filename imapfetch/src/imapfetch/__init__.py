"""
Module: imapfetch.__init__

What:
  Aggregate package exports for imapfetch, an incremental IMAP to mbox backup
  tool, and expose its namespace segments (archive codec, sync core, IMAP
  access, configuration, and utilities).

Why:
  Keeping the public surface explicit lets the command line and tests import
  stable names while the internal layout evolves.

Interfaces:
  - mbox: Zero-copy reader and append-only writer for ``.mbox`` archives.
  - core: Message-ID index and the sync engine.
  - imap: ``imapclient``-backed session used by the engine.
  - config: pydantic schema and YAML loader for ``imapfetch.yaml``.
  - utils: JSON logging and run identifiers.

Invariants:
  - Nothing in the package modifies server state; mailboxes are only examined.
  - Archives are append-only; no code path truncates or rewrites them.
"""

__version__ = "0.3.0"

__all__ = [
    "config",
    "core",
    "errors",
    "imap",
    "mbox",
    "utils",
]
