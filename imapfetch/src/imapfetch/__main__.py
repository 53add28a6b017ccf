"""Allow ``python -m imapfetch``."""

from .cli import main

main()
