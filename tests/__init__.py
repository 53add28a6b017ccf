"""Test package marker; keeps ``tests.unit`` and ``tests.e2e`` importable."""
