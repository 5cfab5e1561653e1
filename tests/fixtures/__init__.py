"""Test fixtures package for entraops.

This package provides test doubles and fixtures for the different functional areas:

- engine: Fake directory sessions, recording operations and work item builders
- graph: Route-based Microsoft Graph fake and response builders
- cli: Isolated configuration directory and CSV input helpers

Usage:
    from tests.fixtures.engine import FakeSession, RecordingOperation, make_items
    from tests.fixtures.graph import FakeGraph, methods_payload
    from tests.fixtures.cli import cli_config_dir, write_users_csv
"""
