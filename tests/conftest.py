"""Shared fixtures for RouteLens tests."""

import pytest
from PySide6.QtCore import QCoreApplication


@pytest.fixture(scope="session")
def qapp():
    """Create QCoreApplication instance for tests."""
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    yield app
