"""
Pytest configuration for expertdeck tests.

This module registers the custom markers shared by all test directories.
"""

import shutil

import pytest


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers", "requires_tmux: mark test as requiring a tmux server"
    )
    config.addinivalue_line(
        "markers", "requires_git: mark test as requiring the git executable"
    )


def pytest_collection_modifyitems(config, items):
    """Skip tests whose external tools are not installed."""
    missing = {
        "requires_tmux": shutil.which("tmux") is None,
        "requires_git": shutil.which("git") is None,
    }
    for item in items:
        for marker, is_missing in missing.items():
            if is_missing and marker in item.keywords:
                item.add_marker(pytest.mark.skip(reason=f"{marker.split('_', 1)[1]} not installed"))
