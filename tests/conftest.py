"""
Pytest configuration and fixtures.

Ensures the refmirror package can be imported from tests.
"""

import sys
import os
from pathlib import Path

import pytest

# Add the repository root to Python path so tests can import refmirror
repo_root = Path(__file__).parent.parent
sys.path.insert(0, str(repo_root))

# Also set PYTHONPATH environment variable
os.environ['PYTHONPATH'] = str(repo_root)


@pytest.fixture(autouse=True)
def clean_refmirror_env(monkeypatch):
    """Keep REFMIRROR_* variables from the developer shell out of tests."""
    for name in list(os.environ):
        if name.startswith('REFMIRROR_'):
            monkeypatch.delenv(name, raising=False)
