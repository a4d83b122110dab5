"""Pytest configuration and shared fixtures."""

import pytest

# Load env vars
from dotenv import load_dotenv
load_dotenv()


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "online: mark test as online test (launches a real browser / hits the network)")


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def isolate_output(monkeypatch, tmp_path):
    """Keep tests from writing harvest output into the working tree.

    Tests that need a specific directory pass output_dir explicitly.
    """
    monkeypatch.setenv("HARVEST_OUTPUT_DIR", str(tmp_path))
    monkeypatch.delenv("HARVEST_SCREENSHOT", raising=False)
