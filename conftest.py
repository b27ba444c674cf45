"""Configure pytest for the auth project."""
import os
import sys
from pathlib import Path

# =============================================================================
# Test Environment Configuration
# =============================================================================
# Set environment for tests BEFORE any imports
# app.main builds the app at import time; keep it on the in-memory provider
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("AUTH_PROVIDER", "memory")

# Add repo root so tests can import app and auth
root_path = Path(__file__).parent
if str(root_path) not in sys.path:
    sys.path.insert(0, str(root_path))


def pytest_configure(config):
    """Ensure paths and environment are set before test collection."""
    os.environ.setdefault("ENVIRONMENT", "test")
    os.environ.setdefault("AUTH_PROVIDER", "memory")

    root = str(Path(__file__).parent)
    if root not in sys.path:
        sys.path.insert(0, root)
