"""
pytest configuration

Goals:
- keep tests fast and deterministic
- avoid plotting and MPI during quick runs
- shrink the default grid unless a test overrides explicitly
"""

import os
import sys

import pytest

# Ensure project root on sys.path for 'pylandice' and 'scripts' imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)


@pytest.fixture(autouse=True)
def _landice_env(monkeypatch, tmp_path):
    # Small grid by default (tests can override via monkeypatch in the test)
    monkeypatch.setenv("LI_NX", os.getenv("LI_NX", "8"))
    monkeypatch.setenv("LI_NY", os.getenv("LI_NY", "6"))
    monkeypatch.setenv("LI_N_LEVELS", os.getenv("LI_N_LEVELS", "2"))
    monkeypatch.setenv("LI_N_STEPS", os.getenv("LI_N_STEPS", "2"))
    # Single process; threaded multi-process runs live in tests/harness.py
    monkeypatch.setenv("LI_COMM", "serial")
    monkeypatch.setenv("LI_PRINT_THICKNESS_ADVECTION_INFO", "0")
    monkeypatch.setenv("LI_ABORT_ON_ERROR", "0")
    # Short-circuit plots
    monkeypatch.setenv("LI_PLOT_EVERY", "0")
    monkeypatch.setenv("LI_OUTPUT_DIR", str(tmp_path / "output"))
    # Force non-interactive backend for matplotlib (avoid display requirements)
    monkeypatch.setenv("MPLBACKEND", os.getenv("MPLBACKEND", "Agg"))
    # Keep JAX path deterministic; tests validate boolean API only
    monkeypatch.setenv("LI_USE_JAX", os.getenv("LI_USE_JAX", "0"))
    yield
