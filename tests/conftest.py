"""Shared pytest fixtures for opforge tests."""

from __future__ import annotations

from pathlib import Path
import sys
import types

import pytest


REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "unit: fast in-process tests")


@pytest.fixture(autouse=True)
def _fresh_settings():
    from opforge.settings import set_settings

    set_settings(None)
    yield
    set_settings(None)


@pytest.fixture
def make_host():
    """Build a fresh DynamicOperations subclass so rules never leak between tests."""
    from opforge.host import DynamicOperations

    def _make(name: str = "Host", *bases: type, **class_kwargs):
        return types.new_class(name, (DynamicOperations, *bases), class_kwargs)

    return _make


@pytest.fixture
def host_module(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Write an importable module defining a host class and return its module name."""

    def _write(module_name: str, source: str) -> str:
        (tmp_path / f"{module_name}.py").write_text(source, encoding="utf-8")
        monkeypatch.syspath_prepend(str(tmp_path))
        return module_name

    return _write
