"""Test configuration and fixtures."""

from __future__ import annotations

import io
import tarfile
from pathlib import Path

import pytest

from dockhand.config import Settings, get_settings


@pytest.fixture
def test_settings() -> Settings:
    """Settings with defaults only (no config file)."""
    return Settings()


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def app_dir(tmp_path: Path) -> Path:
    """A small application tree.

    app/
      a.txt
      build.log
      sub/
        b.txt
        c.log
    """
    root = tmp_path / "app"
    (root / "sub").mkdir(parents=True)
    (root / "a.txt").write_text("alpha")
    (root / "build.log").write_text("noise")
    (root / "sub" / "b.txt").write_text("beta")
    (root / "sub" / "c.log").write_text("noise")
    return root


def open_archive(data: bytes) -> tarfile.TarFile:
    return tarfile.open(fileobj=io.BytesIO(data), mode="r:")


def no_logs(path: str) -> bool:
    return not path.endswith(".log")
