"""Shared fixtures for the ripper tests."""

import pytest

import hr_common


@pytest.fixture(autouse=True)
def log_file(tmp_path, monkeypatch):
    """Send log() output to a per-test file instead of ./download.log."""
    path = tmp_path / "test.log"
    monkeypatch.setattr(hr_common, "LOG_FILE", str(path))
    return path


@pytest.fixture
def out_dir(tmp_path):
    path = tmp_path / "out"
    path.mkdir()
    return path
