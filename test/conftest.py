# Standard library
import os

# Third-party
import pytest


# Keep every test away from the user's real config folder and token
@pytest.fixture(autouse=True)
def confdir(tmp_path, monkeypatch):
    # Folder for config files and token
    fdir = tmp_path / "ginconfig"
    fdir.mkdir()
    monkeypatch.setenv("GIN_CONFIG_DIR", str(fdir))
    # Git identity for commits made by tests
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.org")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.org")
    return str(fdir)


# Run test in a fresh empty folder
@pytest.fixture
def sandbox(tmp_path, monkeypatch):
    fdir = tmp_path / "work"
    fdir.mkdir()
    monkeypatch.chdir(fdir)
    return os.getcwd()
