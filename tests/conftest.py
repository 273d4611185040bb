import os
import random
import subprocess
from pathlib import Path

import pytest
from hypothesis import HealthCheck, settings as hypothesis_settings
from PIL import Image

from asset_sync.core.config import Settings

hypothesis_settings.register_profile(
    "ci",
    max_examples=50,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow],
)
hypothesis_settings.register_profile(
    "quick",
    max_examples=10,
    deadline=None,
    derandomize=True,
)
hypothesis_settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


def _noise(size, seed=0):
    width, height = size
    rng = random.Random(seed)
    return Image.frombytes(
        "RGB", size, rng.randbytes(width * height * 3)
    )


@pytest.fixture
def make_jpeg():
    def _make(path: Path, size=(400, 300), quality=100, seed=0, **save_kwargs):
        path.parent.mkdir(parents=True, exist_ok=True)
        _noise(size, seed).save(path, "JPEG", quality=quality, **save_kwargs)
        return path

    return _make


@pytest.fixture
def make_png():
    def _make(path: Path, size=(400, 300), noisy=False, compress_level=0):
        path.parent.mkdir(parents=True, exist_ok=True)
        if noisy:
            image = _noise(size)
        else:
            image = Image.new("RGB", size, (200, 120, 40))
        image.save(path, "PNG", compress_level=compress_level)
        return path

    return _make


@pytest.fixture
def repo(tmp_path) -> Path:
    root = tmp_path / "repo"
    root.mkdir()
    return root


@pytest.fixture
def settings(repo, tmp_path) -> Settings:
    return Settings(
        root=repo,
        base_url="https://cdn.example.com",
        bucket_name="test-bucket",
        storage_backend="local",
        local_storage_path=str(tmp_path / "remote"),
        max_width=200,
        max_height=100,
        retry_delay=0,
    )


def git(*args, cwd):
    return subprocess.run(
        ["git", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
        text=True,
    )


def _configure_clone(path):
    git("config", "user.name", "Test User", cwd=path)
    git("config", "user.email", "test@example.com", cwd=path)
    git("config", "commit.gpgsign", "false", cwd=path)


@pytest.fixture
def git_remote(tmp_path):
    """A bare ``origin`` with one commit on ``main`` and a working clone.

    Returns ``(remote_path, clone_factory)``; the factory clones ``origin``
    into a new directory with a test identity configured.
    """
    remote = tmp_path / "origin.git"
    git("init", "--bare", str(remote), cwd=tmp_path)
    git("symbolic-ref", "HEAD", "refs/heads/main", cwd=remote)

    seed = tmp_path / "seed"
    git("clone", str(remote), str(seed), cwd=tmp_path)
    git("symbolic-ref", "HEAD", "refs/heads/main", cwd=seed)
    _configure_clone(seed)
    (seed / "README.md").write_text("assets\n")
    git("add", "README.md", cwd=seed)
    git("commit", "-m", "initial", cwd=seed)
    git("push", "origin", "HEAD:main", cwd=seed)

    def clone(name):
        path = tmp_path / name
        git("clone", "--branch", "main", str(remote), str(path), cwd=tmp_path)
        _configure_clone(path)
        return path

    return remote, clone


@pytest.fixture
def run_git():
    return git


@pytest.fixture
def lock_dir():
    """Make directories unreadable for the duration of a test."""
    if not hasattr(os, "geteuid") or os.geteuid() == 0:
        pytest.skip("directory permissions are not enforced for this user")
    locked = []

    def lock(path: Path):
        path.chmod(0)
        locked.append(path)

    yield lock
    for path in locked:
        path.chmod(0o755)
