import asyncio
import json
import shutil
import subprocess

import pytest

from asset_sync.models.results import CommitState
from asset_sync.scripts.run_pipeline import main
from asset_sync.services.git_operations import RepositoryCommitter
from asset_sync.services.local_filesystem_storage_service import (
    LocalFilesystemStorageService,
)
from asset_sync.services.pipeline import run_pipeline

requires_git = pytest.mark.skipif(
    shutil.which("git") is None, reason="git is not installed"
)


class RecordingStorage(LocalFilesystemStorageService):
    def __init__(self, base_path):
        super().__init__(base_path)
        self.calls = 0

    async def list_objects(self, bucket, prefix):
        self.calls += 1
        return await super().list_objects(bucket, prefix)


@pytest.fixture
def site(repo, make_jpeg, make_png):
    make_jpeg(repo / "assets/images/hero.jpg", size=(600, 300))
    make_png(repo / "assets/images-webp/gallery.png", size=(400, 300))
    (repo / "assets/images/.gitkeep").write_bytes(b"")
    return repo


async def test_placeholder_configuration_is_a_no_op(site, settings):
    settings = settings.model_copy(update={"bucket_name": "your-bucket-name"})
    before = (site / "assets/images/hero.jpg").read_bytes()

    report = await run_pipeline(settings, commit=False, sync=False)

    assert report.exit_code == 0
    assert not report.configured
    assert (site / "assets/images/hero.jpg").read_bytes() == before
    assert not (site / "assets/manifest.json").exists()


async def test_no_asset_folders_is_a_no_op(repo, settings):
    (repo / "docs").mkdir()
    (repo / "docs/photo.png").write_bytes(b"x")

    report = await run_pipeline(settings, commit=False, sync=False)

    assert report.exit_code == 0
    assert report.manifests_written == []


async def test_optimizes_builds_manifest_and_syncs(site, settings, tmp_path):
    storage = LocalFilesystemStorageService(str(tmp_path / "remote"))

    report = await run_pipeline(settings, commit=False, storage=storage)

    assert report.exit_code == 0
    assert report.manifests_written == ["assets/manifest.json"]
    manifest = json.loads((site / "assets/manifest.json").read_text("utf-8"))
    entries = {f["path"]: f for f in manifest["files"]}
    assert list(entries) == [
        "images-webp/gallery.png",
        "images-webp/gallery.webp",
        "images/hero.jpg",
    ]
    assert entries["images-webp/gallery.png"]["optimization"] == "compress"
    assert entries["images-webp/gallery.webp"]["optimization"] == "webp"
    assert entries["images/hero.jpg"]["size"] == (
        site / "assets/images/hero.jpg"
    ).stat().st_size
    assert manifest["total_size"] == sum(f["size"] for f in manifest["files"])

    assert [s.folder for s in report.sync] == ["assets"]
    assert report.sync[0].ok
    remote = tmp_path / "remote" / "test-bucket" / "assets"
    assert (remote / "manifest.json").exists()
    assert (remote / "images-webp/gallery.webp").exists()
    assert (site / ".image-cache/optimized.json").exists()


async def test_root_level_webp_folder_lists_sibling_as_webp(
    repo, settings, make_png
):
    make_png(repo / "images-webp/gallery.png", size=(400, 300))

    report = await run_pipeline(settings, commit=False, sync=False)

    assert report.manifests_written == ["images-webp/manifest.json"]
    manifest = json.loads(
        (repo / "images-webp/manifest.json").read_text("utf-8")
    )
    kinds = {f["path"]: f["optimization"] for f in manifest["files"]}
    assert kinds == {"gallery.png": "compress", "gallery.webp": "webp"}


async def test_second_run_changes_nothing(site, settings, tmp_path):
    storage = LocalFilesystemStorageService(str(tmp_path / "remote"))
    await run_pipeline(settings, commit=False, storage=storage)
    snapshot = {
        p: p.read_bytes() for p in (site / "assets").rglob("*") if p.is_file()
    }

    report = await run_pipeline(settings, commit=False, storage=storage)

    after = {
        p: p.read_bytes() for p in (site / "assets").rglob("*") if p.is_file()
    }
    assert after == snapshot
    assert report.manifests_written == []
    assert report.optimization.succeeded == []
    assert report.sync[0].uploaded == []


async def test_push_exhaustion_fails_run_before_sync(site, settings, tmp_path):
    def runner(cmd, cwd, check=True, timeout=None):
        returncode = 1 if cmd[1] in ("push", "diff") else 0
        return subprocess.CompletedProcess(cmd, returncode, "abc\n", "rejected")

    committer = RepositoryCommitter(
        str(site), runner=runner, sleep=lambda s: None
    )
    storage = RecordingStorage(str(tmp_path / "remote"))

    report = await run_pipeline(settings, storage=storage, committer=committer)

    assert report.exit_code == 1
    assert report.commit.state == CommitState.FAILED
    assert report.commit.attempts == 3
    assert storage.calls == 0
    assert report.sync == []


async def test_git_error_skips_sync_without_failing_run(
    site, settings, tmp_path
):
    def runner(cmd, cwd, check=True, timeout=None):
        raise subprocess.CalledProcessError(128, cmd, "", "not a git repository")

    committer = RepositoryCommitter(str(site), runner=runner)
    storage = RecordingStorage(str(tmp_path / "remote"))

    report = await run_pipeline(settings, storage=storage, committer=committer)

    assert report.exit_code == 0
    assert report.commit.state == CommitState.FAILED
    assert report.manifests_written == ["assets/manifest.json"]
    assert storage.calls == 0


@requires_git
async def test_full_run_commits_then_second_run_is_clean(
    git_remote, run_git, settings, make_jpeg, make_png, tmp_path
):
    remote, clone = git_remote
    work = clone("work")
    make_jpeg(work / "assets/images/hero.jpg", size=(600, 300))
    make_png(work / "assets/images-webp/gallery.png", size=(400, 300))
    settings = settings.model_copy(update={"root": work})
    storage = LocalFilesystemStorageService(str(tmp_path / "remote"))

    first = await run_pipeline(settings, storage=storage)

    assert first.exit_code == 0
    assert first.commit.state == CommitState.PUSHED
    tracked = run_git("ls-tree", "-r", "--name-only", "main", cwd=remote).stdout
    assert "assets/manifest.json" in tracked
    assert "assets/images-webp/gallery.webp" in tracked
    assert ".image-cache" not in tracked

    second = await run_pipeline(settings, storage=storage)

    assert second.exit_code == 0
    assert second.commit.state == CommitState.CLEAN


def test_cli_exits_zero_with_placeholder_config(repo, monkeypatch):
    monkeypatch.chdir(repo)
    for name in ("BASE_URL", "BUCKET_NAME"):
        monkeypatch.delenv(name, raising=False)
    (repo / "assets/images").mkdir(parents=True)

    assert asyncio.run(main(["--root", str(repo)])) == 0


def test_cli_runs_local_pipeline(site, monkeypatch, tmp_path):
    monkeypatch.chdir(site)
    monkeypatch.setenv("BASE_URL", "https://cdn.example.com")
    monkeypatch.setenv("BUCKET_NAME", "test-bucket")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("LOCAL_STORAGE_PATH", str(tmp_path / "cli-remote"))
    monkeypatch.setenv("MAX_WIDTH", "200")
    monkeypatch.setenv("MAX_HEIGHT", "100")

    code = asyncio.run(main(["--root", str(site), "--skip-commit"]))

    assert code == 0
    assert (site / "assets/manifest.json").exists()
    assert (
        tmp_path / "cli-remote/test-bucket/assets/images/hero.jpg"
    ).exists()
