"""Commit regenerated assets and push them with bounded retries.

States: CLEAN -> COMMITTING -> PUSHING -> PUSHED, with PUSHING -> CONFLICT ->
PUSHING while attempts remain. Before every retry the branch is rebased onto
the latest remote history, since a concurrent run is the usual reason for a
rejected push. Running out of attempts ends in FAILED and raises
CommitConflictError.
"""

import logging
import subprocess
import time
from typing import Callable, Iterable, List

from asset_sync.core.config import Settings
from asset_sync.core.errors import CommitConflictError
from asset_sync.models.results import CommitOutcome, CommitState

logger = logging.getLogger(__name__)


def run(
    cmd: List[str], cwd: str, check: bool = True, timeout: float = 120.0
) -> subprocess.CompletedProcess:
    return subprocess.run(
        cmd,
        cwd=cwd,
        check=check,
        capture_output=True,
        text=True,
        timeout=timeout,
    )


class RepositoryCommitter:
    def __init__(
        self,
        repo_dir: str,
        branch: str = "main",
        remote: str = "origin",
        max_attempts: int = 3,
        retry_delay: float = 5.0,
        user_name: str = "github-actions[bot]",
        user_email: str = "",
        message: str = "Auto-optimize images and update manifests [skip ci]",
        timeout: float = 120.0,
        runner: Callable[..., subprocess.CompletedProcess] = run,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.repo_dir = repo_dir
        self.branch = branch
        self.remote = remote
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.user_name = user_name
        self.user_email = user_email
        self.message = message
        self.timeout = timeout
        self.runner = runner
        self.sleep = sleep
        self.state = CommitState.CLEAN

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs):
        return cls(
            str(settings.root),
            branch=settings.branch,
            max_attempts=settings.push_attempts,
            retry_delay=settings.retry_delay,
            user_name=settings.git_user_name,
            user_email=settings.git_user_email,
            message=settings.commit_message,
            timeout=settings.git_timeout,
            **kwargs,
        )

    def _git(self, *args: str, check: bool = True):
        return self.runner(
            ["git", *args],
            cwd=self.repo_dir,
            check=check,
            timeout=self.timeout,
        )

    def configure_identity(self):
        self._git("config", "--local", "user.name", self.user_name)
        if self.user_email:
            self._git("config", "--local", "user.email", self.user_email)

    def stage(self, paths: Iterable[str]):
        self._git("add", "-A", "--", *paths)

    def has_staged_changes(self, paths: Iterable[str]) -> bool:
        proc = self._git("diff", "--cached", "--quiet", "--", *paths, check=False)
        return proc.returncode != 0

    def head(self) -> str:
        return self._git("rev-parse", "HEAD").stdout.strip()

    def _push(self) -> bool:
        try:
            proc = self._git(
                "push", self.remote, f"HEAD:{self.branch}", check=False
            )
        except subprocess.TimeoutExpired:
            logger.warning("git push timed out after %ss", self.timeout)
            return False
        if proc.returncode != 0:
            logger.warning("Push rejected: %s", (proc.stderr or "").strip())
        return proc.returncode == 0

    def _resync(self):
        try:
            proc = self._git(
                "pull", "--rebase", self.remote, self.branch, check=False
            )
        except subprocess.TimeoutExpired:
            logger.warning("git pull timed out after %ss", self.timeout)
            return
        if proc.returncode != 0:
            logger.warning("Rebase failed: %s", (proc.stderr or "").strip())
            self._git("rebase", "--abort", check=False)

    def commit_and_push(self, paths: Iterable[str]) -> CommitOutcome:
        paths = list(paths)
        self.state = CommitState.CLEAN
        if not paths:
            logger.info("No asset folders to commit")
            return CommitOutcome(state=self.state)

        self.stage(paths)
        if not self.has_staged_changes(paths):
            logger.info("No changes to commit")
            return CommitOutcome(state=self.state)

        self.state = CommitState.COMMITTING
        self.configure_identity()
        # pathspec keeps unrelated staged files out of the bot commit
        self._git("commit", "-m", self.message, "--", *paths)
        logger.info("Committed %s", self.head())

        for attempt in range(1, self.max_attempts + 1):
            self.state = CommitState.PUSHING
            logger.info(
                "Attempting to push (attempt %d/%d)...",
                attempt,
                self.max_attempts,
            )
            if self._push():
                self.state = CommitState.PUSHED
                logger.info("Successfully pushed changes to %s", self.branch)
                return CommitOutcome(
                    state=self.state, attempts=attempt, commit=self.head()
                )

            self.state = CommitState.CONFLICT
            if attempt < self.max_attempts:
                delay = self.retry_delay * attempt
                logger.info("Waiting %.1f seconds before retry...", delay)
                self.sleep(delay)
                self._resync()

        self.state = CommitState.FAILED
        logger.error("All %d push attempts failed", self.max_attempts)
        raise CommitConflictError(self.max_attempts)
