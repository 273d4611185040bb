from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class ItemStatus(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


class ItemResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    path: str
    status: ItemStatus
    reason: Optional[str] = None
    error: Optional[Exception] = None
    original_size: Optional[int] = None
    final_size: Optional[int] = None
    replaced: bool = False
    webp_created: bool = False

    @classmethod
    def skipped(cls, path: str, reason: str, **kwargs) -> "ItemResult":
        return cls(path=path, status=ItemStatus.SKIPPED, reason=reason, **kwargs)

    @classmethod
    def failed(cls, path: str, error: Exception) -> "ItemResult":
        return cls(
            path=path, status=ItemStatus.FAILED, reason=str(error), error=error
        )


class BatchReport(BaseModel):
    results: List[ItemResult] = Field(default_factory=list)

    def add(self, result: ItemResult):
        self.results.append(result)

    def _with_status(self, status: ItemStatus) -> List[ItemResult]:
        return [r for r in self.results if r.status == status]

    @property
    def succeeded(self) -> List[ItemResult]:
        return self._with_status(ItemStatus.SUCCESS)

    @property
    def skipped(self) -> List[ItemResult]:
        return self._with_status(ItemStatus.SKIPPED)

    @property
    def failed(self) -> List[ItemResult]:
        return self._with_status(ItemStatus.FAILED)

    @property
    def bytes_saved(self) -> int:
        return sum(
            r.original_size - r.final_size
            for r in self.results
            if r.replaced
            and r.original_size is not None
            and r.final_size is not None
        )


class SyncResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    folder: str
    uploaded: List[str] = Field(default_factory=list)
    deleted: List[str] = Field(default_factory=list)
    unchanged: int = 0
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class CommitState(str, Enum):
    CLEAN = "clean"
    COMMITTING = "committing"
    PUSHING = "pushing"
    CONFLICT = "conflict"
    PUSHED = "pushed"
    FAILED = "failed"


class CommitOutcome(BaseModel):
    state: CommitState
    attempts: int = 0
    commit: Optional[str] = None


class PipelineReport(BaseModel):
    exit_code: int = 0
    configured: bool = True
    optimization: BatchReport = Field(default_factory=BatchReport)
    manifests_written: List[str] = Field(default_factory=list)
    commit: Optional[CommitOutcome] = None
    sync: List[SyncResult] = Field(default_factory=list)

    @property
    def sync_failures(self) -> List[SyncResult]:
        return [s for s in self.sync if not s.ok]
