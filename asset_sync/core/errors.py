class AssetSyncError(Exception):
    pass


class ConfigurationError(AssetSyncError):
    """Placeholder or missing settings; the run is skipped, not failed."""


class AssetProcessingError(AssetSyncError):
    def __init__(self, path: str, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path


class SyncError(AssetSyncError):
    def __init__(self, folder: str, message: str):
        super().__init__(f"{folder}: {message}")
        self.folder = folder


class CommitConflictError(AssetSyncError):
    def __init__(self, attempts: int, message: str = "push rejected"):
        super().__init__(f"{message} after {attempts} attempt(s)")
        self.attempts = attempts


class StorageError(AssetSyncError):
    """A storage backend call failed."""
