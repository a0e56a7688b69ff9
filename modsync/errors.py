from __future__ import annotations


class ModSyncError(RuntimeError):
    pass


class ConfigurationError(ModSyncError):
    pass


class DomainError(ModSyncError):
    """A failure scoped to one managed module, such as a git command error."""


class RenderError(ModSyncError):
    pass


class ExternalCommandError(ModSyncError):
    def __init__(self, message: str, failures: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.failures = dict(failures or {})
