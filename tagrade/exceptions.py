from __future__ import annotations


class TagradeError(Exception):
    """Base class for batch setup failures."""


class ConfigError(TagradeError):
    pass


class SetupError(TagradeError):
    # Workspace / output problems that abort the whole batch.
    pass


class InvalidArchive(TagradeError):
    pass
