"""Error taxonomy for tag operations."""


class TagError(Exception):
    """Base class for tag subsystem errors."""


class InvalidTag(TagError, ValueError):
    """Tag input is empty or made only of empty segments."""


class NoteParseError(TagError):
    """A note could not be read or its frontmatter is malformed."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class CacheCorrupt(TagError):
    """The tag cache snapshot is unreadable or fails validation."""


class CacheUnwritable(TagError):
    """The tag cache directory cannot be created or written."""


class BackupFailed(TagError):
    """Writing the pre-mutation backup copy failed."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Backup failed for {path}: {reason}")
        self.path = path
        self.reason = reason


class VaultUnreachable(TagError):
    """The vault root is missing, not a directory, or unreadable."""
