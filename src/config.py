"""Shared configuration for vault-tags."""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: bool) -> bool:
    """Read a boolean environment variable ("1", "true", "yes", "on")."""
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# Vault path - where your markdown notes live
VAULT_PATH = Path(os.getenv("VAULT_PATH", "~/Documents/obsidian-vault")).expanduser()

# Subdirectory whose folder structure maps onto dir-tags
TAG_ROOT = os.getenv("TAG_ROOT", "Notas")

# Directory skipped by every scan
TEMPLATES_DIR = os.getenv("TEMPLATES_DIR", "Templates")

# Archive marker: directories with this name are skipped unless archived notes are included
ARCHIVE_DIR = os.getenv("ARCHIVE_DIR", "Archived")
INCLUDE_ARCHIVED = _env_flag("INCLUDE_ARCHIVED", False)

# Backups written before every destructive write (vault-relative)
BACKUP_DIR = os.getenv("BACKUP_DIR", ".arc/backups")
BACKUPS_ENABLED = _env_flag("BACKUPS_ENABLED", True)

# Retag records the previous dir-tag in the note's aliases
ALIASES_ENABLED = _env_flag("ALIASES_ENABLED", True)
DATE_FORMAT = os.getenv("DATE_FORMAT", "%Y-%m-%d")

# Tag cache snapshots (one file per vault)
_config_home = Path(os.getenv("XDG_CONFIG_HOME", "~/.config")).expanduser()
TAG_CACHE_DIR = Path(
    os.getenv("TAG_CACHE_DIR", str(_config_home / "vault-tags"))
).expanduser()

# Pagination defaults for list tools
LIST_DEFAULT_LIMIT = 500
LIST_MAX_LIMIT = 2000

# Batch operations
BATCH_CONFIRM_THRESHOLD = 5  # Require confirmation above this many files

# Logging configuration
LOG_DIR = Path(os.getenv("LOG_DIR", str(VAULT_PATH / ".arc" / "logs"))).expanduser()
LOG_MAX_BYTES = int(os.getenv("LOG_MAX_BYTES", str(5 * 1024 * 1024)))  # 5 MB
LOG_BACKUP_COUNT = int(os.getenv("LOG_BACKUP_COUNT", "3"))


def setup_logging(name: str, level: int = logging.INFO) -> None:
    """Configure logging with both stderr and rotating file output.

    Args:
        name: Log file name without extension (e.g. "mcp", "index_tags").
        level: Root logger level.
    """
    fmt = "%(asctime)s %(name)s %(levelname)s %(message)s"
    root = logging.getLogger()
    root.setLevel(level)

    stderr_handler = logging.StreamHandler()
    stderr_handler.setFormatter(logging.Formatter(fmt))
    root.addHandler(stderr_handler)

    # Rotating file handler (best-effort, fall back to stderr-only)
    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            LOG_DIR / f"{name}.log",
            maxBytes=LOG_MAX_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(fmt))
        root.addHandler(file_handler)
    except OSError as e:
        root.warning(f"Could not set up file logging: {e}; using stderr only")
