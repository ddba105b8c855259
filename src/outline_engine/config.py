"""Configuration constants for the outline engine."""

import os
from pathlib import Path

# Undo history depth. Oldest entries are evicted first.
UNDO_CAPACITY: int = 100

# Share of sibling groups that may change before a surgical index rebuild
# gives way to a full one.
FULL_REBUILD_RATIO: float = 0.1

# Delay before a debounced note/content edit is written.
NOTE_DEBOUNCE_SECONDS: float = 0.5

# Document opened when no id is given.
DEFAULT_DOCUMENT_ID: str = "00000000-0000-0000-0000-000000000001"

DATABASE_FILENAME: str = "outline.db"

# API token location for the remote backend. First file found is used.
API_TOKEN_FILES: list[Path] = [
    Path("~/.config/outline-token.txt").expanduser(),
    Path("~/.config/secret/outline-token.txt").expanduser(),
    Path(f"/run/user/{os.getuid()}/outline-token"),
]

# Directory with data. First directory which is found is used.
DATA_DIRECTORIES: list[Path] = [
    Path("~/.local/share/outline").expanduser(),
    Path("~/.outline").expanduser(),
    Path("~/.config/outline").expanduser(),
]


def resolve_data_directory() -> Path:
    """Return the data directory: $OUTLINE_DATA_DIR, else first existing candidate."""
    env_dir = os.environ.get("OUTLINE_DATA_DIR")
    if env_dir:
        return Path(env_dir).expanduser()
    for candidate in DATA_DIRECTORIES:
        if candidate.is_dir():
            return candidate
    return DATA_DIRECTORIES[0]


def resolve_api_url() -> str | None:
    """Return the remote backend base URL, if one is configured."""
    return os.environ.get("OUTLINE_API_URL") or None
