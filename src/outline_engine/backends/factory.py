"""Pick the backend from configuration."""

from pathlib import Path

from loguru import logger

from outline_engine.api import OutlineApi
from outline_engine.backends.remote import RemoteBackend
from outline_engine.backends.sqlite import SqliteBackend
from outline_engine.config import DATABASE_FILENAME, resolve_api_url, resolve_data_directory


def database_path(data_dir: Path | None = None) -> Path:
    return (data_dir or resolve_data_directory()) / DATABASE_FILENAME


def open_backend(data_dir: Path | None = None) -> SqliteBackend | RemoteBackend:
    """Remote backend if ``$OUTLINE_API_URL`` is set, else the local database."""
    api_url = resolve_api_url()
    if api_url and data_dir is None:
        logger.debug("Using remote backend at {}", api_url)
        return RemoteBackend(OutlineApi(api_url))
    db_path = database_path(data_dir)
    logger.debug("Using database {}", db_path)
    return SqliteBackend(db_path)
