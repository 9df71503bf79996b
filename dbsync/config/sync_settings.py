"""
Sync configuration file (YAML).
Holds the external database credentials and the configured table lists.
"""

import logging
from pathlib import Path
from typing import List, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

from ..core.errors import ConfigurationError
from ..models.credentials import MySqlCredentials, SqliteCredentials

logger = logging.getLogger(__name__)


class SyncConfigFile(BaseModel):
    """Contents of config.yml."""

    db: Union[MySqlCredentials, SqliteCredentials]
    include: List[str] = Field(default_factory=list)
    exclude: List[str] = Field(default_factory=list)
    exportignore: List[str] = Field(default_factory=list)
    # Tables treated as dynamic (player data) when importing schemas
    dynamic: List[str] = Field(default_factory=list)


def load_sync_config(path: Union[str, Path]) -> SyncConfigFile:
    """
    Read and validate the YAML config file.

    Raises:
        ConfigurationError: file missing, not valid YAML, or credentials that
            match neither the MySQL nor the SQLite shape.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Config file {path} is not valid YAML: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")

    # An explicit empty list in YAML comes back as None
    for key in ("include", "exclude", "exportignore", "dynamic"):
        if key in data and data[key] is None:
            data[key] = []

    try:
        config = SyncConfigFile.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid config file {path}: {e}") from e

    logger.debug(f"Loaded sync config from {path} ({config.db.dialect} credentials)")
    return config
