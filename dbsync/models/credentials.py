"""
Connection credentials for the external database, as found in the config file.
"""

from typing import Union

from pydantic import BaseModel, ConfigDict, Field


class MySqlCredentials(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    host: str
    user: str
    password: str
    database: str
    port: int = Field(..., ge=1, le=65535)

    @property
    def dialect(self) -> str:
        return "mysql"

    def describe(self) -> str:
        return f"mysql://{self.user}@{self.host}:{self.port}/{self.database}"


class SqliteCredentials(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    file_path: str

    @property
    def dialect(self) -> str:
        return "sqlite"

    def describe(self) -> str:
        return f"sqlite:///{self.file_path}"


# Untagged in the YAML file; the two shapes never overlap
Credentials = Union[MySqlCredentials, SqliteCredentials]
