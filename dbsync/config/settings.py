from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "logs/dbsync.log"  # empty string disables the file handler

    # Internal document database
    DATA_DIR: str = "data"

    # Config file with credentials and table lists
    CONFIG_FILE_PATH: str = "./config/config.yml"

    # Export
    EXPORT_FILE: str = "export.sql"  # "-" writes to stdout
    EXPORT_BATCH_SIZE: int = 1000

    # Import
    IMPORT_BATCH_SIZE: int = 1000

    # Orchestration
    SYNC_MAX_CONCURRENCY: int = 1
    FAIL_ON_TABLE_ERROR: bool = False  # per-table failures flip the exit code

    # MySQL connection
    MYSQL_CHARSET: str = "utf8mb4"
    MYSQL_CONNECT_TIMEOUT: int = 30
    MYSQL_MIN_POOL_SIZE: int = 1
    MYSQL_MAX_POOL_SIZE: int = 5

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


# Create settings instance
settings = Settings()
