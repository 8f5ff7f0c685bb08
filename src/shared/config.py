from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    APP_NAME: str = "localca"
    LOG_LEVEL: str = "WARNING"

    # CA home directory (overridden by --ca-dir on the command line)
    CAROOT: Optional[str] = None
    DEFAULT_CA_DIR_NAME: str = ".localca"

    # Telemetry: export spans and metrics to the console
    OTEL_CONSOLE_EXPORT: bool = False


settings = Settings()
