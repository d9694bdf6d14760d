"""Configuration and logging setup for the Freepare panel server."""

import logging
import sys

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import APIConfiguration

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"


class ServerConfig(BaseSettings):
    """Settings read from ``FREEPARE_*`` environment variables (or ``.env``)."""

    model_config = SettingsConfigDict(env_prefix="FREEPARE_", env_file=".env", extra="ignore")

    api_base_url: str = Field("https://freepare.onrender.com/api", description="Backend API root")
    api_timeout: float = Field(30.0, gt=0, description="HTTP timeout in seconds")
    read_max_retries: int = Field(10, ge=1, description="Attempts when loading the tree")
    undo_window_seconds: float = Field(5.0, gt=0, description="Grace window for undoing a delete")
    undo_tick_seconds: float = Field(1.0, gt=0, description="Countdown tick interval")
    log_level: str = Field("INFO", description="Root log level")

    def get_api_config(self) -> APIConfiguration:
        """Connection settings for ``PanelClient``."""
        return APIConfiguration(
            base_url=self.api_base_url,
            timeout=self.api_timeout,
            read_max_retries=self.read_max_retries,
        )


def setup_logging(level: str = "INFO") -> None:
    """Send log records to stderr (stdout carries the MCP stdio protocol)."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level.upper())

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
