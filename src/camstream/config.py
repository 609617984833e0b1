"""
camstream Configuration
=======================

This module handles configuration loading for the camera ingestion service.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    CAMSTREAM_URL              -> camera.url
    CAMSTREAM_LOGIN            -> camera.login
    CAMSTREAM_PASSWORD         -> camera.password
    CAMSTREAM_MODE             -> camera.mode
    CAMSTREAM_TIMEOUT_MS       -> camera.request_timeout_ms
    CAMSTREAM_MAX_FPS          -> camera.max_fps
    CAMSTREAM_RETRY_BACKOFF_MS -> ingestion.retry_backoff_ms
    CAMSTREAM_MAX_QUEUE_SIZE   -> ingestion.max_queue_size
    CAMSTREAM_PORT             -> server.port
    CAMSTREAM_LOG_LEVEL        -> logging.level
    PORT                       -> server.port (container platforms)

Example:
    from camstream.config import settings

    print(settings.camera.url)
    print(settings.ingestion.retry_backoff_ms)
"""

import os
import logging
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class ServiceConfig(BaseModel):
    """Service identification configuration."""

    name: str = Field(default="camstream", description="Service name")
    version: str = Field(default="0.1.0", description="Service version")


class CameraConfig(BaseModel):
    """Camera endpoint configuration (raw, templates unresolved)."""

    url: str = Field(
        default="",
        description="Camera stream URL; may contain [USERNAME], [PASSWORD], [CHANNEL]",
    )
    login: str = Field(default="", description="HTTP auth username")
    password: str = Field(default="", description="HTTP auth password")
    channel: str = Field(default="0", description="Channel id for [CHANNEL] templates")
    cookies: str = Field(
        default="",
        description="Cookies as 'name=value;name2=value2'",
    )
    headers: str = Field(
        default="",
        description="Extra headers as 'Name=value&Name2=value2'",
    )
    user_agent: str = Field(default="camstream/0.1", description="User-Agent header")
    request_timeout_ms: int = Field(
        default=5000,
        ge=100,
        description="Connect and read timeout in milliseconds",
    )
    use_http10: bool = Field(default=False, description="Send HTTP/1.0 requests")
    proxy: Optional[str] = Field(default=None, description="Proxy URL")
    auth_scheme: Literal["basic", "digest"] = Field(
        default="basic",
        description="HTTP auth scheme used when login or password is set",
    )
    mode: Literal["multipart", "jpeg"] = Field(
        default="multipart",
        description="'multipart' for MJPEG streams, 'jpeg' to poll single images",
    )
    max_fps: float = Field(
        default=0.0,
        ge=0,
        description="Maximum frames delivered per second (0 = unlimited)",
    )


class IngestionConfig(BaseModel):
    """Read loop and retry policy configuration."""

    read_size: int = Field(
        default=1024,
        ge=64,
        description="Bytes requested per read",
    )
    buffer_size: int = Field(
        default=1024 * 1024,
        ge=1024,
        description="Frame accumulation capacity in bytes",
    )
    max_consecutive_errors: int = Field(
        default=3,
        ge=0,
        description="Consecutive errors tolerated before the device is lost",
    )
    retry_backoff_ms: int = Field(
        default=250,
        ge=0,
        description="Wait between failed attempts in milliseconds",
    )
    poll_interval_ms: int = Field(
        default=10,
        ge=0,
        description="Wait between requests in jpeg polling mode",
    )
    max_queue_size: int = Field(
        default=50,
        ge=1,
        description="Maximum size of the frame buffer",
    )
    decode_frames: bool = Field(
        default=False,
        description="Decode every frame with OpenCV and reject malformed ones",
    )
    auto_start: bool = Field(
        default=True,
        description="Start ingesting when the service starts",
    )


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8080, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for camstream.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    camera: CameraConfig = Field(default_factory=CameraConfig)
    ingestion: IngestionConfig = Field(default_factory=IngestionConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        config_path = os.environ.get("CAMSTREAM_CONFIG")

    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path("/etc/camstream/config.yaml"),
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Camera settings
    if env_url := os.environ.get("CAMSTREAM_URL"):
        config_data.setdefault("camera", {})["url"] = env_url
    if env_login := os.environ.get("CAMSTREAM_LOGIN"):
        config_data.setdefault("camera", {})["login"] = env_login
    if env_password := os.environ.get("CAMSTREAM_PASSWORD"):
        config_data.setdefault("camera", {})["password"] = env_password
    if env_mode := os.environ.get("CAMSTREAM_MODE"):
        config_data.setdefault("camera", {})["mode"] = env_mode
    if env_timeout := os.environ.get("CAMSTREAM_TIMEOUT_MS"):
        config_data.setdefault("camera", {})["request_timeout_ms"] = int(env_timeout)
    if env_fps := os.environ.get("CAMSTREAM_MAX_FPS"):
        config_data.setdefault("camera", {})["max_fps"] = float(env_fps)

    # Ingestion settings
    if env_backoff := os.environ.get("CAMSTREAM_RETRY_BACKOFF_MS"):
        config_data.setdefault("ingestion", {})["retry_backoff_ms"] = int(env_backoff)
    if env_queue := os.environ.get("CAMSTREAM_MAX_QUEUE_SIZE"):
        config_data.setdefault("ingestion", {})["max_queue_size"] = int(env_queue)

    # Server settings (container platforms use PORT)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("CAMSTREAM_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("CAMSTREAM_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
