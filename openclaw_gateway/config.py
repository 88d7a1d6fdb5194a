"""Configuration loader for the gateway.

Reads YAML configuration file, applies environment overrides and validates it
using Pydantic models.
"""

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from openclaw_gateway.models import GatewayConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / "config.yml"


def _apply_env_overrides(data: dict) -> dict:
    """Overlay environment variables onto raw config data."""
    token = os.getenv("GATEWAY_AUTH_TOKEN")
    if token:
        data.setdefault("auth", {})["token"] = token

    compose_file = os.getenv("COMPOSE_FILE")
    if compose_file:
        data.setdefault("control", {})["compose_file"] = compose_file

    project_dir = os.getenv("PROJECT_DIR")
    if project_dir:
        data.setdefault("control", {})["project_dir"] = project_dir

    backend = os.getenv("CONTROL_BACKEND")
    if backend:
        data.setdefault("control", {})["backend"] = backend

    interval = os.getenv("BROADCAST_INTERVAL")
    if interval:
        data.setdefault("broadcast", {})["interval_seconds"] = float(interval)

    cors = os.getenv("CORS_ORIGIN")
    if cors:
        data["cors_origins"] = [origin.strip() for origin in cors.split(",") if origin.strip()]

    return data


def load_config(config_path: Optional[str] = None) -> GatewayConfig:
    """Load and validate configuration from YAML file.

    Args:
        config_path: Path to config file. If None, reads from CONFIG_FILE
            environment variable or defaults to the config.yml shipped with
            the package.

    Returns:
        Validated GatewayConfig object.

    Raises:
        FileNotFoundError: If config file does not exist.
        ValidationError: If config file does not match expected schema.
        yaml.YAMLError: If config file is not valid YAML.
    """
    if config_path is None:
        config_path = os.getenv("CONFIG_FILE", str(DEFAULT_CONFIG_PATH))

    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.info(f"Loading configuration from {config_path}")

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if data is None:
            data = {}

        config = GatewayConfig(**_apply_env_overrides(data))
        logger.info(f"Loaded configuration for {len(config.services)} services")
        return config

    except yaml.YAMLError as e:
        logger.error(f"Failed to parse YAML: {e}")
        raise
    except ValidationError as e:
        logger.error(f"Configuration validation failed: {e}")
        raise
    except Exception as e:
        logger.error(f"Unexpected error loading config: {e}")
        raise
