"""Blob storage configuration."""

import os
from pathlib import Path
from typing import Any

import yaml

from .base import StorageConfig

DEFAULT_MAX_FILE_SIZE = 100 * 1024 * 1024  # 100MB


def load_storage_config(
    config_path: Path | None = None, env_prefix: str = "BOARDSTORE_STORAGE_"
) -> StorageConfig:
    """Load storage configuration from a YAML file and environment variables.

    Args:
        config_path: Path to YAML configuration file with a top-level ``storage`` key
        env_prefix: Prefix for environment variable overrides

    Returns:
        StorageConfig instance
    """
    config_data: dict[str, Any] = {
        "default_provider": "memory",
        "providers": {"memory": {"type": "memory", "config": {}}},
        "max_file_size": DEFAULT_MAX_FILE_SIZE,
    }

    if config_path and config_path.exists():
        try:
            with open(config_path) as f:
                file_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ValueError(f"Failed to load storage config from {config_path}: {e}") from e

        if file_config.get("storage"):
            config_data.update(file_config["storage"])

    config_data = _apply_env_overrides(config_data, env_prefix)

    return StorageConfig(
        default_provider=config_data["default_provider"],
        providers=config_data["providers"],
        max_file_size=config_data.get("max_file_size", DEFAULT_MAX_FILE_SIZE),
        allowed_content_types=set(config_data.get("allowed_content_types", [])),
    )


def _apply_env_overrides(config_data: dict[str, Any], env_prefix: str) -> dict[str, Any]:
    """Apply environment variable overrides to configuration."""
    default_provider = os.getenv(f"{env_prefix}DEFAULT_PROVIDER")
    if default_provider:
        config_data["default_provider"] = default_provider

    max_file_size = os.getenv(f"{env_prefix}MAX_FILE_SIZE")
    if max_file_size:
        config_data["max_file_size"] = int(max_file_size)

    local_base_path = os.getenv(f"{env_prefix}LOCAL_BASE_PATH")
    if local_base_path:
        config_data["providers"]["local"] = {
            "type": "local",
            "config": {"base_path": local_base_path},
        }

    return config_data


def create_example_config() -> str:
    """Create an example storage configuration YAML."""
    config = {
        "storage": {
            "default_provider": "local",
            "providers": {
                "memory": {"type": "memory", "config": {}},
                "local": {
                    "type": "local",
                    "config": {"base_path": "/var/boardstore/blobs"},
                },
            },
            "max_file_size": 20971520,  # 20MB
            "allowed_content_types": ["application/octet-stream"],
        }
    }

    return yaml.dump(config, default_flow_style=False, indent=2)
