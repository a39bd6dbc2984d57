#!/usr/bin/env python3
"""
Configuration management for the audit web application.
"""

import os
from pathlib import Path
from functools import lru_cache

from audit_engine.config_loader import AppConfig, load_config


def _apply_env_overrides(config: AppConfig) -> AppConfig:
    """Apply web-server environment variable overrides to configuration."""
    web = config.web
    if 'WEB_HOST' in os.environ:
        web = web.model_copy(update={'host': os.environ['WEB_HOST']})
    if 'WEB_PORT' in os.environ:
        web = web.model_copy(update={'port': int(os.environ['WEB_PORT'])})
    return config.model_copy(update={'web': web})


@lru_cache()
def get_config() -> AppConfig:
    """
    Get application configuration with caching.

    Loads from the project config.yaml and applies environment variable
    overrides. Result is cached for performance.

    Returns:
        AppConfig: The application configuration.
    """
    config_path = get_project_root() / 'config.yaml'
    return _apply_env_overrides(load_config(str(config_path)))


def get_project_root() -> Path:
    """Get the project root directory."""
    return Path(__file__).parent.parent.parent
