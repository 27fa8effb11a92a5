"""Shared utilities for the expression tracking pipeline."""

from .config_loader import DEFAULT_CONFIG_PATH, get_nested_config, load_config

__all__ = [
    'DEFAULT_CONFIG_PATH',
    'get_nested_config',
    'load_config',
]
