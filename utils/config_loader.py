"""Configuration management utilities."""

import logging
from pathlib import Path
from typing import Any, Dict

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / 'configs' / 'expression_tracker.yaml'


def load_config(config_path=DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """
    Load configuration from YAML file.
    
    Args:
        config_path: Path to YAML configuration file (str or Path)
        
    Returns:
        Dictionary containing configuration (empty for an empty file)
        
    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If the top level of the file is not a mapping
        yaml.YAMLError: If config file is malformed
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    
    logger.info(f"Loading configuration from {config_path}")
    
    with open(config_path, 'r') as f:
        config = yaml.safe_load(f)
    
    if config is None:
        logger.warning(f"Config file {config_path} is empty, using defaults")
        return {}
    
    if not isinstance(config, dict):
        raise ValueError(
            f"Config file {config_path} must contain a mapping, got {type(config).__name__}"
        )
    
    logger.debug(f"Loaded config keys: {list(config.keys())}")
    
    return config


def get_nested_config(config: Dict[str, Any], key_path: str, default: Any = None) -> Any:
    """
    Get nested configuration value using dot notation.
    
    Example:
        get_nested_config(config, 'tracker.change_threshold', default=0.15)
    
    Args:
        config: Configuration dictionary
        key_path: Dot-separated path to value
        default: Default value if path not found or set to null
        
    Returns:
        Configuration value or default
    """
    keys = key_path.split('.')
    value = config
    
    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    
    return default if value is None else value
