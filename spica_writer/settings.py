"""
Configuration loading and logging setup.
"""

import logging
import os
from pathlib import Path
from typing import Dict, Optional

import yaml

from spica_writer.exceptions import ConfigError

DEFAULT_CONFIG_PATH = Path(__file__).parent / 'config' / 'settings.yaml'

# Environment variable -> (section, key)
ENV_OVERRIDES = {
    'OPENAI_API_KEY': ('openai', 'api_key'),
    'OPENAI_BASE_URL': ('openai', 'base_url'),
    'OPENAI_MODEL': ('openai', 'model'),
    'SPICA_PROJECT_DIR': ('storage', 'project_dir'),
}


def _expand_env_reference(value):
    """Replace a whole-value ${VAR} reference with the environment value"""
    if isinstance(value, str) and value.startswith('${') and value.endswith('}'):
        return os.getenv(value[2:-1])
    return value


def load_config(config_path: Optional[str] = None) -> Dict:
    """
    Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to settings.yaml (default: bundled spica_writer/config/settings.yaml)

    Returns:
        Configuration dictionary with 'openai', 'storage' and 'logging' sections

    Raises:
        ConfigError: File missing or not valid YAML
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    try:
        with open(path, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file {path}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    for section in ('openai', 'storage', 'logging'):
        config[section] = config.get(section) or {}
        for key, value in config[section].items():
            config[section][key] = _expand_env_reference(value)

    for env_var, (section, key) in ENV_OVERRIDES.items():
        env_value = os.getenv(env_var)
        if env_value:
            config[section][key] = env_value

    return config


def setup_logging(level: str = 'INFO', log_file: Optional[str] = None):
    """
    Setup logging configuration.

    Args:
        level: Logging level name (default: INFO)
        log_file: Optional path of a log file written alongside the console
    """
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True
    )
