"""Simple YAML configuration loader for voice2model."""

import os
import copy
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)

# Config keys holding paths that are resolved relative to the config file
PATH_KEYS = (
    "storage.data_directory",
    "logging.file_path",
    "generation.prompt_modifier_path",
    "google_cloud.credentials_path",
)

# Secrets may be supplied through the environment instead of the YAML file
SECRET_ENV_VARS = {
    "openai.api_key": "OPENAI_API_KEY",
    "stability.api_key": "STABILITY_API_KEY",
    "github.token": "GITHUB_TOKEN",
}


class Voice2ModelConfig:
    """voice2model configuration loader."""

    def __init__(self, config_path: str):
        """Initialize configuration loader.

        Args:
            config_path: Path to the YAML config file
        """
        self.config_file = Path(config_path)

        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        logger.info(f"Loading configuration from: {self.config_file}")
        self.config = self._load_config()

    @classmethod
    def from_dict(cls, values: Dict[str, Any], base_dir: Optional[str] = None) -> "Voice2ModelConfig":
        """Build a configuration from an in-memory dictionary.

        Args:
            values: Nested configuration dictionary
            base_dir: Directory that relative paths are resolved against
        """
        instance = cls.__new__(cls)
        instance.config_file = Path(base_dir or os.getcwd()) / "<memory>"
        instance.config = copy.deepcopy(values)
        instance._resolve_paths(instance.config)
        return instance

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}") from e

        if not config:
            raise ValueError("Configuration file is empty")
        if not isinstance(config, dict):
            raise ValueError("Configuration file must contain a mapping at the top level")

        self._resolve_paths(config)

        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent

        for key_path in PATH_KEYS:
            section, key = key_path.split('.')
            if section in config and isinstance(config[section], dict) and config[section].get(key):
                value = str(config[section][key])
                if not os.path.isabs(value):
                    config[section][key] = str(config_dir / value)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'audio.sample_rate').

        Args:
            key_path: Dot-separated key path
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value (e.g., 'server.port')
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config

        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]

        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def get_secret(self, key_path: str) -> str:
        """Get an API secret, preferring its environment variable - CRASHES if not found."""
        env_var = SECRET_ENV_VARS.get(key_path)
        value = os.environ.get(env_var) if env_var else None
        if not value:
            value = self.get(key_path)
        if not value:
            hint = f" (or set {env_var})" if env_var else ""
            raise ValueError(f"Secret '{key_path}' not configured{hint}")
        return str(value)

    def get_prompt_modifier(self) -> str:
        """Get the system instruction used to optimize image prompts."""
        inline = self.get('generation.prompt_modifier')
        if inline:
            return str(inline).strip()

        modifier_path = self.get('generation.prompt_modifier_path')
        if not modifier_path:
            raise ValueError("Neither generation.prompt_modifier nor generation.prompt_modifier_path is configured")

        modifier_file = Path(modifier_path)
        if not modifier_file.exists():
            raise FileNotFoundError(f"Prompt modifier file not found: {modifier_path}")

        return modifier_file.read_text(encoding='utf-8').strip()

    def get_google_credentials_path(self) -> str:
        """Get Google credentials path - CRASHES if not found."""
        creds_path = self.get('google_cloud.credentials_path')
        if not creds_path:
            raise ValueError("Google credentials path not configured")

        creds_file = Path(creds_path)
        if not creds_file.exists():
            raise FileNotFoundError(f"Google credentials file not found: {creds_path}")

        return str(creds_file.absolute())

    def get_data_directory(self) -> str:
        """Get data directory path."""
        data_dir = self.get('storage.data_directory', 'data')
        return str(Path(data_dir).absolute())
