"""
Configuration management for the Prerender Service.

This module provides a singleton `ConfigurationManager` class to load and access
configuration settings from YAML files. It supports environment-specific
configurations (development, production) selected by the APP_ENV environment
variable, which doubles as the deployment-mode flag for the browser launch profile.

Key Features:
- Loads settings from YAML files based on APP_ENV (defaults to 'development').
- Applies `PRERENDER_*` environment variable overrides on top of the YAML values.
- Provides a global `config_manager` instance for easy access.
- Supports dot notation for accessing nested keys (e.g., "readiness.max_wait").
"""
import logging
import os
import yaml
from typing import Any, Callable, Dict, List, Optional, Tuple

# CONFIG_DIR: Path to the directory containing the per-environment YAML files
# (prerender_service/config/development.yaml, production.yaml, ...).
CONFIG_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "config")

# DEFAULT_ENV: The default environment to use if APP_ENV is not set.
DEFAULT_ENV = "development"

_TRUE_VALUES = {"1", "true", "yes", "on"}

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Base class for all configuration-related errors."""
    pass


class ConfigFileNotFoundError(ConfigError):
    """Raised when a specific configuration file (e.g., development.yaml) cannot be found."""
    pass


class InvalidYamlError(ConfigError):
    """Raised when a configuration file contains invalid YAML syntax or is not a dictionary."""
    pass


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in _TRUE_VALUES


def _parse_list(raw: str) -> List[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


# Environment variable -> (dotted config key, parser, append-to-list?)
ENV_OVERRIDES: Dict[str, Tuple[str, Callable[[str], Any], bool]] = {
    "PRERENDER_ALLOW_REMOTE_HOSTS": ("security.allow_remote_hosts", str.strip, False),
    "PRERENDER_ALLOW_PRIVATE_NETWORKS": ("security.allow_private_networks", _parse_bool, False),
    "PRERENDER_USER_AGENT": ("renderer.user_agent", str.strip, False),
    "PRERENDER_BLOCKED_DOMAINS": ("interceptor.extra_blocked_domains", _parse_list, True),
    "PRERENDER_DISABLE_CACHE": ("cache.disabled", _parse_bool, False),
    "PRERENDER_SKIP_HEALTH_CHECK": ("session.skip_health_check", _parse_bool, False),
    "PRERENDER_DEBUG_BROWSER": ("session.debug_visible", _parse_bool, False),
    "PRERENDER_BROWSER_EXECUTABLE": ("session.executable_path", str.strip, False),
    "PRERENDER_LOG_LEVEL": ("logging.level", str.strip, False),
}


class ConfigurationManager:
    """
    Manages loading and accessing configuration settings from YAML files.

    This class is implemented as a singleton. The first time an instance is created,
    it loads the configuration. Subsequent instantiations return the existing instance.
    """
    CONFIG_DIR: str = CONFIG_DIR

    _instance: Optional['ConfigurationManager'] = None
    _config: Dict[str, Any] = {}
    _current_env: str = ""

    def __new__(cls) -> 'ConfigurationManager':
        """
        Ensures that only one instance of ConfigurationManager is created (Singleton pattern).
        Loads configuration upon first instantiation.
        """
        if cls._instance is None:
            cls._instance = super(ConfigurationManager, cls).__new__(cls)
            cls._instance.load_config()
        return cls._instance

    def load_config(self, env: Optional[str] = None) -> None:
        """
        Loads configuration from the YAML file of the given environment, then applies
        environment variable overrides.

        The environment is determined in the following order of precedence:
        1. The `env` parameter passed to this method.
        2. The `APP_ENV` environment variable.
        3. `DEFAULT_ENV` (if neither of the above is set).

        Args:
            env (Optional[str]): The specific environment name (e.g., "production") to load.

        Raises:
            ConfigFileNotFoundError: If the YAML file for the target environment is not found.
            InvalidYamlError: If the YAML file is malformed or not a dictionary.
        """
        self._current_env = env or os.getenv("APP_ENV", DEFAULT_ENV)
        config_file_path = os.path.join(self.CONFIG_DIR, f"{self._current_env}.yaml")

        try:
            with open(config_file_path, "r") as f:
                loaded = yaml.safe_load(f)
        except FileNotFoundError:
            raise ConfigFileNotFoundError(
                f"Configuration file not found for environment '{self._current_env}' at '{config_file_path}'. "
                f"Ensure '{self._current_env}.yaml' exists in the '{self.CONFIG_DIR}' directory."
            )
        except yaml.YAMLError as e:
            raise InvalidYamlError(
                f"Error parsing YAML in configuration file '{config_file_path}': {e}"
            )
        if not isinstance(loaded, dict):
            raise InvalidYamlError(
                f"Configuration file '{config_file_path}' does not contain a valid YAML dictionary."
            )
        self._config = loaded
        self._apply_env_overrides()

    def _apply_env_overrides(self) -> None:
        """Applies `PRERENDER_*` environment variables on top of the loaded YAML values."""
        for env_name, (key, parser, append) in ENV_OVERRIDES.items():
            raw = os.getenv(env_name)
            if raw is None or raw == "":
                continue
            value = parser(raw)
            if append:
                existing = self.get(key) or []
                value = list(existing) + [item for item in value if item not in existing]
            self.set(key, value)

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        """
        Retrieves a configuration value for the given key.

        Supports accessing nested values using dot notation (e.g., "session.probe_timeout").
        If the key is not found, returns the provided default value.

        Args:
            key (str): The configuration key to retrieve.
            default (Optional[Any]): The value to return if the key is not found.

        Returns:
            Any: The configuration value if found, otherwise the default value.
        """
        value = self._config
        try:
            for k_part in key.split("."):
                if isinstance(value, dict):
                    value = value[k_part]
                else:
                    return default
            return value
        except (KeyError, TypeError):
            return default

    def set(self, key: str, value: Any) -> None:
        """
        Sets a configuration value in memory, creating intermediate sections as needed.

        Args:
            key (str): Dot-notation key (e.g., "cache.disabled").
            value (Any): The value to store.
        """
        parts = key.split(".")
        section = self._config
        for k_part in parts[:-1]:
            if not isinstance(section.get(k_part), dict):
                section[k_part] = {}
            section = section[k_part]
        section[parts[-1]] = value

    def reload_config(self, env: Optional[str] = None) -> None:
        """
        Reloads the configuration, potentially for a different environment.

        Args:
            env (Optional[str]): The environment to reload. If None, reloads the
                                 currently active environment.
        """
        old_env = self._current_env
        self.load_config(env or old_env)
        logger.info(f"Configuration reloaded. Previous environment: '{old_env}', current: '{self._current_env}'.")

    @property
    def current_environment(self) -> str:
        """
        Returns the name of the currently loaded configuration environment.

        Returns:
            str: The name of the current environment (e.g., "development", "production").
        """
        return self._current_env

    @property
    def is_production(self) -> bool:
        """True when the production deployment profile is active."""
        return self._current_env == "production"


# Global instance of ConfigurationManager to be used by other modules.
config_manager = ConfigurationManager()


def get_config(key: str, default: Optional[Any] = None) -> Any:
    """
    A convenience function to access configuration values via the global `config_manager`.

    Args:
        key (str): The configuration key (dot notation for nested values).
        default (Optional[Any]): Default value if the key is not found.

    Returns:
        Any: The configuration value or the default.
    """
    return config_manager.get(key, default)
