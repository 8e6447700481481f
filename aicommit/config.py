"""
User Config

User configuration at ~/.aicommit/config.yaml:

- Provider order, preferred provider and per-provider settings
- Circuit breaker thresholds
- Generation settings (count, language, parallel mode, chunking, timeout)
- Sensitive globs: files never sent to external providers
- Per-file conflict policies: ours | theirs | manual
- LLM toggle: resolution.disable_llm for air-gapped environments

Environment overrides: AICOMMIT_PROVIDER, AICOMMIT_PARALLEL,
AICOMMIT_DISABLE_LLM, AICOMMIT_CALL_TIMEOUT.
"""

import copy
import fnmatch
import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml

from .circuit_breaker import CircuitBreakerConfig
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


class UserConfig:
    """
    User configuration from ~/.aicommit/config.yaml.

    Supports:
    - Provider order and preferred provider
    - Circuit breaker and generation settings
    - Sensitive file globs (never sent to LLM)
    - Per-file conflict policies
    - LLM enable/disable toggle
    """

    CONFIG_PATH = Path.home() / ".aicommit" / "config.yaml"

    def __init__(self, data: dict, path: Optional[Path] = None):
        """Initialize with configuration data."""
        self._data = data
        self._path = Path(path) if path else self.CONFIG_PATH

    @classmethod
    def get_default(cls) -> dict:
        """Get default configuration."""
        return {
            "providers": {
                "order": ["ollama", "groq", "openrouter"],
                "preferred": None,
                "settings": {
                    "ollama": {"base_url": None, "model": None},
                    "groq": {"model": None},
                    "openrouter": {"model": None},
                },
            },
            "circuit_breaker": {
                "failure_threshold": 5,
                "timeout_seconds": 60.0,
                "success_threshold": 2,
                "half_open_max_calls": 2,
            },
            "generation": {
                "count": 3,
                "language": "en",
                "conventional": True,
                "parallel": False,
                "token_threshold": 4000,
                "max_chunk_chars": 12000,
                "call_timeout": 60.0,
            },
            "sensitive_globs": [
                "secrets/*",
                "*.pem",
                ".env*",
                "*.key",
                "*.p12",
                "*credential*",
                "*password*",
            ],
            # Policies: "ours" | "theirs" | "manual"
            "file_policies": {},
            "resolution": {
                "disable_llm": False,
                "context_lines": 3,
            },
        }

    @classmethod
    def load(cls, path: Optional[Path] = None, env: Optional[dict] = None) -> "UserConfig":
        """
        Load configuration, merge over defaults and apply env overrides.

        Returns defaults if the file doesn't exist.

        Raises:
            ConfigurationError: File exists but cannot be read or parsed
        """
        config_path = Path(path) if path else cls.CONFIG_PATH
        data = cls.get_default()

        if config_path.exists():
            try:
                with open(config_path) as f:
                    user_data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigurationError(f"Cannot read config {config_path}: {e}") from e
            if not isinstance(user_data, dict):
                raise ConfigurationError(f"Config {config_path} must be a mapping")
            data = cls._deep_merge(data, user_data)

        config = cls(data, config_path)
        config._apply_env(os.environ if env is None else env)
        return config

    @staticmethod
    def _deep_merge(base: dict, override: dict) -> dict:
        """Deep merge two dictionaries, with override taking precedence."""
        result = copy.deepcopy(base)
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = UserConfig._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def _apply_env(self, env) -> None:
        provider = env.get("AICOMMIT_PROVIDER")
        if provider:
            self._data["providers"]["preferred"] = provider
        if "AICOMMIT_PARALLEL" in env:
            self._data["generation"]["parallel"] = env["AICOMMIT_PARALLEL"].lower() in _TRUTHY
        if "AICOMMIT_DISABLE_LLM" in env:
            self._data["resolution"]["disable_llm"] = env["AICOMMIT_DISABLE_LLM"].lower() in _TRUTHY
        if env.get("AICOMMIT_CALL_TIMEOUT"):
            try:
                self._data["generation"]["call_timeout"] = float(env["AICOMMIT_CALL_TIMEOUT"])
            except ValueError as e:
                raise ConfigurationError(
                    f"AICOMMIT_CALL_TIMEOUT must be a number, got {env['AICOMMIT_CALL_TIMEOUT']!r}"
                ) from e

    def save(self) -> None:
        """Save configuration to the config path."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, 'w') as f:
            yaml.dump(self._data, f, default_flow_style=False)

    # ========================================================================
    # Property Accessors
    # ========================================================================

    @property
    def provider_order(self) -> list[str]:
        return list(self._data.get("providers", {}).get("order", []))

    @property
    def preferred_provider(self) -> Optional[str]:
        return self._data.get("providers", {}).get("preferred")

    def provider_settings(self, name: str) -> dict:
        """Constructor settings for a provider, with unset values dropped."""
        settings = self._data.get("providers", {}).get("settings", {}).get(name) or {}
        return {k: v for k, v in settings.items() if v is not None}

    @property
    def circuit_breaker(self) -> CircuitBreakerConfig:
        values = self._data.get("circuit_breaker", {})
        return CircuitBreakerConfig(**{
            k: v for k, v in values.items()
            if k in CircuitBreakerConfig.__dataclass_fields__
        })

    @property
    def generation(self) -> dict:
        """Get generation settings."""
        return self._data.get("generation", {})

    @property
    def sensitive_globs(self) -> list[str]:
        """Get list of sensitive file globs."""
        return self._data.get("sensitive_globs", [])

    @property
    def file_policies(self) -> dict[str, str]:
        """Get per-file resolution policies."""
        return self._data.get("file_policies", {})

    @property
    def resolution(self) -> dict:
        """Get resolution settings."""
        return self._data.get("resolution", {})

    @property
    def llm_enabled(self) -> bool:
        """Check if LLM conflict resolution is enabled."""
        return not self.resolution.get("disable_llm", False)

    # ========================================================================
    # Path Matching
    # ========================================================================

    def is_sensitive(self, path: str) -> bool:
        """
        Check if a path matches any sensitive glob.

        Sensitive files are never sent to external providers.

        Args:
            path: File path to check

        Returns:
            True if path matches a sensitive glob
        """
        for glob in self.sensitive_globs:
            if fnmatch.fnmatch(path, glob):
                return True
            # Also check the basename for patterns like "*.pem"
            if fnmatch.fnmatch(Path(path).name, glob):
                return True
        return False

    def get_file_policy(self, path: str) -> Optional[str]:
        """
        Get per-file resolution policy.

        Args:
            path: File path to check

        Returns:
            Policy string ("ours", "theirs", "manual") or None if no policy defined
        """
        for pattern, policy in self.file_policies.items():
            if fnmatch.fnmatch(path, pattern):
                return policy
            if fnmatch.fnmatch(Path(path).name, pattern):
                return policy
        return None

    # ========================================================================
    # Generic Get/Set
    # ========================================================================

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a config value using dot notation.

        Examples:
            config.get("resolution.disable_llm")
            config.get("generation.count")

        Args:
            key: Dot-separated key path
            default: Default value if not found

        Returns:
            Config value or default
        """
        value = self._data
        for part in key.split("."):
            if isinstance(value, dict) and part in value:
                value = value[part]
            else:
                return default
        return value

    def set(self, key: str, value: Any, persist: bool = True) -> None:
        """
        Set a config value using dot notation (and save by default).

        Examples:
            config.set("resolution.disable_llm", True)
            config.set("providers.preferred", "groq")
        """
        parts = key.split(".")
        data = self._data
        for part in parts[:-1]:
            if part not in data or not isinstance(data[part], dict):
                data[part] = {}
            data = data[part]
        data[parts[-1]] = value

        if persist:
            self.save()
