"""Configuration management and validation service."""

import os
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple
from dataclasses import dataclass, field

import yaml

from .cache_store import DEFAULT_FRESHNESS_WINDOWS, SourceKey
from .sources import (
    COINGECKO_PRICE_URL,
    DEFAULT_IMAGE_SIZE,
    DEFAULT_IMAGE_THEMES,
    DEFAULT_LATITUDE,
    DEFAULT_LONGITUDE,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    OPEN_METEO_FORECAST_URL,
    UNSPLASH_SOURCE_URL,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT_REQUESTS = 3


@dataclass
class ConfigValidationError:
    """Represents a configuration validation error."""
    path: str
    message: str


class ConfigValidationException(Exception):
    """Raised when config validation fails."""

    def __init__(self, errors: List[ConfigValidationError]):
        self.errors = errors
        messages = [f"{e.path}: {e.message}" for e in errors]
        super().__init__("Configuration validation failed:\n" + "\n".join(messages))


def _source_schema(**extra: Dict[str, Any]) -> Dict[str, Any]:
    properties = {
        "enabled": {"type": "bool", "required": False},
        "cache_ttl_seconds": {"type": "float", "required": False, "min": 0.001},
        "endpoint": {"type": "str", "required": False},
    }
    properties.update(extra)
    return {"type": "dict", "required": False, "properties": properties}


# Configuration schema definition
CONFIG_SCHEMA = {
    "logging": {
        "type": "dict",
        "required": False,
        "properties": {
            "level": {"type": "str", "required": False, "options": ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]},
            "format": {"type": "str", "required": False},
        }
    },
    "sources": {
        "type": "dict",
        "required": False,
        "properties": {
            "crypto": _source_schema(),
            "weather": _source_schema(
                latitude={"type": "float", "required": False, "min": -90, "max": 90},
                longitude={"type": "float", "required": False, "min": -180, "max": 180},
            ),
            "news": _source_schema(),
            "images": _source_schema(
                themes={"type": "list", "required": False, "items": "str", "min_length": 1},
                size={"type": "str", "required": False},
            ),
            "sentiment": _source_schema(),
        }
    },
    "performance": {
        "type": "dict",
        "required": False,
        "properties": {
            "request_timeout_seconds": {"type": "float", "required": False, "min": 0.001},
            "max_concurrent_requests": {"type": "int", "required": False, "min": 1},
        }
    },
    "debug": {
        "type": "dict",
        "required": False,
        "properties": {
            "log_api_calls": {"type": "bool", "required": False},
        }
    },
}


class ConfigService:
    """Service for loading and validating configuration."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize config service.

        Args:
            config_path: Path to config file. If None, uses MONITORWALL_CONFIG
                or config.yaml in the backend directory.
        """
        if config_path is None:
            config_path = os.environ.get("MONITORWALL_CONFIG")
        if config_path is None:
            backend_dir = Path(__file__).parent.parent.parent
            config_path = str(backend_dir / "config.yaml")

        self.config_path = config_path
        self._config: Dict[str, Any] = {}

    @property
    def config(self) -> Dict[str, Any]:
        return self._config

    def load_and_validate(self) -> Dict[str, Any]:
        """Load and validate the configuration file.

        Returns:
            Validated configuration dictionary.

        Raises:
            ConfigValidationException: If validation fails.
        """
        errors: List[ConfigValidationError] = []

        if not os.path.exists(self.config_path):
            logger.warning(f"Config file not found at {self.config_path}, using defaults")
            self._config = {}
            return self._config

        try:
            with open(self.config_path, 'r') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            errors.append(ConfigValidationError(
                path="",
                message=f"Invalid YAML syntax: {str(e)}"
            ))
            raise ConfigValidationException(errors)

        if config is None:
            config = {}

        self._config = self.validate(config)
        logger.info(f"Configuration loaded and validated from {self.config_path}")
        return self._config

    def validate(self, config: Any) -> Dict[str, Any]:
        """Validate an already-parsed configuration.

        Raises:
            ConfigValidationException: If validation fails.
        """
        if not isinstance(config, dict):
            raise ConfigValidationException([ConfigValidationError(
                path="",
                message=f"Config must be a dictionary, got {type(config).__name__}"
            )])

        errors = self._validate_dict(config, CONFIG_SCHEMA, "")
        if errors:
            raise ConfigValidationException(errors)
        return config

    def _validate_dict(
        self,
        data: Dict[str, Any],
        schema: Dict[str, Any],
        path: str
    ) -> List[ConfigValidationError]:
        """Validate a dictionary against schema.

        Args:
            data: Data to validate
            schema: Schema to validate against
            path: Current path for error messages

        Returns:
            List of validation errors
        """
        errors = []

        for key in data:
            if key not in schema:
                errors.append(ConfigValidationError(
                    path=f"{path}.{key}" if path else key,
                    message=f"Unknown configuration key '{key}'"
                ))

        for key, prop_schema in schema.items():
            current_path = f"{path}.{key}" if path else key

            if key not in data:
                if prop_schema.get("required", False):
                    errors.append(ConfigValidationError(
                        path=current_path,
                        message="Required field missing"
                    ))
                continue

            errors.extend(self._validate_value(data[key], prop_schema, current_path))

        return errors

    def _validate_value(
        self,
        value: Any,
        schema: Dict[str, Any],
        path: str
    ) -> List[ConfigValidationError]:
        """Validate a single value against schema."""
        errors = []
        expected_type = schema.get("type")

        type_map = {
            "str": str,
            "int": int,
            "float": (int, float),
            "bool": bool,
            "list": list,
            "dict": dict,
        }

        if expected_type == "dict":
            if not isinstance(value, dict):
                errors.append(ConfigValidationError(
                    path=path,
                    message=f"Expected dict, got {type(value).__name__}"
                ))
                return errors

            if "properties" in schema:
                errors.extend(self._validate_dict(value, schema["properties"], path))

        elif expected_type in type_map:
            expected = type_map[expected_type]
            # bool is an int subclass; never accept it for numeric fields
            if not isinstance(value, expected) or (expected_type in ("int", "float") and isinstance(value, bool)):
                errors.append(ConfigValidationError(
                    path=path,
                    message=f"Expected {expected_type}, got {type(value).__name__}"
                ))
                return errors

            if expected_type in ("int", "float"):
                if "min" in schema and value < schema["min"]:
                    errors.append(ConfigValidationError(
                        path=path,
                        message=f"Value {value} is below minimum {schema['min']}"
                    ))
                if "max" in schema and value > schema["max"]:
                    errors.append(ConfigValidationError(
                        path=path,
                        message=f"Value {value} is above maximum {schema['max']}"
                    ))

            if expected_type == "list":
                if len(value) < schema.get("min_length", 0):
                    errors.append(ConfigValidationError(
                        path=path,
                        message=f"Expected at least {schema['min_length']} item(s)"
                    ))
                item_type = type_map.get(schema.get("items"))
                if item_type is not None:
                    for index, item in enumerate(value):
                        if not isinstance(item, item_type):
                            errors.append(ConfigValidationError(
                                path=f"{path}[{index}]",
                                message=f"Expected {schema['items']}, got {type(item).__name__}"
                            ))

            if "options" in schema and value not in schema["options"]:
                errors.append(ConfigValidationError(
                    path=path,
                    message=f"Value '{value}' not in allowed options: {schema['options']}"
                ))

        return errors

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value.

        Args:
            key: Dot-notation key (e.g., "sources.crypto.enabled")
            default: Default value if not found

        Returns:
            Configuration value
        """
        keys = key.split(".")
        value = self._config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value


_DEFAULT_ENDPOINTS: Dict[SourceKey, Optional[str]] = {
    SourceKey.CRYPTO: COINGECKO_PRICE_URL,
    SourceKey.WEATHER: OPEN_METEO_FORECAST_URL,
    SourceKey.NEWS: None,
    SourceKey.IMAGES: UNSPLASH_SOURCE_URL,
    SourceKey.SENTIMENT: None,
}


@dataclass(frozen=True)
class SourceSettings:
    """Settings for a single source."""
    enabled: bool = True
    cache_ttl_seconds: float = 60.0
    endpoint: Optional[str] = None


@dataclass(frozen=True)
class DataServiceSettings:
    """Immutable settings for the data service, fixed for the process lifetime."""
    sources: Mapping[SourceKey, SourceSettings] = field(default_factory=lambda: {
        key: SourceSettings(cache_ttl_seconds=DEFAULT_FRESHNESS_WINDOWS[key], endpoint=_DEFAULT_ENDPOINTS[key])
        for key in SourceKey
    })
    latitude: float = DEFAULT_LATITUDE
    longitude: float = DEFAULT_LONGITUDE
    image_themes: Tuple[str, ...] = DEFAULT_IMAGE_THEMES
    image_size: str = DEFAULT_IMAGE_SIZE
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    max_concurrent_requests: int = DEFAULT_MAX_CONCURRENT_REQUESTS
    log_api_calls: bool = False

    def __post_init__(self):
        object.__setattr__(self, "sources", MappingProxyType(dict(self.sources)))

    def source(self, key: SourceKey) -> SourceSettings:
        return self.sources[key]

    def freshness_windows(self) -> Dict[SourceKey, float]:
        return {key: settings.cache_ttl_seconds for key, settings in self.sources.items()}

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "DataServiceSettings":
        """Build settings from a validated configuration dictionary."""
        sources_config = config.get("sources") or {}
        sources = {}
        for key in SourceKey:
            source_cfg = sources_config.get(key.value) or {}
            sources[key] = SourceSettings(
                enabled=source_cfg.get("enabled", True),
                cache_ttl_seconds=float(source_cfg.get("cache_ttl_seconds", DEFAULT_FRESHNESS_WINDOWS[key])),
                endpoint=source_cfg.get("endpoint", _DEFAULT_ENDPOINTS[key]),
            )

        weather_cfg = sources_config.get("weather") or {}
        images_cfg = sources_config.get("images") or {}
        performance = config.get("performance") or {}
        debug = config.get("debug") or {}

        return cls(
            sources=sources,
            latitude=float(weather_cfg.get("latitude", DEFAULT_LATITUDE)),
            longitude=float(weather_cfg.get("longitude", DEFAULT_LONGITUDE)),
            image_themes=tuple(images_cfg.get("themes", DEFAULT_IMAGE_THEMES)),
            image_size=images_cfg.get("size", DEFAULT_IMAGE_SIZE),
            request_timeout_seconds=float(performance.get("request_timeout_seconds", DEFAULT_REQUEST_TIMEOUT_SECONDS)),
            max_concurrent_requests=int(performance.get("max_concurrent_requests", DEFAULT_MAX_CONCURRENT_REQUESTS)),
            log_api_calls=bool(debug.get("log_api_calls", False)),
        )
