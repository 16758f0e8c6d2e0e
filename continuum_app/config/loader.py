"""Configuration loader with 3-tier parameter precedence."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml

from .defaults import (
    CategoryDef,
    DefaultConfig,
    LoggingParams,
    PauseParams,
    PeriodDefaults,
    StorageParams,
    ThemeDef,
    TimerParams,
    get_default_config,
)

SETTINGS_FILENAME = "settings.yaml"

# Key of the stored override mapping in the store's config table
STORED_SETTINGS_KEY = "settings"


@dataclass(frozen=True)
class ConfigLoader:
    """Manages configuration loading with 3-tier precedence."""

    config_dir: Path
    defaults: DefaultConfig

    @classmethod
    def create(cls, config_dir: Optional[Path] = None) -> "ConfigLoader":
        """Create a ConfigLoader instance."""
        if config_dir is None:
            config_dir = Path(__file__).parent.parent.parent / "config"

        return cls(
            config_dir=Path(config_dir),
            defaults=get_default_config(),
        )

    def load_settings_file(self) -> dict[str, Any]:
        """Load user settings from ``settings.yaml`` in the config directory."""
        settings_file = self.config_dir / SETTINGS_FILENAME

        if not settings_file.exists():
            return {}

        with open(settings_file) as f:
            settings = yaml.safe_load(f)

        if not isinstance(settings, dict):
            return {}
        return settings

    def merge_config(
        self,
        stored_overrides: Optional[dict[str, Any]] = None
    ) -> dict[str, Any]:
        """
        Merge configuration with 3-tier precedence.

        Priority order:
        1. Overrides persisted in the store's config table (highest priority)
        2. settings.yaml in the config directory
        3. Global defaults (lowest priority)
        """
        config = self._dataclass_to_dict(self.defaults)

        config = self._deep_merge(config, self.load_settings_file())

        if stored_overrides:
            config = self._deep_merge(config, stored_overrides)

        return config

    def load(self, stored_overrides: Optional[dict[str, Any]] = None) -> DefaultConfig:
        """Merge all tiers and build a typed configuration."""
        return config_from_dict(self.merge_config(stored_overrides))

    def _dataclass_to_dict(self, obj: Any) -> Any:
        """Convert nested dataclasses (and tuples of them) to plain data."""
        if hasattr(obj, '__dataclass_fields__'):
            result = {}
            for field_name in obj.__dataclass_fields__:
                result[field_name] = self._dataclass_to_dict(getattr(obj, field_name))
            return result
        if isinstance(obj, tuple):
            return [self._dataclass_to_dict(item) for item in obj]
        return obj

    def _deep_merge(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result


def config_from_dict(data: dict[str, Any]) -> DefaultConfig:
    """Build a DefaultConfig from a merged mapping; missing sections use defaults."""
    period = dict(data.get("period") or {})
    if "tags" in period:
        period["tags"] = tuple(period["tags"] or ())

    defaults = get_default_config()
    themes = data.get("themes")
    categories = data.get("categories")

    return DefaultConfig(
        period=PeriodDefaults(**period),
        pause=PauseParams(**(data.get("pause") or {})),
        timer=TimerParams(**(data.get("timer") or {})),
        storage=StorageParams(**(data.get("storage") or {})),
        logging=LoggingParams(**(data.get("logging") or {})),
        themes=tuple(ThemeDef(**theme) for theme in themes) if themes is not None else defaults.themes,
        categories=(
            tuple(CategoryDef(**category) for category in categories)
            if categories is not None else defaults.categories
        ),
    )
