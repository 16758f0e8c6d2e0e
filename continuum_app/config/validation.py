"""Configuration validation utilities."""

from dataclasses import MISSING, dataclass, fields
from typing import Any

from .defaults import (
    CategoryDef,
    LoggingParams,
    PauseParams,
    PeriodDefaults,
    StorageParams,
    ThemeDef,
    TimerParams,
)

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

SECTION_TYPES = {
    "period": PeriodDefaults,
    "pause": PauseParams,
    "timer": TimerParams,
    "storage": StorageParams,
    "logging": LoggingParams,
}

CATALOGUE_TYPES = {
    "themes": ThemeDef,
    "categories": CategoryDef,
}


@dataclass(frozen=True)
class ValidationError:
    """Represents a configuration validation error."""
    field: str
    message: str
    value: Any


class ConfigValidator:
    """Validates configuration parameters."""

    @staticmethod
    def validate_period_defaults(
        params: dict[str, Any],
        theme_ids: set[str],
        category_themes: dict[str, str]
    ) -> list[ValidationError]:
        """Validate default metadata against the theme/category catalogue."""
        errors = []

        theme = params.get("theme")
        if theme is not None and theme not in theme_ids:
            errors.append(ValidationError(
                field="period.theme",
                message="Must reference a configured theme",
                value=theme
            ))

        category = params.get("category")
        if category is not None:
            if category not in category_themes:
                errors.append(ValidationError(
                    field="period.category",
                    message="Must reference a configured category",
                    value=category
                ))
            elif theme is not None and category_themes[category] != theme:
                errors.append(ValidationError(
                    field="period.category",
                    message=f"Category belongs to theme '{category_themes[category]}'",
                    value=category
                ))

        for text_field in ("name", "notes"):
            if text_field in params and not isinstance(params[text_field], str):
                errors.append(ValidationError(
                    field=f"period.{text_field}",
                    message="Must be a string",
                    value=params[text_field]
                ))

        tags = params.get("tags", [])
        if not isinstance(tags, (list, tuple)) or not all(isinstance(tag, str) for tag in tags):
            errors.append(ValidationError(
                field="period.tags",
                message="Must be a list of strings",
                value=tags
            ))

        return errors

    @staticmethod
    def validate_pause_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate pause sentinel metadata."""
        errors = []

        theme = params.get("theme")
        if not isinstance(theme, str) or not theme:
            errors.append(ValidationError(
                field="pause.theme",
                message="Must be a non-empty string",
                value=theme
            ))

        if "name" in params and not isinstance(params["name"], str):
            errors.append(ValidationError(
                field="pause.name",
                message="Must be a string",
                value=params["name"]
            ))

        return errors

    @staticmethod
    def validate_timer_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate timer observer parameters."""
        errors = []

        if "tick_interval_seconds" in params:
            value = params["tick_interval_seconds"]
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                errors.append(ValidationError(
                    field="timer.tick_interval_seconds",
                    message="Must be a positive number",
                    value=value
                ))

        return errors

    @staticmethod
    def validate_storage_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate storage parameters."""
        errors = []

        db_filename = params.get("db_filename")
        if db_filename is not None and (not isinstance(db_filename, str) or not db_filename):
            errors.append(ValidationError(
                field="storage.db_filename",
                message="Must be a non-empty string",
                value=db_filename
            ))

        if "timeout_seconds" in params:
            value = params["timeout_seconds"]
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                errors.append(ValidationError(
                    field="storage.timeout_seconds",
                    message="Must be a positive number",
                    value=value
                ))

        if "allow_memory_fallback" in params and not isinstance(params["allow_memory_fallback"], bool):
            errors.append(ValidationError(
                field="storage.allow_memory_fallback",
                message="Must be a boolean",
                value=params["allow_memory_fallback"]
            ))

        return errors

    @staticmethod
    def validate_logging_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate logging parameters."""
        errors = []

        level = params.get("level")
        if level is not None and (not isinstance(level, str) or level.upper() not in VALID_LOG_LEVELS):
            errors.append(ValidationError(
                field="logging.level",
                message=f"Must be one of {', '.join(VALID_LOG_LEVELS)}",
                value=level
            ))

        return errors

    @staticmethod
    def validate_structure(config: dict[str, Any]) -> list[ValidationError]:
        """Check section shapes and key names before any value is inspected."""
        errors = []

        for section, value in config.items():
            if section in SECTION_TYPES:
                if not isinstance(value, dict):
                    errors.append(ValidationError(
                        field=section,
                        message="Must be a mapping",
                        value=value
                    ))
                    continue
                errors.extend(_unknown_keys(section, value, SECTION_TYPES[section]))

            elif section in CATALOGUE_TYPES:
                if not isinstance(value, list):
                    errors.append(ValidationError(
                        field=section,
                        message="Must be a list",
                        value=value
                    ))
                    continue
                entry_type = CATALOGUE_TYPES[section]
                for index, entry in enumerate(value):
                    entry_field = f"{section}[{index}]"
                    if not isinstance(entry, dict):
                        errors.append(ValidationError(
                            field=entry_field,
                            message="Must be a mapping",
                            value=entry
                        ))
                        continue
                    errors.extend(_unknown_keys(entry_field, entry, entry_type))
                    for name in _required_fields(entry_type) - set(entry):
                        errors.append(ValidationError(
                            field=f"{entry_field}.{name}",
                            message="Required",
                            value=None
                        ))

            else:
                errors.append(ValidationError(
                    field=section,
                    message="Unknown configuration section",
                    value=value
                ))

        return errors

    @staticmethod
    def validate_config(config: dict[str, Any]) -> list[ValidationError]:
        """Validate a complete merged configuration mapping."""
        errors = ConfigValidator.validate_structure(config)
        if errors:
            return errors

        theme_ids = {theme.get("id") for theme in config.get("themes", [])}
        category_themes = {
            category.get("id"): category.get("theme_id")
            for category in config.get("categories", [])
        }

        for category_id, theme_id in category_themes.items():
            if theme_id not in theme_ids:
                errors.append(ValidationError(
                    field=f"categories.{category_id}",
                    message="Category references an unknown theme",
                    value=theme_id
                ))

        errors.extend(ConfigValidator.validate_period_defaults(
            config.get("period", {}), theme_ids, category_themes
        ))
        errors.extend(ConfigValidator.validate_pause_params(config.get("pause", {})))
        errors.extend(ConfigValidator.validate_timer_params(config.get("timer", {})))
        errors.extend(ConfigValidator.validate_storage_params(config.get("storage", {})))
        errors.extend(ConfigValidator.validate_logging_params(config.get("logging", {})))

        return errors


def _unknown_keys(prefix: str, values: dict[str, Any], target: type) -> list[ValidationError]:
    known = {item.name for item in fields(target)}
    return [
        ValidationError(field=f"{prefix}.{key}", message="Unknown setting", value=values[key])
        for key in sorted(values, key=str)
        if key not in known
    ]


def _required_fields(target: type) -> set[str]:
    return {
        item.name for item in fields(target)
        if item.default is MISSING and item.default_factory is MISSING
    }
