"""Boundary validation for period metadata updates."""

from typing import Any

import structlog

from ..errors import InvalidMetadataError

logger = structlog.get_logger(__name__)


METADATA_SCHEMA = {
    "type": "object",
    "properties": {
        "theme": {
            "type": ["string", "null"],
            "description": "Theme identifier"
        },
        "category": {
            "type": ["string", "null"],
            "description": "Category identifier"
        },
        "name": {
            "type": "string",
            "description": "Period name/description"
        },
        "notes": {
            "type": "string",
            "description": "Free-form notes"
        },
        "tags": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Tag strings"
        }
    },
    "additionalProperties": False
}

# Timestamps are immutable after creation; these keys are dropped silently.
PROTECTED_TIMESTAMP_FIELDS = frozenset({"start_time", "end_time", "created_at"})

# Structural fields owned by the lifecycle engine; also dropped silently.
ENGINE_OWNED_FIELDS = frozenset({"id", "updated_at", "is_pause", "resume_from_id", "end"})


class MetadataValidator:
    """Validates partial metadata updates once, before they reach the store."""

    def __init__(self):
        self.logger = logger
        self.schema = METADATA_SCHEMA

    def clean_update(self, partial: dict[str, Any]) -> dict[str, Any]:
        """
        Strip protected fields and validate the remaining metadata changes.

        Args:
            partial: Requested field changes

        Returns:
            Validated changes restricted to metadata fields, tags normalized
            to a tuple

        Raises:
            InvalidMetadataError: On unknown fields or values of the wrong type
        """
        if not isinstance(partial, dict):
            raise InvalidMetadataError(
                "Metadata update must be a mapping",
                value=partial
            )

        dropped = sorted(
            key for key in partial
            if key in PROTECTED_TIMESTAMP_FIELDS or key in ENGINE_OWNED_FIELDS
        )
        if dropped:
            self.logger.debug("Ignoring protected fields in metadata update", fields=dropped)

        changes = {
            key: value for key, value in partial.items()
            if key not in PROTECTED_TIMESTAMP_FIELDS and key not in ENGINE_OWNED_FIELDS
        }

        properties = self.schema["properties"]
        unknown = sorted(key for key in changes if key not in properties)
        if unknown:
            raise InvalidMetadataError(
                f"Unknown metadata fields: {unknown}",
                field=unknown[0],
                value=changes[unknown[0]]
            )

        for key, value in changes.items():
            self._validate_field(key, value)

        if "tags" in changes:
            changes["tags"] = tuple(changes["tags"])

        return changes

    def _validate_field(self, key: str, value: Any) -> None:
        """Validate one field against its schema type."""
        if key in ("theme", "category"):
            if value is not None and not isinstance(value, str):
                raise InvalidMetadataError(f"{key} must be a string or null", field=key, value=value)
        elif key in ("name", "notes"):
            if not isinstance(value, str):
                raise InvalidMetadataError(f"{key} must be a string", field=key, value=value)
        elif key == "tags":
            if isinstance(value, str) or not isinstance(value, (list, tuple)):
                raise InvalidMetadataError("tags must be a list of strings", field=key, value=value)
            if not all(isinstance(tag, str) for tag in value):
                raise InvalidMetadataError("tags must be a list of strings", field=key, value=value)


# Global validator instance
validator = MetadataValidator()


def clean_metadata_update(partial: dict[str, Any]) -> dict[str, Any]:
    """Convenience function to validate a metadata update."""
    return validator.clean_update(partial)
