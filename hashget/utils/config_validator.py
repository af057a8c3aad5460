"""
JSON Schema validation for configuration files.
Allows external tools to validate configs and provides better error messages.
"""

from typing import Any

from jsonschema import Draft7Validator

from hashget.models.config import CONFIG_FIELDS, ConfigField

# Bounds that the pydantic models also enforce, repeated so that an INI file
# can be checked on its own.
_BOUNDS: dict[str, dict[str, int]] = {
    "redirect_max": {"minimum": 0, "maximum": 20},
    "peer_port": {"minimum": 1, "maximum": 65535},
}

_JSON_TYPES = {bool: "boolean", int: "integer", str: "string", list: "array"}


def _field_schema(field: ConfigField) -> dict[str, Any]:
    schema: dict[str, Any] = {
        "type": _JSON_TYPES[field.kind],
        "description": field.help,
    }
    if field.kind is int:
        schema.update(_BOUNDS.get(field.key, {"minimum": 0}))
    if field.kind is list:
        items: dict[str, Any] = {"type": "string"}
        if field.choices:
            items["enum"] = list(field.choices)
        schema["items"] = items
        schema["uniqueItems"] = True
    elif field.choices:
        schema["enum"] = list(field.choices)
    if field.key == "hash_value":
        schema["pattern"] = "^([0-9a-fA-F]{2})*$"
    return schema


def build_config_schema() -> dict[str, Any]:
    """Builds the JSON schema of the flat configuration from CONFIG_FIELDS."""
    return {
        "$schema": "http://json-schema.org/draft-07/schema#",
        "title": "hashget Configuration",
        "description": "Configuration schema for the hashget downloader",
        "type": "object",
        "properties": {f.key: _field_schema(f) for f in CONFIG_FIELDS},
        "additionalProperties": False,
    }


CONFIG_SCHEMA = build_config_schema()


def validate_config_schema(config_dict: dict[str, Any]) -> tuple[bool, list[str]]:
    """
    Validate configuration against JSON schema.

    Args:
        config_dict: Configuration dictionary

    Returns:
        Tuple of (is_valid, error_messages)
    """
    validator = Draft7Validator(CONFIG_SCHEMA)
    errors = sorted(validator.iter_errors(config_dict), key=lambda e: list(e.path))

    if not errors:
        return True, []

    error_messages = []
    for error in errors:
        path = ".".join(str(p) for p in error.path) if error.path else "root"
        error_messages.append(f"{path}: {error.message}")

    return False, error_messages


def validate_option_conflicts(config: dict[str, Any]) -> tuple[bool, list[str]]:
    """
    Check for option combinations that cannot work together.

    Args:
        config: Configuration dictionary

    Returns:
        Tuple of (is_valid, error_messages)
    """
    errors = []

    if config.get("peer_secret") and config.get("peer_secret_hex"):
        errors.append("Set either peer_secret or peer_secret_hex, not both")

    if config.get("peer") and not config.get("peer_backend"):
        errors.append(
            "Warning: peer=true without peer_backend; "
            "the peer cache will never start"
        )

    if config.get("peer_request") and not config.get("peer"):
        errors.append("Warning: peer_request is ignored while peer=false")

    return all(e.startswith("Warning") for e in errors), errors
