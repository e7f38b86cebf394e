"""Schema helpers for LLM structured output.

Utilities for turning Pydantic response models into the ``response_format``
payload each provider expects.
"""

import copy
from typing import Any

from pydantic import BaseModel


def fix_schema_for_anthropic(schema: dict) -> dict:
    """Add additionalProperties: false to all object types in schema.

    Anthropic's structured output requires explicit additionalProperties: false
    on all object types. Pydantic doesn't add this by default.

    Args:
        schema: JSON schema dict (typically from Pydantic model)

    Returns:
        Modified copy of the schema with additionalProperties: false on all objects
    """

    def fix_object(obj: Any) -> Any:
        if isinstance(obj, dict):
            if obj.get("type") == "object":
                obj["additionalProperties"] = False
            for key, value in obj.items():
                obj[key] = fix_object(value)
        elif isinstance(obj, list):
            return [fix_object(item) for item in obj]
        return obj

    return fix_object(copy.deepcopy(schema))


def build_json_schema(model: type[BaseModel], provider: str) -> dict:
    """Build the ``json_schema`` block for a litellm ``response_format``.

    Args:
        model: Pydantic model describing the expected output
        provider: Provider name from MODEL_REGISTRY ("openai", "anthropic", ...)

    Returns:
        {"name": ..., "schema": ...} ready for {"type": "json_schema", "json_schema": ...}
    """
    schema = model.model_json_schema()
    if provider == "anthropic":
        schema = fix_schema_for_anthropic(schema)
    return {"name": model.__name__, "schema": schema}
