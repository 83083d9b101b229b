from typing import Any, Dict, List, Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

# Schema-free payloads (variant config, event metadata/value) are JSON-compatible values
JSONValue = Union[str, int, float, bool, None, List[Any], Dict[str, Any]]


class CamelModel(BaseModel):
    """Base model using camelCase on the wire and snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
