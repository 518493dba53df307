"""Base model configuration for all data structures."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel, to_pascal


class Model(BaseModel):
    """Base model for request payloads and reports.

    Serialized with camelCase keys, populated by either name.
    """

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )


class Record(BaseModel):
    """Base model for rows returned by the remote query interface.

    Remote rows use PascalCase field names. Unknown columns (such as the
    ``attributes`` envelope) are ignored, missing required ones are rejected.
    """

    model_config = ConfigDict(
        frozen=True, alias_generator=to_pascal, populate_by_name=True
    )
