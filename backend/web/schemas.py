"""Base model for API request payloads (camelCase JSON keys, trimmed strings)."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


# Upper bound of a Postgres `integer` column.
PG_INT_MAX = 2**31 - 1
