"""
Shared pydantic configuration.

The HTTP contract uses camelCase keys; Python code uses snake_case field
names. Both spellings are accepted on input.
"""
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
     model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
