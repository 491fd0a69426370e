"""Common pydantic configuration for persisted records."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict

from parcelops.utils.string_helpers import to_camel_case


class RecordModel(BaseModel):
    """Base for every record that lives in the cache or the record store.

    Attributes are snake_case; the serialized form uses camelCase aliases.
    Both spellings are accepted on input.
    """

    model_config = ConfigDict(
        alias_generator=to_camel_case,
        populate_by_name=True,
        from_attributes=True,
        use_enum_values=False,
    )

    def to_wire(self) -> dict[str, Any]:
        """JSON-safe camelCase dict, as stored in the local cache."""
        return self.model_dump(mode="json", by_alias=True)
