"""Base model for storefront API payloads.

Every response model inherits from :class:`ShopBaseModel` which is:

* frozen, so a cached response can be shared between surfaces without
  one of them mutating it in place;
* ``extra="allow"``, so fields this library does not model (images,
  descriptions, seller info) survive parsing and reconciliation.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator


class ShopBaseModel(BaseModel):
    """Base for storefront response models."""

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        populate_by_name=True,
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, values: Any) -> Any:
        """Drop explicit ``null`` values so field defaults apply."""
        if not isinstance(values, dict):
            return values
        return {key: value for key, value in values.items() if value is not None}
