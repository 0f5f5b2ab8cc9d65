"""Base model for CBTC SDK."""
from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, PlainSerializer

from ..amounts import format_amount, to_decimal


class CBTCModel(BaseModel):
    """Base model with common configuration."""

    model_config = ConfigDict(
        populate_by_name=True,
        use_enum_values=True,
        extra="ignore",
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert model to its camelCase wire dictionary."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CBTCModel":
        """Create model from dictionary."""
        return cls.model_validate(data)


def _parse_amount(value: Any) -> Decimal:
    # JSON numbers from a service are decoded through their text form
    if isinstance(value, float):
        value = repr(value)
    return to_decimal(value)


def _serialize_amount(value: Decimal) -> str:
    return format_amount(value)


# Decimal that serializes as a plain decimal string, never in exponent form
Amount = Annotated[
    Decimal,
    BeforeValidator(_parse_amount),
    PlainSerializer(_serialize_amount, return_type=str, when_used="json"),
]


def template_suffix(template_id: str) -> str:
    """Drop the package part of a template id.

    The ledger reports ``<package-id>:Module:Entity`` while requests use
    ``#<package-name>:Module:Entity``; both share the ``Module:Entity`` suffix.
    """
    return template_id.split(":", 1)[1] if ":" in template_id else template_id


def same_template(left: str, right: str) -> bool:
    return template_suffix(left) == template_suffix(right)
