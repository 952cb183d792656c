"""
Normalized characteristics of a candidate popup element.

Characteristics is the common currency of the scorer, the pattern store and
the message layer. Field names are snake_case in Python and camelCase on the
wire (zIndex, hasCloseButton, ...).
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from popwarden.errors import InvalidInputError


class Position(str, Enum):
    """CSS position values."""
    STATIC = "static"
    RELATIVE = "relative"
    ABSOLUTE = "absolute"
    FIXED = "fixed"
    STICKY = "sticky"


class Dimensions(BaseModel):
    """Rendered size of an element in CSS pixels."""
    width: float = 0.0
    height: float = 0.0

    model_config = {"frozen": True, "extra": "ignore"}


MODAL_MIN_Z_INDEX = 1000
MODAL_MIN_WIDTH = 200
MODAL_MIN_HEIGHT = 150

BOOLEAN_FIELDS = (
    "visible",
    "has_close_button",
    "contains_ads",
    "has_external_links",
    "has_form_elements",
    "is_modal",
    "is_overlay",
    "blocks_content",
    "has_box_shadow",
    "has_border",
)


class Characteristics(BaseModel):
    """Immutable snapshot of what a candidate element looks like.

    Every field is optional; absent fields are treated as False/0 by the
    scorer and excluded from similarity by the pattern store.
    """
    position: Optional[Position] = None
    z_index: Optional[int] = Field(default=None, alias="zIndex")
    visible: Optional[bool] = None
    dimensions: Optional[Dimensions] = None
    has_close_button: Optional[bool] = Field(default=None, alias="hasCloseButton")
    contains_ads: Optional[bool] = Field(default=None, alias="containsAds")
    has_external_links: Optional[bool] = Field(default=None, alias="hasExternalLinks")
    has_form_elements: Optional[bool] = Field(default=None, alias="hasFormElements")
    is_modal: Optional[bool] = Field(default=None, alias="isModal")
    is_overlay: Optional[bool] = Field(default=None, alias="isOverlay")
    blocks_content: Optional[bool] = Field(default=None, alias="blocksContent")
    opacity: Optional[float] = None
    has_box_shadow: Optional[bool] = Field(default=None, alias="hasBoxShadow")
    has_border: Optional[bool] = Field(default=None, alias="hasBorder")

    model_config = {"frozen": True, "populate_by_name": True, "extra": "ignore"}

    @field_validator("position", mode="before")
    @classmethod
    def normalize_position(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("z_index", mode="before")
    @classmethod
    def parse_z_index(cls, v: Any) -> Any:
        """Unparsable z-index values (including "auto") become 0."""
        if v is None:
            return None
        if isinstance(v, bool):
            return 0
        try:
            return int(float(str(v).strip()))
        except (ValueError, OverflowError):
            return 0

    @field_validator("opacity", mode="before")
    @classmethod
    def clamp_opacity(cls, v: Any) -> Any:
        if v is None:
            return None
        try:
            value = float(v)
        except (TypeError, ValueError):
            return 1.0
        if value != value:  # NaN
            return 1.0
        return max(0.0, min(1.0, value))

    @classmethod
    def from_data(cls, data: Any) -> "Characteristics":
        """Build from a wire mapping, raising InvalidInputError on bad input."""
        if isinstance(data, cls):
            return data
        if data is None:
            raise InvalidInputError("characteristics are required")
        if not isinstance(data, dict):
            raise InvalidInputError(
                f"characteristics must be an object, got {type(data).__name__}"
            )
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise InvalidInputError(f"invalid characteristics: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        """camelCase mapping with absent fields omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def has_modal_shape(self) -> bool:
        """Fixed, stacked above 1000 and larger than 200x150."""
        if self.position != Position.FIXED or self.dimensions is None:
            return False
        return (
            (self.z_index or 0) > MODAL_MIN_Z_INDEX
            and self.dimensions.width > MODAL_MIN_WIDTH
            and self.dimensions.height > MODAL_MIN_HEIGHT
        )

    def flag(self, name: str) -> bool:
        """Boolean field value with absent treated as False."""
        return bool(getattr(self, name))
