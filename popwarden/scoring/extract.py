"""
Characteristics extraction.

Turns a raw element snapshot (computed style strings, bounding rect, text and
descendants) delivered by the page-side collector into normalized
Characteristics. Pure: no DOM access happens here.
"""

from __future__ import annotations

import re
from typing import Any, Iterator, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, ValidationError, field_validator

from popwarden.errors import InvalidInputError
from popwarden.scoring.characteristics import (
    MODAL_MIN_HEIGHT,
    MODAL_MIN_WIDTH,
    MODAL_MIN_Z_INDEX,
    Characteristics,
    Dimensions,
    Position,
)

CLOSE_MARKERS = ("close", "×", "✕", "閉じる")

AD_KEYWORDS = (
    "advertisement", "sponsored", "promo", "banner", "offer", "deal",
    "discount", "広告", "プロモ",
)

# Short keywords only count as standalone tokens ("ad-slot" yes, "header" no)
_AD_TOKEN_RE = re.compile(r"(?<![a-z0-9])ads?(?![a-z0-9])")

FORM_INPUT_TYPES = frozenset({"text", "email"})

OVERLAY_MIN_COVERAGE = 0.5
BLOCKING_MIN_Z_INDEX = 100
BLOCKING_MIN_COVERAGE = 0.6


class ComputedStyle(BaseModel):
    """The subset of computed CSS the rubric looks at, as raw strings."""
    position: str = "static"
    z_index: str = Field(default="auto", alias="zIndex")
    display: str = "block"
    visibility: str = "visible"
    opacity: str = "1"
    box_shadow: str = Field(default="none", alias="boxShadow")
    border: str = "none"

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("*", mode="before")
    @classmethod
    def stringify(cls, v: Any) -> Any:
        """Collectors may send numbers (zIndex: 10, opacity: 0.9)."""
        if v is None:
            return ""
        return v if isinstance(v, str) else str(v)


class ElementSnapshot(BaseModel):
    """Serialized view of a DOM element and its descendants."""
    tag_name: str = Field(default="div", alias="tagName")
    class_name: str = Field(default="", alias="className")
    element_id: str = Field(default="", alias="id")
    aria_label: str = Field(default="", alias="ariaLabel")
    text: str = ""
    href: Optional[str] = None
    input_type: Optional[str] = Field(default=None, alias="inputType")
    style: ComputedStyle = Field(default_factory=ComputedStyle)
    width: float = 0.0
    height: float = 0.0
    viewport_width: float = Field(default=0.0, alias="viewportWidth")
    viewport_height: float = Field(default=0.0, alias="viewportHeight")
    page_origin: Optional[str] = Field(default=None, alias="pageOrigin")
    children: List["ElementSnapshot"] = Field(default_factory=list)

    model_config = {"populate_by_name": True, "extra": "ignore"}

    def walk(self) -> Iterator["ElementSnapshot"]:
        """Yield this element and every descendant, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()


def _present(value: str) -> bool:
    v = value.strip().lower()
    return bool(v) and v != "none" and not v.startswith("0px none")


def _parse_float(value: str, default: float) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    return default if parsed != parsed else parsed


def _parse_z_index(value: str) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0


def _coverage(size: float, viewport: float) -> float:
    if viewport <= 0:
        return 0.0
    return size / viewport


def _has_close_button(root: ElementSnapshot) -> bool:
    for node in root.walk():
        haystack = " ".join((node.class_name, node.aria_label, node.text)).lower()
        if any(marker in haystack for marker in CLOSE_MARKERS):
            return True
    return False


def _contains_ads(root: ElementSnapshot) -> bool:
    for node in root.walk():
        haystack = " ".join((node.text, node.class_name, node.element_id)).lower()
        if any(keyword in haystack for keyword in AD_KEYWORDS):
            return True
        if _AD_TOKEN_RE.search(haystack):
            return True
    return False


def _is_external(href: str, page_origin: Optional[str]) -> bool:
    parsed = urlparse(href)
    if parsed.scheme not in ("http", "https"):
        return False
    if not page_origin:
        return True
    origin = urlparse(page_origin)
    return (parsed.scheme, parsed.netloc) != (origin.scheme, origin.netloc)


def _has_external_links(root: ElementSnapshot) -> bool:
    return any(
        node.href and _is_external(node.href, root.page_origin)
        for node in root.walk()
    )


def _has_form_elements(root: ElementSnapshot) -> bool:
    for node in root.walk():
        tag = node.tag_name.lower()
        if tag == "form":
            return True
        if tag == "input" and (node.input_type or "text").lower() in FORM_INPUT_TYPES:
            return True
    return False


def extract_characteristics(snapshot: Any) -> Characteristics:
    """
    Normalize an element snapshot into Characteristics.

    Args:
        snapshot: ElementSnapshot or its camelCase mapping

    Raises:
        InvalidInputError: when the snapshot cannot be parsed
    """
    if snapshot is None:
        raise InvalidInputError("element snapshot is required")
    if not isinstance(snapshot, ElementSnapshot):
        try:
            snapshot = ElementSnapshot.model_validate(snapshot)
        except ValidationError as e:
            raise InvalidInputError(f"invalid element snapshot: {e}") from e

    style = snapshot.style
    position_value = style.position.strip().lower()
    try:
        position = Position(position_value)
    except ValueError:
        position = Position.STATIC

    z_index = _parse_z_index(style.z_index)
    opacity = max(0.0, min(1.0, _parse_float(style.opacity, 1.0)))
    width = max(0.0, snapshot.width)
    height = max(0.0, snapshot.height)
    fixed = position == Position.FIXED

    visible = (
        style.display.strip().lower() != "none"
        and style.visibility.strip().lower() != "hidden"
        and opacity > 0
        and width > 0
        and height > 0
    )

    width_cover = _coverage(width, snapshot.viewport_width)
    height_cover = _coverage(height, snapshot.viewport_height)

    return Characteristics(
        position=position,
        z_index=z_index,
        visible=visible,
        dimensions=Dimensions(width=round(width), height=round(height)),
        has_close_button=_has_close_button(snapshot),
        contains_ads=_contains_ads(snapshot),
        has_external_links=_has_external_links(snapshot),
        has_form_elements=_has_form_elements(snapshot),
        is_modal=(
            fixed
            and z_index > MODAL_MIN_Z_INDEX
            and width > MODAL_MIN_WIDTH
            and height > MODAL_MIN_HEIGHT
        ),
        is_overlay=(
            fixed
            and width_cover >= OVERLAY_MIN_COVERAGE
            and height_cover >= OVERLAY_MIN_COVERAGE
        ),
        blocks_content=(
            fixed
            and z_index > BLOCKING_MIN_Z_INDEX
            and width_cover >= BLOCKING_MIN_COVERAGE
            and height_cover >= BLOCKING_MIN_COVERAGE
        ),
        opacity=opacity,
        has_box_shadow=_present(style.box_shadow),
        has_border=_present(style.border),
    )
