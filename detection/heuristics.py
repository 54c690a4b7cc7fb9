"""
Per-element heuristics used by the layer detector.

Every function here looks at a single ElementDescriptor and never at its
neighbours, so they can be unit tested in isolation. Classification and depth
precedence is expressed as ordered rule tables evaluated top to bottom; the
first matching rule wins.
"""
import math
import re
from typing import Callable, List, Tuple

from .views import BoundingBox, DOMRect, ElementDescriptor, ElementType

MIN_ELEMENT_SIZE = 20
LABEL_MAX_CHARS = 60
SKIPPED_TAGS = frozenset({"script", "style", "noscript", "meta", "link"})
INTERACTIVE_TAGS = frozenset({"button", "a", "input", "textarea", "select"})

Predicate = Callable[[ElementDescriptor], bool]


# --------------------------
# Visibility & inclusion
# --------------------------
def parse_opacity(raw: str) -> float:
    try:
        return float(raw)
    except (TypeError, ValueError):
        return 1.0


def parse_z_index(raw: str) -> int:
    """Mirrors parseInt(): leading integer or 0 ('auto', '', garbage)."""
    match = re.match(r"\s*([+-]?\d+)", raw or "")
    return int(match.group(1)) if match else 0


def is_visible(element: ElementDescriptor, viewport_height: float) -> bool:
    rect = element.rect
    return (
        rect.width > 0
        and rect.height > 0
        and element.style("display") != "none"
        and element.style("visibility") != "hidden"
        and parse_opacity(element.style("opacity", "1")) != 0
        and rect.top < viewport_height
        and rect.bottom > 0
    )


def should_include(element: ElementDescriptor, viewport_height: float) -> bool:
    rect = element.rect
    if rect.width < MIN_ELEMENT_SIZE or rect.height < MIN_ELEMENT_SIZE:
        return False
    if not is_visible(element, viewport_height):
        return False
    if element.tag in SKIPPED_TAGS:
        return False
    return True


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def dedup_key(rect: DOMRect) -> Tuple[int, int, int, int]:
    return tuple(round_half_up(v) for v in (rect.left, rect.top, rect.width, rect.height))


def to_bounding_box(rect: DOMRect) -> BoundingBox:
    left, top, width, height = dedup_key(rect)
    return BoundingBox(x=left, y=top, width=width, height=height)


# --------------------------
# Depth
# --------------------------
# (predicate, depth) evaluated after position and z-index checks
TAG_DEPTH_RULES: List[Tuple[Predicate, int]] = [
    (lambda el: el.tag in ("button", "a"), 8),
    (lambda el: el.tag in ("input", "textarea"), 7),
    (lambda el: el.role == "button", 8),
    (lambda el: el.tag in ("nav", "header"), 6),
    (lambda el: el.tag == "img", 4),
    (lambda el: el.tag in ("section", "article"), 3),
]
DEFAULT_DEPTH = 5


def z_depth(element: ElementDescriptor) -> int:
    if element.style("position") in ("fixed", "sticky"):
        return 10

    z_index = parse_z_index(element.style("z-index"))
    if z_index > 100:
        return 9
    if z_index > 10:
        return 8
    if z_index > 0:
        return 7

    for predicate, depth in TAG_DEPTH_RULES:
        if predicate(element):
            return depth
    return DEFAULT_DEPTH


# --------------------------
# Classification
# --------------------------
ELEMENT_TYPE_RULES: List[Tuple[str, Predicate, ElementType]] = [
    ("button_signal",
     lambda el: el.tag == "button" or el.role == "button" or "button" in el.class_name or "btn" in el.class_name,
     ElementType.BUTTON),
    ("anchor", lambda el: el.tag == "a", ElementType.BUTTON),
    ("form_control", lambda el: el.tag in ("input", "textarea", "select"), ElementType.INPUT_FIELD),
    ("image", lambda el: el.tag == "img", ElementType.HERO_IMAGE),
    ("navigation", lambda el: el.tag == "nav" or el.role == "navigation", ElementType.NAV_BAR),
    ("banner", lambda el: el.tag == "header" or el.role == "banner", ElementType.HEADER),
    ("content_info", lambda el: el.tag == "footer" or el.role == "contentinfo", ElementType.FOOTER),
    ("card_class", lambda el: "card" in el.class_name, ElementType.CARD),
    ("article", lambda el: el.tag == "article", ElementType.CARD),
    ("section", lambda el: el.tag == "section", ElementType.CARD),
]


def classify(element: ElementDescriptor) -> ElementType:
    for _, predicate, element_type in ELEMENT_TYPE_RULES:
        if predicate(element):
            return element_type
    return ElementType.TEXT_BLOCK


# --------------------------
# Label & interactivity
# --------------------------
def label_for(element: ElementDescriptor) -> str:
    text = element.inner_text.strip()[:LABEL_MAX_CHARS]
    for candidate in (
        element.attr("aria-label"),
        element.attr("alt"),
        element.attr("title"),
        element.attr("placeholder"),
        text,
    ):
        if candidate:
            return candidate
    return element.tag


def is_interactive(element: ElementDescriptor) -> bool:
    return (
        element.tag in INTERACTIVE_TAGS
        or element.role == "button"
        or element.has_click_handler
        or element.style("cursor") == "pointer"
    )
