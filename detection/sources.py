import json
from typing import Any, Dict, List

from playwright.async_api import Page, Error as PlaywrightError

from core.errors import DetectionUnavailableError, InvalidInputError
from core.logger import log
from .views import Dimensions, ElementDescriptor

# Collects the per-element facts the heuristics need in one round trip.
_QUERY_JS = """
(selector) => Array.from(document.querySelectorAll(selector)).map((el) => {
    const rect = el.getBoundingClientRect();
    const style = window.getComputedStyle(el);
    const attrs = {};
    for (const name of ['id', 'class', 'role', 'aria-label', 'alt', 'title', 'placeholder']) {
        const value = el.getAttribute(name);
        if (value !== null) attrs[name] = value;
    }
    return {
        tag: el.tagName.toLowerCase(),
        rect: {x: rect.left, y: rect.top, width: rect.width, height: rect.height},
        style: {
            display: style.display,
            visibility: style.visibility,
            opacity: style.opacity,
            position: style.position,
            'z-index': style.zIndex,
            cursor: style.cursor,
        },
        attributes: attrs,
        text: el.innerText ? el.innerText.trim().substring(0, 200) : '',
        has_click_handler: el.hasAttribute('onclick'),
    };
})
"""

_VIEWPORT_JS = """
() => ({
    width: window.innerWidth,
    height: window.innerHeight,
})
"""


class ElementSource:
    """
    Element-query capability consumed by the layer detector.
    Implementations resolve a CSS selector against a document and report the
    viewport the rectangles are expressed in.
    """

    async def query_selector_all(self, selector: str) -> List[ElementDescriptor]:
        raise NotImplementedError

    async def viewport(self) -> Dimensions:
        raise NotImplementedError


class PlaywrightElementSource(ElementSource):
    """Queries a live Playwright page."""

    def __init__(self, page: Page):
        self.page = page

    async def query_selector_all(self, selector: str) -> List[ElementDescriptor]:
        try:
            raw = await self.page.evaluate(_QUERY_JS, selector)
        except PlaywrightError as e:
            log("ERROR", "element_query_failed", "Element query failed", selector=selector, error=str(e))
            raise DetectionUnavailableError(f"element query failed for {selector!r}: {e}")
        return [ElementDescriptor.from_dict(item) for item in raw]

    async def viewport(self) -> Dimensions:
        try:
            dims = await self.page.evaluate(_VIEWPORT_JS)
        except PlaywrightError as e:
            raise DetectionUnavailableError(f"could not read viewport: {e}")
        return Dimensions(width=int(dims["width"]), height=int(dims["height"]))


class SnapshotElementSource(ElementSource):
    """
    Serves a pre-captured element tree.

    The snapshot maps each selector string to the list of elements it matched,
    in document order, alongside the viewport:

        {"viewport": {"width": 1440, "height": 900},
         "matches": {"a[href]": [{"tag": "a", "rect": {...}, ...}]}}

    Selectors absent from the snapshot match nothing.
    """

    def __init__(self, matches: Dict[str, List[ElementDescriptor]], viewport: Dimensions):
        self.matches = matches
        self._viewport = viewport

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SnapshotElementSource":
        try:
            viewport = Dimensions(**data["viewport"])
            matches = {
                selector: [ElementDescriptor.from_dict(item) for item in items]
                for selector, items in (data.get("matches") or {}).items()
            }
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidInputError(f"malformed element snapshot: {e}")
        return cls(matches, viewport)

    @classmethod
    def from_file(cls, path: str) -> "SnapshotElementSource":
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            raise DetectionUnavailableError(f"snapshot not found: {path}")
        except json.JSONDecodeError as e:
            raise InvalidInputError(f"snapshot is not valid JSON: {e}")
        return cls.from_dict(data)

    async def query_selector_all(self, selector: str) -> List[ElementDescriptor]:
        return list(self.matches.get(selector, []))

    async def viewport(self) -> Dimensions:
        return self._viewport

