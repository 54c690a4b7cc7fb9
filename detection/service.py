import time
from dataclasses import dataclass
from typing import List, Optional, Sequence, Set, Tuple

from core import metrics
from core.errors import DetectionUnavailableError
from core.logger import log
from . import heuristics
from .sources import ElementSource
from .views import DetectionResult, ElementDescriptor, Layer

MAX_LAYERS = 25
DOM_METHOD = "dom-extraction"


@dataclass(frozen=True)
class LayerQuery:
    name: str
    selector: str


# Evaluated in order; interactive controls first so they win bbox ties.
DEFAULT_QUERIES: Tuple[LayerQuery, ...] = (
    LayerQuery("controls", 'button, [role="button"], .btn, .button'),
    LayerQuery("anchors", "a[href]"),
    LayerQuery("inputs", 'input:not([type="hidden"]), textarea, select'),
    LayerQuery("landmarks", "nav, header, footer"),
    LayerQuery("images", "img[src]"),
    LayerQuery("cards", ".card, article"),
    LayerQuery("sections", "section"),
    LayerQuery("containers", 'div[class*="container"]'),
    LayerQuery("headings", "h1, h2, h3"),
)


def build_layer(element: ElementDescriptor) -> Layer:
    return Layer(
        element_type=heuristics.classify(element),
        label=heuristics.label_for(element),
        bounding_box=heuristics.to_bounding_box(element.rect),
        z_depth=heuristics.z_depth(element),
        is_interactive=heuristics.is_interactive(element),
    )


def rank_layers(layers: List[Layer], limit: int = MAX_LAYERS) -> List[Layer]:
    """Depth descending, then area descending; exact ties keep discovery order."""
    ranked = sorted(layers, key=lambda l: (-l.z_depth, -l.bounding_box.area))
    return ranked[:limit]


class LayerDetector:
    """
    Walks an element source with a fixed list of structural queries and turns
    the surviving elements into ranked, de-duplicated layers.
    """

    def __init__(self, queries: Sequence[LayerQuery] = DEFAULT_QUERIES, max_layers: int = MAX_LAYERS):
        self.queries = tuple(queries)
        self.max_layers = max_layers

    async def detect(self, source: ElementSource, url: Optional[str] = None) -> DetectionResult:
        start = time.time()
        log("INFO", "detect_start", "Detecting layers", url=url, queries=len(self.queries))
        try:
            viewport = await source.viewport()
            seen: Set[Tuple[int, int, int, int]] = set()
            layers: List[Layer] = []

            for query in self.queries:
                elements = await source.query_selector_all(query.selector)
                kept = 0
                for element in elements:
                    if not heuristics.should_include(element, viewport.height):
                        continue
                    key = heuristics.dedup_key(element.rect)
                    if key in seen:
                        continue
                    seen.add(key)
                    layers.append(build_layer(element))
                    kept += 1
                log("DEBUG", "detect_query", f"Query {query.name} kept {kept}/{len(elements)}",
                    selector=query.selector)
        except DetectionUnavailableError:
            metrics.DETECTIONS_TOTAL.labels(outcome="unavailable").inc()
            log("ERROR", "detect_failed", "Element source unavailable", url=url)
            raise

        ranked = rank_layers(layers, self.max_layers)
        metrics.DETECTIONS_TOTAL.labels(outcome="ok").inc()
        log("INFO", "detect_done", f"Detected {len(ranked)} layers",
            url=url, candidates=len(layers), duration_ms=int((time.time() - start) * 1000))
        return DetectionResult(layers=ranked, dimensions=viewport, url=url, method=DOM_METHOD)
