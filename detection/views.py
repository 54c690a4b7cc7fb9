from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class ElementType(str, Enum):
    BUTTON = "button"
    CARD = "card"
    NAV_BAR = "nav_bar"
    HERO_IMAGE = "hero_image"
    TEXT_BLOCK = "text_block"
    INPUT_FIELD = "input_field"
    ICON = "icon"
    AVATAR = "avatar"
    BADGE = "badge"
    MODAL = "modal"
    SIDEBAR = "sidebar"
    FOOTER = "footer"
    HEADER = "header"
    LOGO = "logo"
    ILLUSTRATION = "illustration"
    CHART = "chart"
    TABLE = "table"
    LIST_ITEM = "list_item"
    TAB = "tab"
    DROPDOWN = "dropdown"
    TOGGLE = "toggle"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    SLIDER = "slider"
    PROGRESS_BAR = "progress_bar"
    TOOLTIP = "tooltip"
    NOTIFICATION = "notification"
    OTHER = "other"


# --------------------------
# Raw element data (what the element source hands over)
# --------------------------
@dataclass
class DOMRect:
    x: float
    y: float
    width: float
    height: float

    @property
    def top(self) -> float:
        return self.y

    @property
    def left(self) -> float:
        return self.x

    @property
    def bottom(self) -> float:
        return self.y + self.height


@dataclass
class ElementDescriptor:
    """
    One element of a live (or snapshotted) document as seen by the detector:
    its viewport rectangle, a handful of computed styles, identifying attributes
    and visible text.
    """
    tag_name: str
    rect: DOMRect
    computed_styles: Dict[str, str] = field(default_factory=dict)
    attributes: Dict[str, str] = field(default_factory=dict)
    inner_text: str = ""
    has_click_handler: bool = False

    @property
    def tag(self) -> str:
        return self.tag_name.lower()

    @property
    def role(self) -> Optional[str]:
        return self.attributes.get("role")

    @property
    def class_name(self) -> str:
        return (self.attributes.get("class") or "").lower()

    def attr(self, name: str) -> str:
        return (self.attributes.get(name) or "").strip()

    def style(self, name: str, default: str = "") -> str:
        return str(self.computed_styles.get(name, default)).strip().lower()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ElementDescriptor":
        rect = data.get("rect") or {}
        attributes = {k: str(v) for k, v in (data.get("attributes") or {}).items() if v is not None}
        return cls(
            tag_name=data.get("tag") or data.get("tag_name") or "div",
            rect=DOMRect(
                x=float(rect.get("x", rect.get("left", 0))),
                y=float(rect.get("y", rect.get("top", 0))),
                width=float(rect.get("width", 0)),
                height=float(rect.get("height", 0)),
            ),
            computed_styles={k: str(v) for k, v in (data.get("style") or {}).items() if v is not None},
            attributes=attributes,
            inner_text=data.get("text") or "",
            has_click_handler=bool(data.get("has_click_handler") or "onclick" in attributes),
        )


# --------------------------
# Detection output
# --------------------------
class BoundingBox(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: int
    y: int
    width: int = Field(gt=0)
    height: int = Field(gt=0)

    @property
    def area(self) -> int:
        return self.width * self.height


class Layer(BaseModel):
    model_config = ConfigDict(frozen=True, use_enum_values=True)

    element_type: ElementType
    label: str
    bounding_box: BoundingBox
    z_depth: int = Field(ge=1, le=10)
    is_interactive: bool


class Dimensions(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: int
    height: int


class DetectionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    layers: Tuple[Layer, ...] = ()
    dimensions: Dimensions
    url: Optional[str] = None
    method: str = "dom-extraction"

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
