import pytest

from detection.views import DOMRect, ElementDescriptor


def build_element(tag="div", x=0, y=0, width=100, height=40, style=None, attributes=None,
                  text="", onclick=False) -> ElementDescriptor:
    computed = {"display": "block", "visibility": "visible", "opacity": "1",
                "position": "static", "z-index": "auto", "cursor": "auto"}
    computed.update(style or {})
    return ElementDescriptor(
        tag_name=tag,
        rect=DOMRect(x=x, y=y, width=width, height=height),
        computed_styles=computed,
        attributes=attributes or {},
        inner_text=text,
        has_click_handler=onclick,
    )


@pytest.fixture
def make_element():
    return build_element
