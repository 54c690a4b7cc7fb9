from scripts import detect_url
from detection.views import BoundingBox, DetectionResult, Dimensions, Layer


def test_main_passes_flags_to_run(monkeypatch):
    seen = {}

    async def fake_run(url, out_dir, mobile, dismiss_popups, scroll):
        seen.update(url=url, out_dir=out_dir, mobile=mobile, dismiss_popups=dismiss_popups, scroll=scroll)
        return 0

    monkeypatch.setattr(detect_url, "run", fake_run)
    code = detect_url.main(["https://example.com", "--mobile", "--no-popups", "--scroll", "--out", "shots"])

    assert code == 0
    assert seen == {"url": "https://example.com", "out_dir": "shots", "mobile": True,
                    "dismiss_popups": False, "scroll": True}


def test_main_defaults_to_desktop(monkeypatch):
    seen = {}

    async def fake_run(url, out_dir, mobile, dismiss_popups, scroll):
        seen.update(mobile=mobile, dismiss_popups=dismiss_popups, out_dir=out_dir)
        return 1

    monkeypatch.setattr(detect_url, "run", fake_run)
    assert detect_url.main(["https://example.com"]) == 1
    assert seen == {"mobile": False, "dismiss_popups": True, "out_dir": "output"}


def test_print_layers(capsys):
    result = DetectionResult(
        layers=[Layer(element_type="nav_bar", label="Main navigation", z_depth=6, is_interactive=False,
                      bounding_box=BoundingBox(x=0, y=0, width=1440, height=64))],
        dimensions=Dimensions(width=1440, height=900),
    )
    detect_url.print_layers(result)
    out = capsys.readouterr().out
    assert "Detected 1 layers using dom-extraction" in out
    assert "Main navigation (nav_bar) z=6 [0, 0, 1440x64]" in out
