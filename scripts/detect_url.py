import argparse
import asyncio
import json
import os
import sys
# Add project root to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from capture.browser_manager import BrowserManager
from capture.browser_profile import CaptureProfile
from capture.page_capture import PageCapture
from core.errors import LayerFlowError
from detection.views import DetectionResult


def print_layers(result: DetectionResult):
    interactive = sum(1 for l in result.layers if l.is_interactive)
    print(f"\nDetected {len(result.layers)} layers using {result.method} "
          f"({result.dimensions.width}x{result.dimensions.height}, {interactive} interactive):")
    for i, layer in enumerate(result.layers, start=1):
        box = layer.bounding_box
        print(f"  {i:2d}. {layer.label[:50]} ({layer.element_type}) z={layer.z_depth} "
              f"[{box.x}, {box.y}, {box.width}x{box.height}]")


async def run(url: str, out_dir: str, mobile: bool, dismiss_popups: bool, scroll: bool) -> int:
    os.makedirs(out_dir, exist_ok=True)
    overrides = {"dismiss_popups": dismiss_popups, "scroll": scroll}
    profile = CaptureProfile.mobile(**overrides) if mobile else CaptureProfile.desktop(**overrides)

    bm = BrowserManager(profile)
    try:
        await bm.start()
        capture = PageCapture(bm)
        screenshot_path = os.path.join(out_dir, "url-screenshot.png")
        result, _ = await capture.capture(url, screenshot_path, profile)
    except LayerFlowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        await bm.stop()

    json_path = os.path.join(out_dir, "url-detection.json")
    with open(json_path, "w", encoding="utf-8") as f:
        json.dump(result.to_json_dict(), f, indent=2)

    print_layers(result)
    print(f"\nScreenshot: {screenshot_path}")
    print(f"Detection JSON: {json_path}")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Detect UI layers on a live web page")
    parser.add_argument("url")
    device = parser.add_mutually_exclusive_group()
    device.add_argument("--mobile", action="store_true", help="Use mobile viewport (390x844)")
    device.add_argument("--desktop", action="store_true", help="Use desktop viewport (1440x900) [default]")
    parser.add_argument("--no-popups", action="store_true", help="Skip popup dismissal")
    parser.add_argument("--scroll", action="store_true", help="Scroll page to load lazy content")
    parser.add_argument("--out", default="output", help="Output directory")
    args = parser.parse_args(argv)

    return asyncio.run(run(args.url, args.out, args.mobile, not args.no_popups, args.scroll))


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nStopped by user.")
