import io
from typing import Optional, Tuple
from PIL import Image
from playwright.async_api import Page, Error as PlaywrightError
from core.errors import DetectionUnavailableError
from core.logger import log


class ScreenshotService:
    """
    Captures the viewport screenshot a detection is drawn on.

    The renderer maps layer boxes from CSS pixels onto this image by ratio, so
    the image keeps the viewport's aspect ratio; it is only downscaled when a
    max size is configured.
    """

    def __init__(self, max_width: Optional[int] = None, max_height: Optional[int] = None):
        self.max_width = max_width
        self.max_height = max_height

    async def capture_to_file(self, page: Page, path: str, full_page: bool = False) -> Tuple[int, int]:
        """
        Captures a PNG screenshot to `path`. Returns the saved image size.
        """
        try:
            png_bytes = await page.screenshot(full_page=full_page, type='png')
        except PlaywrightError as e:
            log("ERROR", "screenshot_failed", "Failed to capture screenshot", path=path, error=str(e))
            raise DetectionUnavailableError(f"screenshot failed: {e}")

        img = Image.open(io.BytesIO(png_bytes))
        img = self._resize_image(img)
        img.save(path, format="PNG", optimize=True)

        log("DEBUG", "screenshot_saved", f"Saved screenshot to {path} ({img.size[0]}x{img.size[1]})")
        return img.size

    def _resize_image(self, img: Image.Image) -> Image.Image:
        """
        Resizes image to fit within max dimensions while maintaining aspect ratio.
        """
        if not self.max_width and not self.max_height:
            return img

        width, height = img.size
        max_width = self.max_width or width
        max_height = self.max_height or height
        if width <= max_width and height <= max_height:
            return img

        aspect_ratio = width / height
        if width > max_width:
            width = max_width
            height = int(width / aspect_ratio)
        if height > max_height:
            height = max_height
            width = int(height * aspect_ratio)

        return img.resize((width, height), Image.Resampling.LANCZOS)
