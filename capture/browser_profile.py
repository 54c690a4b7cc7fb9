from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, ConfigDict

from core import config


class ViewportSize(BaseModel):
    width: int = 1440
    height: int = 900


class CaptureProfile(BaseModel):
    """
    Browser launch and page-context settings for one capture.
    """
    model_config = ConfigDict(extra='ignore')

    name: str = "desktop"
    headless: bool = config.HEADLESS
    executable_path: Optional[str] = config.BROWSER_EXEC_PATH
    user_agent: Optional[str] = None
    viewport: ViewportSize = Field(default_factory=ViewportSize)
    device_scale_factor: float = 2
    is_mobile: bool = False
    has_touch: bool = False

    # Page load behaviour
    navigation_timeout_ms: int = config.NAVIGATION_TIMEOUT_MS
    settle_delay_ms: int = config.SETTLE_DELAY_MS
    dismiss_popups: bool = True
    scroll: bool = False

    # Chrome Args
    extra_args: List[str] = Field(default_factory=list)

    @classmethod
    def desktop(cls, **overrides) -> "CaptureProfile":
        return cls(**overrides)

    @classmethod
    def mobile(cls, **overrides) -> "CaptureProfile":
        # iPhone 14 Pro
        base = {
            "name": "mobile",
            "viewport": ViewportSize(width=390, height=844),
            "device_scale_factor": 3,
            "is_mobile": True,
            "has_touch": True,
        }
        base.update(overrides)
        return cls(**base)

    def get_launch_args(self) -> List[str]:
        args = [
            '--no-sandbox',
            '--disable-setuid-sandbox',
            '--disable-blink-features=AutomationControlled',
            '--disable-infobars',
        ]
        args.extend(self.extra_args)
        return args

    def context_kwargs(self) -> Dict[str, Any]:
        kwargs = {
            "viewport": self.viewport.model_dump(),
            "device_scale_factor": self.device_scale_factor,
            "is_mobile": self.is_mobile,
            "has_touch": self.has_touch,
            "user_agent": self.user_agent,
            "ignore_https_errors": True,
        }
        return {k: v for k, v in kwargs.items() if v is not None}
