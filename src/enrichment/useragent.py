"""
User-agent classification.

Three independent heuristics over the lower-cased user-agent string.
None of them raise: an empty input yields no classification (None), and an
unrecognised one degrades to "Other" (desktop for the device check).
"""
import re
from dataclasses import dataclass
from typing import Optional

# Tablets are checked first: an Android UA without "mobi" is a tablet.
_TABLET_RE = re.compile(r"(tablet|ipad|playbook|silk)|(android(?!.*mobi))")
_MOBILE_RE = re.compile(
    r"mobile|android|ip(hone|od)|iemobile|blackberry|kindle|silk-accelerated"
    r"|(hpw|web)os|opera m(obi|ini)"
)


@dataclass(frozen=True)
class UAClassification:
    device_type: str
    browser: str
    os: str


def _normalise(user_agent: Optional[str]) -> Optional[str]:
    if not user_agent:
        return None
    return user_agent.lower()


def detect_device(user_agent: Optional[str]) -> Optional[str]:
    ua = _normalise(user_agent)
    if ua is None:
        return None
    if _TABLET_RE.search(ua):
        return "tablet"
    if _MOBILE_RE.search(ua):
        return "mobile"
    return "desktop"


def detect_browser(user_agent: Optional[str]) -> Optional[str]:
    """First match wins; Edge and Chrome both carry "chrome", Chrome carries "safari"."""
    ua = _normalise(user_agent)
    if ua is None:
        return None
    if "chrome" in ua and "edg" not in ua:
        return "Chrome"
    if "firefox" in ua:
        return "Firefox"
    if "safari" in ua and "chrome" not in ua:
        return "Safari"
    if "edg" in ua:
        return "Edge"
    if "opera" in ua or "opr" in ua:
        return "Opera"
    return "Other"


def detect_os(user_agent: Optional[str]) -> Optional[str]:
    ua = _normalise(user_agent)
    if ua is None:
        return None
    if "windows" in ua:
        return "Windows"
    # iOS devices report "like Mac OS X"
    if "mac os" in ua and "like mac os" not in ua:
        return "macOS"
    # every Android UA also says "Linux"
    if "linux" in ua and "android" not in ua:
        return "Linux"
    if "android" in ua:
        return "Android"
    if "ios" in ua or "iphone" in ua or "ipad" in ua:
        return "iOS"
    return "Other"


def classify(user_agent: Optional[str]) -> Optional[UAClassification]:
    if not user_agent:
        return None
    return UAClassification(
        device_type=detect_device(user_agent),
        browser=detect_browser(user_agent),
        os=detect_os(user_agent),
    )
