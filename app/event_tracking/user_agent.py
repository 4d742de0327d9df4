"""
User agent classification.

Derives the (device type, browser name+version, OS name+version) triple that
is recorded on every behavior event.
"""

import re
from dataclasses import dataclass
from typing import Optional, Tuple

# Ordered: the first matching browser wins (Edge and Opera also claim Chrome)
_BROWSER_PATTERNS = [
    ("Edge", re.compile(r"(?:Edg|Edge|EdgA|EdgiOS)/([\d.]+)")),
    ("Opera", re.compile(r"(?:OPR|Opera)[/ ]([\d.]+)")),
    ("Samsung Internet", re.compile(r"SamsungBrowser/([\d.]+)")),
    ("Chrome", re.compile(r"(?:Chrome|CriOS)/([\d.]+)")),
    ("Firefox", re.compile(r"(?:Firefox|FxiOS)/([\d.]+)")),
    ("Safari", re.compile(r"Version/([\d.]+).*Safari/")),
    ("IE", re.compile(r"(?:MSIE |Trident/.*rv:)([\d.]+)")),
]

_WINDOWS_VERSIONS = {
    "10.0": "10",
    "6.3": "8.1",
    "6.2": "8",
    "6.1": "7",
    "6.0": "Vista",
    "5.1": "XP",
}


@dataclass
class DeviceInfo:
    """Device, browser and OS of a client."""
    device: str
    browser: str
    os: str


def _join(name: str, version: Optional[str]) -> str:
    return f"{name} {version or ''}".strip()


def _parse_browser(user_agent: str) -> Tuple[str, Optional[str]]:
    for name, pattern in _BROWSER_PATTERNS:
        match = pattern.search(user_agent)
        if match:
            return name, match.group(1)
    return "Unknown", None


def _parse_os(user_agent: str) -> Tuple[str, Optional[str]]:
    match = re.search(r"Windows NT ([\d.]+)", user_agent)
    if match:
        return "Windows", _WINDOWS_VERSIONS.get(match.group(1), match.group(1))
    if "Windows" in user_agent:
        return "Windows", None

    # iOS user agents also say "like Mac OS X"
    if re.search(r"iPhone|iPad|iPod", user_agent):
        match = re.search(r"OS (\d+(?:_\d+)*) like Mac OS X", user_agent)
        return "iOS", match.group(1).replace("_", ".") if match else None

    # Android user agents also say "Linux"
    match = re.search(r"Android(?: ([\d.]+))?", user_agent)
    if match:
        return "Android", match.group(1)

    match = re.search(r"Mac OS X(?: (\d+(?:[_.]\d+)*))?", user_agent)
    if match:
        return "macOS", match.group(1).replace("_", ".") if match.group(1) else None

    if "CrOS" in user_agent:
        return "Chrome OS", None
    if "Linux" in user_agent:
        return "Linux", None
    return "Unknown", None


def _explicit_device_type(user_agent: str) -> Optional[str]:
    """Device type when the user agent states one, else None."""
    if "iPad" in user_agent or "Tablet" in user_agent:
        return "tablet"
    if "Android" in user_agent and "Mobile" not in user_agent:
        return "tablet"
    if re.search(r"Mobi|iPhone|iPod", user_agent):
        return "mobile"
    if re.search(r"SmartTV|SMART-TV|AppleTV", user_agent):
        return "smarttv"
    if re.search(r"bot|crawler|spider", user_agent, re.IGNORECASE):
        return "bot"
    return None


def fallback_device_type(os_name: str) -> str:
    """Classify the device from the OS name when the user agent does not say."""
    os_lower = os_name.lower()
    if "android" in os_lower or "ios" in os_lower:
        return "mobile"
    if "mac" in os_lower or "windows" in os_lower or "linux" in os_lower:
        return "desktop"
    return "unknown"


def parse_user_agent(user_agent: Optional[str]) -> DeviceInfo:
    """Parse user agent string to extract device, browser and OS information.

    Args:
        user_agent: User agent string (may be empty)

    Returns:
        DeviceInfo with device type, "Browser version" and "OS version"
    """
    user_agent = user_agent or ""
    browser_name, browser_version = _parse_browser(user_agent)
    os_name, os_version = _parse_os(user_agent)
    device = _explicit_device_type(user_agent) or fallback_device_type(os_name)

    return DeviceInfo(
        device=device,
        browser=_join(browser_name, browser_version),
        os=_join(os_name, os_version),
    )
