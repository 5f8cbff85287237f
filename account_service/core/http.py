"""
Client identification helpers.

Proxies announce the originating address in a handful of headers; the
first non-empty, non-"unknown" one wins, then the socket peer.  When a
request went through several proxies the left-most address is the
client.
"""

from dataclasses import dataclass

from fastapi import Request

_IP_HEADERS = (
    "X-Forwarded-For",
    "Proxy-Client-IP",
    "WL-Proxy-Client-IP",
    "HTTP_CLIENT_IP",
    "HTTP_X_FORWARDED_FOR",
)

# Checked in order; first match wins.
_OS_MARKERS = (
    (("windows",), "Windows"),
    (("mac",), "Mac OS"),
    (("x11",), "Unix"),
    (("android",), "Android"),
    (("iphone", "ipad"), "iOS"),
    (("linux",), "Linux"),
)


@dataclass(frozen=True)
class ClientContext:
    ip: str = ""
    os: str = "Unknown"
    browser: str = "Unknown"


def get_client_ip(request: Request) -> str:
    ip = ""
    for header in _IP_HEADERS:
        ip = request.headers.get(header, "")
        if ip and ip.lower() != "unknown":
            break
    else:
        ip = request.client.host if request.client else ""

    if "," in ip:
        ip = ip.split(",")[0].strip()
    return ip


def get_client_os(request: Request) -> str:
    ua = request.headers.get("User-Agent", "").lower()
    if not ua:
        return "Unknown"
    for markers, name in _OS_MARKERS:
        if any(marker in ua for marker in markers):
            return name
    return "Unknown"


def get_client_browser(request: Request) -> str:
    ua = request.headers.get("User-Agent", "").lower()
    if not ua:
        return "Unknown"
    if "edg/" in ua or "edge/" in ua:
        return "Edge"
    if "opr/" in ua or "opera" in ua:
        return "Opera"
    if "chrome" in ua and "chromium" not in ua:
        return "Chrome"
    if "firefox" in ua or "fxios" in ua:
        return "Firefox"
    if "safari" in ua and "chrome" not in ua:
        return "Safari"
    if "msie" in ua or "trident/7" in ua:
        return "Internet Explorer"
    return "Unknown"


def get_client_context(request: Request) -> ClientContext:
    """FastAPI dependency — everything login needs to know about the caller."""
    return ClientContext(
        ip=get_client_ip(request),
        os=get_client_os(request),
        browser=get_client_browser(request),
    )
