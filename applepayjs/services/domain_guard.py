"""
Apple Pay merchant validation URL allow-list.

The browser tells us where to POST the merchant validation payload. Since the
request is made with the merchant certificate attached, the URL is only used
once it points at one of Apple's payment gateway hosts:

  https://<allowed host>[:443]/paymentservices/...   (no query, no fragment)

See https://developer.apple.com/documentation/apple_pay_on_the_web/setting_up_your_server
"""

from urllib.parse import urlsplit

HTTPS_SCHEME = "https"
HTTPS_DEFAULT_PORT = 443
PAYMENT_SERVICES_PATH_PREFIX = "/paymentservices/"

ALLOWED_DOMAINS = frozenset(
    {
        "apple-pay-gateway.apple.com",
        "apple-pay-gateway-nc-pod1.apple.com",
        "apple-pay-gateway-nc-pod2.apple.com",
        "apple-pay-gateway-nc-pod3.apple.com",
        "apple-pay-gateway-nc-pod4.apple.com",
        "apple-pay-gateway-nc-pod5.apple.com",
        "apple-pay-gateway-pr-pod1.apple.com",
        "apple-pay-gateway-pr-pod2.apple.com",
        "apple-pay-gateway-pr-pod3.apple.com",
        "apple-pay-gateway-pr-pod4.apple.com",
        "apple-pay-gateway-pr-pod5.apple.com",
        "apple-pay-gateway-cert.apple.com",
    }
)


def is_absolute_url(url: str | None) -> bool:
    """True when ``url`` parses as an absolute URL with a scheme and a host."""
    if not url or not url.strip():
        return False
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return False
    return bool(parts.scheme) and bool(parts.netloc)


def is_authorized(url: str | None) -> bool:
    """
    True only when ``url`` is an Apple Pay merchant validation URL.

    Every rule must hold: https scheme, default port, allow-listed host,
    /paymentservices/ path and neither query string nor fragment.
    """
    if not is_absolute_url(url):
        return False

    url = url.strip()
    if "?" in url or "#" in url or "\\" in url:
        return False

    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return False

    if parts.scheme != HTTPS_SCHEME:
        return False

    if port is not None and port != HTTPS_DEFAULT_PORT:
        return False

    # user:password@host
    if "@" in parts.netloc:
        return False

    host = (parts.hostname or "").lower()
    if host not in ALLOWED_DOMAINS:
        return False

    if not parts.path.lower().startswith(PAYMENT_SERVICES_PATH_PREFIX):
        return False

    segments = parts.path.split("/")
    if "." in segments or ".." in segments:
        return False

    return True
