"""
Install redirect decisions for GET /install/{bundle_id}/{bundle_version}/{artifact}.

iOS devices get a redirect to the itms-services:// scheme pointing at the
OTA manifest. Third-party iOS browsers do not hand that scheme to the
installer, so they are bounced through Safari with the x-safari- prefix.
Everything else (desktop browsers) gets a page with a QR code to scan
with the phone.
"""
from __future__ import annotations

import enum
import json
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

from .errors import ValidationError

NATIVE_SIGNATURES = ("iPhone", "iPad", "iPod", "AppleWatch", "Vision")
ALTERNATE_BROWSER_SIGNATURES = ("CriOS", "FxiOS", "EdgiOS", "OPiOS", "YaBrowser", "DuckDuckGo")

OTA_SCHEME_PREFIX = "itms-services://?action=download-manifest&url="
SAFARI_PREFIX = "x-safari-"

_QR_PAGE = """<strong>Scan this QR code with the iOS Camera app to install the IPA</strong>
<div id="qrCode"></div>
<script src="https://cdnjs.cloudflare.com/ajax/libs/qrcodejs/1.0.0/qrcode.min.js"></script>
<script>
  new QRCode(document.getElementById("qrCode"), {{
    text: {install_url_js},
    width: 200,
    height: 200,
    colorDark: "#000000",
    colorLight: "#ffffff",
    correctLevel: QRCode.CorrectLevel.M
  }});
</script>
"""


class ClientKind(enum.Enum):
    NATIVE = "native"
    ALTERNATE_BROWSER = "alternate_browser"
    NON_MOBILE = "non_mobile"


@dataclass(frozen=True)
class InstallDecision:
    kind: ClientKind
    redirect_url: Optional[str] = None
    html: Optional[str] = None


def quote_segment(value: str) -> str:
    """Percent-encode everything outside the RFC 3986 unreserved set."""
    return quote(value, safe="")


def classify_client(user_agent: str) -> ClientKind:
    if not any(sig in user_agent for sig in NATIVE_SIGNATURES):
        return ClientKind.NON_MOBILE
    if any(sig in user_agent for sig in ALTERNATE_BROWSER_SIGNATURES):
        return ClientKind.ALTERNATE_BROWSER
    return ClientKind.NATIVE


def qr_page(install_url: str) -> str:
    # the Host header is echoed into the URL; keep it inside the JS string
    install_url_js = json.dumps(install_url).replace("<", "\\u003c")
    return _QR_PAGE.format(install_url_js=install_url_js)


def resolve_install(
    origin: str,
    bundle_id: str,
    bundle_version: str,
    artifact_name: str,
    user_agent: Optional[str],
) -> InstallDecision:
    if not bundle_id or not bundle_version or not artifact_name:
        raise ValidationError("Missing required parameters.")

    path = "/".join(quote_segment(s) for s in (bundle_id, bundle_version, artifact_name))
    install_url = f"{origin}/install/{path}"

    kind = classify_client(user_agent or "")
    if kind is ClientKind.NON_MOBILE:
        return InstallDecision(kind=kind, html=qr_page(install_url))

    if kind is ClientKind.ALTERNATE_BROWSER:
        return InstallDecision(kind=kind, redirect_url=f"{SAFARI_PREFIX}{install_url}")

    return InstallDecision(kind=kind, redirect_url=f"{OTA_SCHEME_PREFIX}{origin}/ota/{path}")
