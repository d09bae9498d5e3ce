"""
OTA manifest (itms-services plist) rendering.

The template is fixed. Every interpolated value is escaped exactly once for
the five XML-reserved characters, one character at a time; values without
reserved characters pass through untouched.
"""
from __future__ import annotations

from typing import Optional

MANIFEST_MEDIA_TYPE = "application/xml"

_XML_ENTITIES = {
    "<": "&lt;",
    ">": "&gt;",
    "&": "&amp;",
    "'": "&apos;",
    '"': "&quot;",
}

_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
<dict>
  <key>items</key>
  <array>
    <dict>
      <key>assets</key>
      <array>
        <dict>
          <key>kind</key>
          <string>software-package</string>
          <key>url</key>
          <string>{ipa_url}</string>
        </dict>
      </array>
      <key>metadata</key>
      <dict>
        <key>bundle-identifier</key>
        <string>{bundle_id}</string>
        <key>bundle-version</key>
        <string>{bundle_version}</string>
        <key>kind</key>
        <string>software</string>
        <key>title</key>
        <string>{title}</string>
      </dict>
    </dict>
  </array>
</dict>
</plist>
"""


def escape_xml(value: str) -> str:
    return "".join(_XML_ENTITIES.get(c, c) for c in value)


def render_manifest(ipa_url: str, bundle_id: str, bundle_version: str, title: Optional[str] = None) -> str:
    """Render the manifest for one package. The title defaults to the bundle id."""
    return _TEMPLATE.format(
        ipa_url=escape_xml(ipa_url),
        bundle_id=escape_xml(bundle_id),
        bundle_version=escape_xml(bundle_version),
        title=escape_xml(bundle_id if title is None else title),
    )
