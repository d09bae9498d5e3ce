"""Public identity of a signed artifact: where it lives and the URLs that reach it."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Mapping

from .errors import ValidationError
from .signer import SignResult


@dataclass(frozen=True)
class PublishedURLs:
    ipa_url: str
    ota_url: str
    install_url: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


def base_origin(headers: Mapping[str, str]) -> str:
    """Infer ``scheme://host`` for the current request.

    https only when a proxy says so through X-Forwarded-Proto; the host is
    used verbatim.
    """
    host = headers.get("host")
    if not host:
        raise ValidationError("Missing Host header")
    scheme = "https" if headers.get("x-forwarded-proto", "http") == "https" else "http"
    return f"{scheme}://{host}"


def output_path(public_dir: Path, artifact_name: str) -> Path:
    return public_dir / artifact_name


def published_urls(origin: str, artifact_name: str, result: SignResult) -> PublishedURLs:
    return PublishedURLs(
        ipa_url=f"{origin}/public/{artifact_name}",
        ota_url=f"{origin}/ota/{result.bundle_id}/{result.bundle_version}/{artifact_name}",
        install_url=f"{origin}/install/{result.bundle_id}/{result.bundle_version}/{artifact_name}",
    )
