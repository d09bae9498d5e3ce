"""
OTASign Test Configuration: pytest fixtures and helpers.

Every test gets its own public/work directories and a fake signer, so no
test needs the real zsign binary or touches shared state.
"""
import os
import sys
import threading
from pathlib import Path

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../apps/api"))

from otasign.config import load_settings
from otasign.signer import parse_signer_output

TEST_UDID = "00008030-001A2B3C4D5E6F70"
OTHER_UDID = "00008101-000A1B2C3D4E5F60"
SIGNED_OUTPUT = "Signed OK!\nBundleId: com.example.app\nBundleVer: 3.2.1"


class FakeSigner:
    """Stands in for zsign: parses canned output and writes the signed file."""

    def __init__(self, output: str = SIGNED_OUTPUT, payload: bytes = b"signed-ipa"):
        self.output = output
        self.payload = payload
        self.calls = []
        self._lock = threading.Lock()

    def sign(self, input_path: Path, output_path: Path, profile_path: Path, key_path: Path):
        with self._lock:
            self.calls.append({
                "input": input_path,
                "output": output_path,
                "profile": profile_path,
                "key": key_path,
                "input_existed": input_path.is_file(),
            })
        output_path.write_bytes(self.payload)
        return parse_signer_output(self.output)


class ExplodingSigner:
    def __init__(self, exc: Exception):
        self.exc = exc

    def sign(self, input_path, output_path, profile_path, key_path):
        output_path.write_bytes(b"partial")
        raise self.exc


@pytest.fixture(autouse=True)
def _isolate_env(tmp_path, tmp_path_factory, monkeypatch):
    """Point every OTASign variable at per-test paths."""
    public_dir = tmp_path / "public"
    work_dir = tmp_path / "work"
    secrets_dir = tmp_path_factory.mktemp("secrets")
    _write(secrets_dir / "ota.mobileprovision", "profile")
    _write(secrets_dir / "key.pem", "key")

    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("PUBLIC_PATH", str(public_dir))
    monkeypatch.setenv("WORK_PATH", str(work_dir))
    monkeypatch.setenv("OTAPROV_PATH", str(secrets_dir / "ota.mobileprovision"))
    monkeypatch.setenv("KEY_PATH", str(secrets_dir / "key.pem"))
    monkeypatch.setenv("VALID_UDIDS", f"{TEST_UDID.lower()} , {OTHER_UDID}")
    for name in ("HOST", "SIGNER_PATH", "SIGN_TIMEOUT", "SIGN_WORKERS", "SWEEP_INTERVAL", "CORS_ORIGINS", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)

    yield


@pytest.fixture
def settings():
    return load_settings()


@pytest.fixture
def fake_signer():
    return FakeSigner()


@pytest.fixture
def client(settings, fake_signer):
    from fastapi.testclient import TestClient
    from otasign.main import create_app

    with TestClient(create_app(settings, signer=fake_signer)) as c:
        yield c


def _write(path, content):
    path.write_text(content, encoding="utf-8")
    os.chmod(str(path), 0o640)
