"""
OTASign configuration: loaded once from the environment, immutable after.

Required variables (the process refuses to start without them):
    PORT, PUBLIC_PATH, WORK_PATH, OTAPROV_PATH, KEY_PATH, VALID_UDIDS

Optional variables:
    HOST            bind address (default 0.0.0.0)
    SIGNER_PATH     signer binary (default /zsign)
    SIGN_TIMEOUT    seconds before a signer run is killed (default 600)
    SIGN_WORKERS    signer runs allowed at once, on their own threads (default 40)
    SWEEP_INTERVAL  seconds between public directory sweeps (default 6h)
    CORS_ORIGINS    comma-separated allowed origins (default *)
    LOG_LEVEL       root log level (default INFO)

The resulting Settings object is passed explicitly to create_app() and
from there to every engine; nothing reads os.environ at request time.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Optional

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from .allowlist import DeviceAllowlist
from .errors import ConfigError

_REQUIRED = ("PORT", "PUBLIC_PATH", "WORK_PATH", "OTAPROV_PATH", "KEY_PATH", "VALID_UDIDS")

DEFAULT_HOST = "0.0.0.0"
DEFAULT_SIGNER_PATH = "/zsign"
DEFAULT_SIGN_TIMEOUT = 600.0
DEFAULT_SIGN_WORKERS = 40
DEFAULT_SWEEP_INTERVAL = 6 * 60 * 60.0


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    port: int = Field(..., gt=0, lt=65536)
    host: str = DEFAULT_HOST
    public_path: Path
    work_path: Path
    otaprov_path: Path
    key_path: Path
    valid_udids: DeviceAllowlist
    signer_path: str = DEFAULT_SIGNER_PATH
    sign_timeout: float = Field(DEFAULT_SIGN_TIMEOUT, gt=0)
    sign_workers: int = Field(DEFAULT_SIGN_WORKERS, gt=0)
    sweep_interval: float = Field(DEFAULT_SWEEP_INTERVAL, gt=0)
    cors_origins: tuple[str, ...] = ("*",)
    log_level: str = "INFO"


def _number(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


def _integer(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from the environment. Raises ConfigError on any problem."""
    env = os.environ if environ is None else environ

    missing = [name for name in _REQUIRED if not env.get(name, "").strip()]
    if missing:
        raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")

    allowlist = DeviceAllowlist.from_csv(env["VALID_UDIDS"])
    if not len(allowlist):
        raise ConfigError("No valid UDIDs found. Please define VALID_UDIDS.")

    try:
        port = int(env["PORT"].strip())
    except ValueError:
        raise ConfigError(f"PORT must be an integer, got {env['PORT']!r}")

    origins = tuple(o.strip() for o in env.get("CORS_ORIGINS", "*").split(",") if o.strip())

    try:
        return Settings(
            port=port,
            host=env.get("HOST", "").strip() or DEFAULT_HOST,
            public_path=Path(env["PUBLIC_PATH"].strip()).resolve(),
            work_path=Path(env["WORK_PATH"].strip()).resolve(),
            otaprov_path=Path(env["OTAPROV_PATH"].strip()).resolve(),
            key_path=Path(env["KEY_PATH"].strip()).resolve(),
            valid_udids=allowlist,
            signer_path=env.get("SIGNER_PATH", "").strip() or DEFAULT_SIGNER_PATH,
            sign_timeout=_number(env, "SIGN_TIMEOUT", DEFAULT_SIGN_TIMEOUT),
            sign_workers=_integer(env, "SIGN_WORKERS", DEFAULT_SIGN_WORKERS),
            sweep_interval=_number(env, "SWEEP_INTERVAL", DEFAULT_SWEEP_INTERVAL),
            cors_origins=origins or ("*",),
            log_level=env.get("LOG_LEVEL", "").strip().upper() or "INFO",
        )
    except pydantic.ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
