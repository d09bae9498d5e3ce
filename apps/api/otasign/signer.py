"""
Signing orchestration around the external signer (zsign).

The signer is a capability: anything with
``sign(input_path, output_path, profile_path, key_path) -> SignResult``
that raises SigningError on failure. ZsignSigner runs the real binary;
tests inject a fake.

zsign's output is only trusted when it contains the success marker, and a
run is only useful when it also reports the bundle id and version that the
OTA manifest needs.
"""
from __future__ import annotations

import logging
import os
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

import anyio
import anyio.to_thread

from .errors import SigningError
from .ingest import discard

logger = logging.getLogger("otasign.signer")

SUCCESS_MARKER = "Signed OK!"
_BUNDLE_ID_RE = re.compile(r"BundleId:[ \t]*(\S+)")
_BUNDLE_VER_RE = re.compile(r"BundleVer:[ \t]*(\S+)")


@dataclass(frozen=True)
class SignResult:
    bundle_id: str
    bundle_version: str


class Signer(Protocol):
    def sign(self, input_path: Path, output_path: Path, profile_path: Path, key_path: Path) -> SignResult: ...


def combine_output(stdout: str, stderr: str) -> str:
    """stdout, then stderr on a new line if there is any."""
    if stderr:
        return f"{stdout}\n{stderr}"
    return stdout


def parse_signer_output(output: str) -> SignResult:
    """Extract bundle metadata from signer output. Raises SigningError."""
    if SUCCESS_MARKER not in output:
        raise SigningError("Unable to sign IPA: Sign error")

    bundle_id = _BUNDLE_ID_RE.search(output)
    if bundle_id is None:
        raise SigningError("Unable to sign IPA: Missing BundleId")

    bundle_ver = _BUNDLE_VER_RE.search(output)
    if bundle_ver is None:
        raise SigningError("Unable to sign IPA: Missing BundleVer")

    return SignResult(bundle_id=bundle_id.group(1), bundle_version=bundle_ver.group(1))


class ZsignSigner:
    """Runs zsign as a subprocess, bounded by a timeout."""

    def __init__(self, binary: str = "/zsign", timeout: float = 600.0):
        self.binary = binary
        self.timeout = timeout

    def command(self, input_path: Path, output_path: Path, profile_path: Path, key_path: Path) -> list[str]:
        return [
            self.binary,
            "-m", str(profile_path),
            "-k", str(key_path),
            "-o", str(output_path),
            str(input_path),
        ]

    def sign(self, input_path: Path, output_path: Path, profile_path: Path, key_path: Path) -> SignResult:
        if not input_path.is_file():
            raise SigningError(f"Unable to sign IPA: The input IPA file does not exist: {input_path}")

        cmd = self.command(input_path, output_path, profile_path, key_path)
        env = {**os.environ, "WINEDEBUG": "-all"}
        try:
            # subprocess.run kills the child and drains its pipes on timeout
            run = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.timeout,
                env=env,
            )
        except subprocess.TimeoutExpired:
            logger.warning("Signer timed out after %.0fs: %s", self.timeout, input_path.name)
            raise SigningError(f"Unable to sign IPA: signer timed out after {self.timeout:.0f}s")
        except OSError as exc:
            logger.error("Signer could not be started (%s): %s", self.binary, exc)
            raise SigningError(f"Unable to sign IPA: {exc}") from exc

        output = combine_output(run.stdout, run.stderr)
        try:
            result = parse_signer_output(output)
        except SigningError:
            logger.warning("Signing failed (exit %s) for %s:\n%s", run.returncode, input_path.name, output)
            raise

        if run.returncode != 0:
            logger.warning("Signer reported success but exited %s for %s", run.returncode, input_path.name)
        return result


async def sign_artifact(
    signer: Signer,
    work_file: Path,
    output_path: Path,
    profile_path: Path,
    key_path: Path,
    limiter: Optional[anyio.CapacityLimiter] = None,
) -> SignResult:
    """Sign ``work_file`` into ``output_path`` without blocking the event loop.

    The signer runs on worker threads drawn from ``limiter``, never from the
    shared threadpool that serves uploads, downloads and health checks.
    Without a limiter the call gets a single slot of its own.

    The working file is always removed afterwards. On failure any partial
    output is removed too, so a failed attempt leaves nothing behind.
    """
    if limiter is None:
        limiter = anyio.CapacityLimiter(1)
    try:
        result = await anyio.to_thread.run_sync(
            signer.sign, work_file, output_path, profile_path, key_path, limiter=limiter,
        )
    except SigningError:
        discard(output_path)
        raise
    except Exception as exc:
        discard(output_path)
        logger.exception("Unexpected signer failure for %s", work_file.name)
        raise SigningError(f"Unable to sign IPA: {exc}") from exc
    finally:
        discard(work_file)

    logger.info("Signed %s as %s %s", output_path.name, result.bundle_id, result.bundle_version)
    return result
