"""
Upload ingestion: validate the multipart body of POST /sign and stage the
archive in the working directory under a freshly minted artifact name.

Check order matters. The UDID is validated and authorized before the
archive is looked at, so a rejected device never causes a write.
"""
from __future__ import annotations

import logging
import re
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO
from uuid import uuid4

from fastapi import Request
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import FormData, UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from .allowlist import DeviceAllowlist, normalize_udid
from .errors import AuthorizationError, StorageError, ValidationError

logger = logging.getLogger("otasign.ingest")

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")
_COPY_CHUNK = 1024 * 1024
ARTIFACT_SUFFIX = ".ipa"
MAX_FORM_FIELDS = 8


def sanitize_filename(filename: str) -> str:
    """Replace everything but ASCII alphanumerics, '-' and '_' with '_'."""
    return _UNSAFE_CHARS.sub("_", filename)


def new_artifact_name(udid: str, filename: str) -> str:
    """Mint a unique artifact identity.

    ``{epoch_ms}_{uuid4}_{UDID}_{sanitized_filename}.ipa``. The uuid4 is drawn
    per call, so two uploads of the same file from the same device in the same
    millisecond still get different names.
    """
    return f"{int(time.time() * 1000)}_{uuid4()}_{udid}_{sanitize_filename(filename)}{ARTIFACT_SUFFIX}"


@dataclass(frozen=True)
class UploadRequest:
    udid: str
    filename: str
    stream: BinaryIO


@dataclass(frozen=True)
class StagedUpload:
    udid: str
    filename: str
    artifact_name: str
    work_file: Path


def parse_upload(form: FormData, allowlist: DeviceAllowlist) -> UploadRequest:
    """Validate the parsed form. Raises ValidationError / AuthorizationError."""
    raw_udid = form.get("udid")
    if not isinstance(raw_udid, str) or not raw_udid.strip():
        raise ValidationError("Device UDID is missing.")

    udid = normalize_udid(raw_udid)
    if udid not in allowlist:
        logger.warning("Unauthorized UDID attempt: %s", udid)
        raise AuthorizationError("Unauthorized UDID.")

    upload = form.get("file")
    if not isinstance(upload, UploadFile) or not upload.filename:
        raise ValidationError("No file uploaded.")

    return UploadRequest(udid=udid, filename=upload.filename, stream=upload.file)


def stage_upload(stream: BinaryIO, work_dir: Path, artifact_name: str) -> Path:
    """Copy the archive to ``work_dir/artifact_name``. Raises StorageError."""
    target = work_dir / artifact_name
    try:
        work_dir.mkdir(parents=True, exist_ok=True)
        stream.seek(0)
        # "x" mode: never overwrite another request's file
        with open(target, "xb") as f:
            shutil.copyfileobj(stream, f, _COPY_CHUNK)
    except FileExistsError as exc:
        raise StorageError(f"Unable to save IPA in the server: {exc}") from exc
    except OSError as exc:
        discard(target)
        raise StorageError(f"Unable to save IPA in the server: {exc}") from exc
    return target


def discard(path: Path) -> bool:
    """Best-effort delete. Failures are logged, never raised."""
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        return False
    except OSError as exc:
        logger.error("Error deleting file %s: %s", path, exc)
        return False


async def receive_upload(request: Request, allowlist: DeviceAllowlist, work_dir: Path) -> StagedUpload:
    """Parse, validate and stage the /sign multipart body."""
    try:
        async with request.form(max_files=1, max_fields=MAX_FORM_FIELDS) as form:
            upload = parse_upload(form, allowlist)
            artifact_name = new_artifact_name(upload.udid, upload.filename)
            work_file = await run_in_threadpool(stage_upload, upload.stream, work_dir, artifact_name)
    except StarletteHTTPException as exc:
        # raised by the multipart parser, e.g. a part without a name
        raise ValidationError(str(exc.detail)) from exc

    logger.info("Staged upload %s (%s) for %s", artifact_name, upload.filename, upload.udid)
    return StagedUpload(
        udid=upload.udid,
        filename=upload.filename,
        artifact_name=artifact_name,
        work_file=work_file,
    )
