"""POST /sign: ingest an unsigned IPA, sign it, answer with its public URLs."""
import logging

from fastapi import Depends, FastAPI, Request

from ..ingest import receive_upload
from ..publisher import output_path, published_urls
from ..signer import sign_artifact

logger = logging.getLogger("otasign.sign")

SIGNED_MESSAGE = "IPA signed successfully."

def register(app: FastAPI):
  ctx = app.state.otasign_context
  settings = ctx["settings"]
  signer = ctx["signer"]
  origin_of = ctx["base_origin"]

  @app.post("/sign")
  async def sign(request: Request, origin: str = Depends(origin_of)):
    """Multipart body with a ``udid`` text field and a ``file`` archive."""
    staged = await receive_upload(request, settings.valid_udids, settings.work_path)
    target = output_path(settings.public_path, staged.artifact_name)
    result = await sign_artifact(
      signer, staged.work_file, target, settings.otaprov_path, settings.key_path,
      limiter=ctx.get("sign_limiter"),
    )
    urls = published_urls(origin, staged.artifact_name, result)
    logger.info("Published %s for %s", staged.artifact_name, staged.udid)
    return {"message": SIGNED_MESSAGE, **urls.to_dict()}
