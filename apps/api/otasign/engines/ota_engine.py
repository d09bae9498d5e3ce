from fastapi import Depends, FastAPI
from starlette.responses import Response

from ..manifest import MANIFEST_MEDIA_TYPE, render_manifest
from ..redirector import quote_segment

def register(app: FastAPI):
  origin_of = app.state.otasign_context["base_origin"]

  @app.get("/ota/{bundle_id}/{bundle_version}/{artifact_name}")
  async def ota_manifest(bundle_id: str, bundle_version: str, artifact_name: str, origin: str = Depends(origin_of)):
    """itms-services manifest pointing at the published archive."""
    ipa_url = f"{origin}/public/{quote_segment(artifact_name)}"
    return Response(render_manifest(ipa_url, bundle_id, bundle_version), media_type=MANIFEST_MEDIA_TYPE)
