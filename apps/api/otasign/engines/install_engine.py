from typing import Optional

from fastapi import Depends, FastAPI, Header
from starlette.responses import HTMLResponse, RedirectResponse

from ..redirector import resolve_install

def register(app: FastAPI):
  origin_of = app.state.otasign_context["base_origin"]

  @app.get("/install/{bundle_id}/{bundle_version}/{artifact_name}")
  async def install(
    bundle_id: str,
    bundle_version: str,
    artifact_name: str,
    user_agent: Optional[str] = Header(default=None),
    origin: str = Depends(origin_of),
  ):
    """Redirect iOS clients into the installer; show a QR code to everyone else."""
    decision = resolve_install(origin, bundle_id, bundle_version, artifact_name, user_agent)
    if decision.html is not None:
      return HTMLResponse(decision.html)
    return RedirectResponse(decision.redirect_url, status_code=307)
