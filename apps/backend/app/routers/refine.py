from pathlib import PurePosixPath
from urllib.parse import urlparse

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from app.dependencies import get_image_storage, get_poller, get_submitter, require_session
from app.errors import AppError, RequestValidationFailed
from app.models import DownloadRequest, RefineRequest
from app.services.tasks import TaskPoller, TaskSubmitter
from app.services.uploads import ImageStorage, fetch_remote_image

router = APIRouter(prefix="/api", tags=["refine"])


@router.post("/refine")
def refine(
    req: RefineRequest,
    session_id: str = Depends(require_session),
    submitter: TaskSubmitter = Depends(get_submitter),
    storage: ImageStorage = Depends(get_image_storage),
):
    """Re-edit an already generated image, fetched from its URL and re-hosted here."""
    errors = req.validation_errors()
    if errors:
        raise RequestValidationFailed(errors)

    data, _ = fetch_remote_image(req.imageUrl)
    stored = storage.save_fetched(data, req.imageUrl)
    return submitter.submit_refinement(session_id, req, stored.url)


@router.get("/refine/status")
def refine_status(
    taskId: str = Query(..., min_length=1),
    session_id: str = Depends(require_session),
    poller: TaskPoller = Depends(get_poller),
):
    return poller.poll(taskId, session_id, "refinement")


@router.post("/download-image")
def download_image(req: DownloadRequest):
    """Proxy an image download so browsers avoid the provider's CORS rules."""
    if not req.imageUrl:
        raise RequestValidationFailed(["Image URL is required"])
    if urlparse(req.imageUrl).scheme not in ("http", "https"):
        raise RequestValidationFailed(["Image URL must be an http(s) URL"])

    data, content_type = fetch_remote_image(req.imageUrl)
    if not data:
        raise AppError(502, "Download failed", "Image host returned an empty body")
    filename = PurePosixPath(urlparse(req.imageUrl).path).name or "image.png"
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    return Response(content=data, media_type=content_type or "image/png", headers=headers)
