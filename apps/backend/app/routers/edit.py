from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from app.dependencies import get_image_storage, get_poller, get_submitter, require_session
from app.errors import RequestValidationFailed
from app.models import EditParams, generation_options
from app.services.tasks import TaskPoller, TaskSubmitter
from app.services.uploads import MAX_FILE_SIZE, ImageStorage

router = APIRouter(prefix="/api", tags=["edit"])


@router.post("/edit")
def edit(
    images: Optional[List[UploadFile]] = File(None),
    editPrompt: Optional[str] = Form(None),
    style: Optional[str] = Form(None),
    aspectRatio: Optional[str] = Form(None),
    session_id: str = Depends(require_session),
    submitter: TaskSubmitter = Depends(get_submitter),
    storage: ImageStorage = Depends(get_image_storage),
):
    """Upload 1-10 images with an edit instruction and create an edit task."""
    uploads = images or []
    params = EditParams(editPrompt=editPrompt, style=style, aspectRatio=aspectRatio)
    errors = params.validation_errors(len(uploads))
    if errors:
        raise RequestValidationFailed(errors, message="Invalid request parameters")

    # one byte past the limit is enough for the size check to reject it
    files = [(u.filename or "", u.content_type, u.file.read(MAX_FILE_SIZE + 1)) for u in uploads]
    storage.validate(files)
    stored = [storage.save(data, name, ctype) for name, ctype, data in files]

    return submitter.submit_edit(session_id, params, [s.url for s in stored])


@router.get("/edit/status")
def edit_status(
    taskId: str = Query(..., min_length=1),
    session_id: str = Depends(require_session),
    poller: TaskPoller = Depends(get_poller),
):
    return poller.poll(taskId, session_id, "edit")


@router.get("/edit/options")
def edit_options():
    options = generation_options()
    return {"styles": options["styles"], "aspectRatios": options["aspectRatios"]}
