from fastapi import APIRouter, Depends, Query

from app.dependencies import get_poller, get_submitter, require_session
from app.errors import RequestValidationFailed
from app.models import GenerateRequest, generation_options
from app.services.tasks import TaskPoller, TaskSubmitter

router = APIRouter(prefix="/api", tags=["generate"])


@router.post("/generate")
def generate(
    req: GenerateRequest,
    session_id: str = Depends(require_session),
    submitter: TaskSubmitter = Depends(get_submitter),
):
    """Create a text-to-image task; the caller polls /generate/status with the taskId."""
    errors = req.validation_errors()
    if errors:
        raise RequestValidationFailed(errors)
    return submitter.submit_generation(session_id, req)


@router.get("/generate/status")
def generate_status(
    taskId: str = Query(..., min_length=1),
    session_id: str = Depends(require_session),
    poller: TaskPoller = Depends(get_poller),
):
    return poller.poll(taskId, session_id, "generation")


@router.get("/generate/options")
def generate_options():
    return generation_options()
