from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from app.dependencies import get_enhance_guard, get_prompt_enhancer, require_session
from app.errors import EnhancementError
from app.models import EnhanceRequest
from app.services.prompt_enhancer import InFlightGuard, PromptEnhancer

router = APIRouter(prefix="/api", tags=["enhance"])


@router.post("/enhance", response_class=PlainTextResponse)
def enhance(
    req: EnhanceRequest,
    session_id: str = Depends(require_session),
    enhancer: PromptEnhancer = Depends(get_prompt_enhancer),
    guard: InFlightGuard = Depends(get_enhance_guard),
):
    """Return an improved version of the prompt as plain text."""
    if not guard.acquire(session_id):
        raise EnhancementError(
            409,
            "Enhancement already in progress",
            "Wait for the current enhancement to finish.",
            code="ENHANCEMENT_IN_PROGRESS",
        )
    try:
        return PlainTextResponse(enhancer.enhance(req.prompt))
    finally:
        guard.release(session_id)
