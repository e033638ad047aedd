from fastapi import APIRouter, Depends

from app.dependencies import get_session_store, require_session
from app.errors import RequestValidationFailed, SessionError
from app.models import PreferencesUpdate, generation_options
from app.services.session_store import SessionStore

router = APIRouter(prefix="/api", tags=["session"])


@router.post("/session", status_code=201)
def create_session(sessions: SessionStore = Depends(get_session_store)):
    session = sessions.create_session()
    return {"sessionId": session["session_id"], "createdAt": session["created_at"]}


@router.get("/session")
def get_session(
    session_id: str = Depends(require_session),
    sessions: SessionStore = Depends(get_session_store),
):
    full = sessions.get_full_session(session_id)
    if full is None:
        raise SessionError.not_found()
    return full


def _update(session_id: str, body: PreferencesUpdate, sessions: SessionStore):
    errors = body.validation_errors()
    if errors:
        raise RequestValidationFailed(errors)
    updated = sessions.update_preferences(session_id, body.model_dump(exclude_none=True))
    sessions.touch_session(session_id)
    return {"success": True, "updated": updated}


@router.post("/session/preferences")
def update_session_preferences(
    body: PreferencesUpdate,
    session_id: str = Depends(require_session),
    sessions: SessionStore = Depends(get_session_store),
):
    return _update(session_id, body, sessions)


@router.get("/preferences")
def preference_options():
    return generation_options()


@router.post("/preferences")
def update_preferences(
    body: PreferencesUpdate,
    session_id: str = Depends(require_session),
    sessions: SessionStore = Depends(get_session_store),
):
    return _update(session_id, body, sessions)
