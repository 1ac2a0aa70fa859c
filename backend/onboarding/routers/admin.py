"""Admin router: step layout editor.

Endpoints:
    GET   /api/admin/config           Editor state (steps 2 and 3, unassigned groups)
    POST  /api/admin/config/reload    Discard local edits, re-fetch the layout
    POST  /api/admin/config/drop      Drop a dragged field-group onto a step
    POST  /api/admin/config/save      Persist the layout to the backend
"""

from fastapi import APIRouter, Depends, HTTPException, Response, status

from onboarding.deps import get_admin_editor
from onboarding.schemas.admin import AdminConfigView, DropRequest, SaveResult
from onboarding.services.admin_editor import AdminConfigEditor

router = APIRouter()


@router.get("/config", response_model=AdminConfigView)
async def get_config(editor: AdminConfigEditor = Depends(get_admin_editor)):
    return editor.view()


@router.post("/config/reload", response_model=AdminConfigView)
async def reload_config(editor: AdminConfigEditor = Depends(get_admin_editor)):
    await editor.load()
    return editor.view()


@router.post("/config/drop", response_model=AdminConfigView)
async def drop_group(
    body: DropRequest,
    editor: AdminConfigEditor = Depends(get_admin_editor),
):
    """Move a field-group to another step.  Same-step drops are ignored."""
    editor.drop(body.item, body.target_step)
    return editor.view()


@router.post("/config/save", response_model=SaveResult)
async def save_config(
    response: Response,
    editor: AdminConfigEditor = Depends(get_admin_editor),
):
    result = await editor.save()
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A save is already in progress",
        )
    if not result.ok:
        response.status_code = (
            status.HTTP_422_UNPROCESSABLE_ENTITY
            if not editor.is_valid
            else status.HTTP_502_BAD_GATEWAY
        )
    return result
