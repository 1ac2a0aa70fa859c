"""Registered users table (read-only).

Endpoints:
    GET  /api/users          Last polled list, plus the error banner if the last poll failed
    POST /api/users/refresh  Poll now
"""

from fastapi import APIRouter, Depends

from onboarding.deps import get_user_viewer
from onboarding.schemas.onboarding import UserListView
from onboarding.services.data_viewer import UserListViewer

router = APIRouter()


@router.get("", response_model=UserListView)
async def list_users(viewer: UserListViewer = Depends(get_user_viewer)):
    return viewer.view()


@router.post("/refresh", response_model=UserListView)
async def refresh_users(viewer: UserListViewer = Depends(get_user_viewer)):
    await viewer.refresh()
    return viewer.view()
