"""FastAPI dependencies that hand routers the per-app services.

Services are created once per app (see `onboarding.main.configure_services`)
and stored on `app.state`.
"""

from fastapi import Depends, Request

from onboarding.services.admin_editor import AdminConfigEditor
from onboarding.services.api_client import BackendClient
from onboarding.services.data_viewer import UserListViewer
from onboarding.services.sessions import WizardRegistry, get_current_session_id
from onboarding.services.wizard import OnboardingWizard


def get_backend_client(request: Request) -> BackendClient:
    return request.app.state.backend_client


def get_registry(request: Request) -> WizardRegistry:
    return request.app.state.wizards


async def get_wizard(
    registry: WizardRegistry = Depends(get_registry),
    session_id: str = Depends(get_current_session_id),
) -> OnboardingWizard:
    """The calling session's wizard, mounted on first use."""
    return await registry.get(session_id)


async def get_admin_editor(request: Request) -> AdminConfigEditor:
    editor: AdminConfigEditor = request.app.state.admin_editor
    if not editor.loaded:
        await editor.load()
    return editor


def get_user_viewer(request: Request) -> UserListViewer:
    return request.app.state.user_viewer
