"""
Project Routes

Dashboard operations: list, create, delete and open projects. Projects are
always scoped to the authenticated user.
"""

from typing import Annotated, List

from fastapi import APIRouter, Depends, Query, status

from .dependencies import get_app_session, get_project_repository
from .models import CreateProjectRequest, EditorStateResponse, OperationResult, ProjectSummary
from ..core.errors import ValidationFailure
from ..db.projects import ProjectRepository
from ..document.models import Snapshot, new_project_pages
from ..sessions.application import ApplicationSession

router = APIRouter(prefix="/projects", tags=["projects"])


@router.get("", response_model=List[ProjectSummary])
async def list_projects(
    session: Annotated[ApplicationSession, Depends(get_app_session)],
    repository: Annotated[ProjectRepository, Depends(get_project_repository)],
) -> List[ProjectSummary]:
    """Projects of the caller, most recently modified first."""
    records = await repository.list_by_owner(session.user_id)
    return [ProjectSummary.from_record(r) for r in records]


@router.post("", response_model=ProjectSummary, status_code=status.HTTP_201_CREATED)
async def create_project(
    req: CreateProjectRequest,
    session: Annotated[ApplicationSession, Depends(get_app_session)],
    repository: Annotated[ProjectRepository, Depends(get_project_repository)],
) -> ProjectSummary:
    name = req.name.strip()
    if not name:
        raise ValidationFailure("Project name cannot be empty.")
    record = await repository.create(
        session.user_id,
        name,
        Snapshot(pages=new_project_pages(), active_page_index=0),
    )
    return ProjectSummary.from_record(record)


@router.delete("/{project_id}", response_model=OperationResult)
async def delete_project(
    project_id: str,
    session: Annotated[ApplicationSession, Depends(get_app_session)],
    repository: Annotated[ProjectRepository, Depends(get_project_repository)],
    confirm: bool = Query(default=False),
) -> OperationResult:
    """
    Permanently delete a project. Requires ``confirm=true``.
    """
    if not confirm:
        raise ValidationFailure("Deleting a project requires confirmation.")

    await session.delete_project(project_id, repository)
    return OperationResult(status="deleted", details={"project_id": project_id})


@router.post("/{project_id}/open", response_model=EditorStateResponse)
async def open_project(
    project_id: str,
    session: Annotated[ApplicationSession, Depends(get_app_session)],
    repository: Annotated[ProjectRepository, Depends(get_project_repository)],
) -> EditorStateResponse:
    editor = await session.open_project(project_id, repository)
    return EditorStateResponse.from_editor(editor)
