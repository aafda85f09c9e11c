import re
from contextlib import asynccontextmanager
from typing import Any, Iterable, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import API_PREFIX, CORS_ORIGINS, VERSION
from .db import Board, BoardColumn, Project, Task, get_session, init_db
from .errors import VeloError
from .logging_config import get_logger, setup_logging
from .schemas import (
    BoardIn,
    BoardOut,
    BoardPatch,
    BoardSummary,
    ColumnIn,
    ColumnOut,
    ColumnPatch,
    ColumnReorder,
    ErrorBody,
    ErrorEnvelope,
    Health,
    ProjectIn,
    ProjectOut,
    ProjectPatch,
    TaskIn,
    TaskMove,
    TaskOut,
    TaskPatch,
    TaskReorder,
    Version,
)
from .storage import Storage
from .utils import new_uuid

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    init_db()
    logger.info("Velo API %s ready", VERSION)
    yield


app = FastAPI(title="Velo API", version=VERSION, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    allow_credentials=True,
)
router = APIRouter(prefix=API_PREFIX)


def get_storage(session: Session = Depends(get_session)) -> Storage:
    return Storage(session)


# === Error handling ===


def error_response(status_code: int, code: str, message: str, details: Optional[dict] = None) -> JSONResponse:
    body = ErrorEnvelope(error=ErrorBody(code=code, message=message, details=details or {}, requestId=new_uuid()))
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(VeloError)
async def velo_error_handler(request: Request, exc: VeloError) -> JSONResponse:
    return error_response(exc.status_code, exc.code, exc.message, exc.details)


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Storage failure on %s %s", request.method, request.url.path, exc_info=exc)
    return error_response(503, "storage_error", "storage unavailable, the operation was rolled back")


# === Helpers ===

_CAMEL = re.compile(r"(?<!^)(?=[A-Z])")


def payload_fields(payload: BaseModel, nullable: Iterable[str] = ()) -> dict[str, Any]:
    """Fields the client sent, renamed to column names.

    ``None`` is dropped unless the field may be cleared.
    """
    nullable = set(nullable)
    fields = {}
    for key, value in payload.model_dump(exclude_unset=True).items():
        if value is None and key not in nullable:
            continue
        fields[_CAMEL.sub("_", key).lower()] = value
    return fields


def task_out(task: Task) -> TaskOut:
    return TaskOut(
        id=task.id,
        title=task.title,
        description=task.description,
        priority=task.priority,
        type=task.type,
        position=task.position,
        storyPoints=task.story_points,
        dueDate=task.due_date,
        tags=task.tags or [],
        assignee=task.assignee,
        columnId=task.column_id,
        boardId=task.column.board_id if task.column is not None else None,
        createdAt=task.created_at,
        updatedAt=task.updated_at,
    )


def column_out(column: BoardColumn) -> ColumnOut:
    return ColumnOut(
        id=column.id,
        boardId=column.board_id,
        name=column.name,
        color=column.color,
        position=column.position,
        taskLimit=column.task_limit,
        taskCount=len(column.tasks),
        createdAt=column.created_at,
        updatedAt=column.updated_at,
        tasks=[task_out(t) for t in column.tasks],
    )


def board_out(board: Board) -> BoardOut:
    return BoardOut(
        id=board.id,
        projectId=board.project_id,
        name=board.name,
        description=board.description,
        createdAt=board.created_at,
        updatedAt=board.updated_at,
        columns=[column_out(c) for c in board.columns],
    )


def project_out(project: Project) -> ProjectOut:
    return ProjectOut(
        id=project.id,
        name=project.name,
        description=project.description,
        color=project.color,
        icon=project.icon,
        status=project.status,
        createdAt=project.created_at,
        updatedAt=project.updated_at,
        boards=[BoardSummary(id=b.id, name=b.name, description=b.description) for b in project.boards],
    )


# === Health & metadata ===


@router.get("/health", response_model=Health)
def health() -> Health:
    return Health()


@router.get("/version", response_model=Version)
def version() -> Version:
    return Version(version=VERSION)


# === Project endpoints ===


@router.post("/projects", response_model=ProjectOut, status_code=201)
def create_project(payload: ProjectIn, storage: Storage = Depends(get_storage)):
    return project_out(storage.create_project(**payload_fields(payload)))


@router.get("/projects", response_model=list[ProjectOut])
def list_projects(storage: Storage = Depends(get_storage)):
    return [project_out(p) for p in storage.list_projects()]


@router.get("/projects/{project_id}", response_model=ProjectOut)
def get_project(project_id: str, storage: Storage = Depends(get_storage)):
    return project_out(storage.get_project(project_id))


@router.patch("/projects/{project_id}", response_model=ProjectOut)
def update_project(project_id: str, payload: ProjectPatch, storage: Storage = Depends(get_storage)):
    fields = payload_fields(payload, nullable=("description", "icon"))
    return project_out(storage.update_project(project_id, **fields))


@router.delete("/projects/{project_id}", status_code=204)
def delete_project(project_id: str, storage: Storage = Depends(get_storage)):
    storage.delete_project(project_id)
    return Response(status_code=204)


# === Board endpoints ===


@router.post("/boards", response_model=BoardOut, status_code=201)
def create_board(payload: BoardIn, storage: Storage = Depends(get_storage)):
    return board_out(storage.create_board(payload.projectId, payload.name, payload.description))


@router.get("/boards", response_model=list[BoardOut])
def list_boards(
    project_id: Optional[str] = Query(default=None, alias="projectId"),
    storage: Storage = Depends(get_storage),
):
    return [board_out(b) for b in storage.list_boards(project_id)]


@router.get("/boards/{board_id}", response_model=BoardOut)
def get_board(board_id: str, storage: Storage = Depends(get_storage)):
    return board_out(storage.get_board(board_id))


@router.patch("/boards/{board_id}", response_model=BoardOut)
def update_board(board_id: str, payload: BoardPatch, storage: Storage = Depends(get_storage)):
    fields = payload_fields(payload, nullable=("description",))
    return board_out(storage.update_board(board_id, **fields))


@router.delete("/boards/{board_id}", status_code=204)
def delete_board(board_id: str, storage: Storage = Depends(get_storage)):
    storage.delete_board(board_id)
    return Response(status_code=204)


# === Column endpoints ===


@router.post("/columns", response_model=ColumnOut, status_code=201)
def create_column(payload: ColumnIn, storage: Storage = Depends(get_storage)):
    return column_out(storage.create_column(**payload_fields(payload)))


@router.get("/columns", response_model=list[ColumnOut])
def list_columns(
    board_id: Optional[str] = Query(default=None, alias="boardId"),
    storage: Storage = Depends(get_storage),
):
    return [column_out(c) for c in storage.list_columns(board_id)]


@router.post("/columns/reorder/{board_id}", response_model=list[ColumnOut])
def reorder_columns(board_id: str, payload: ColumnReorder, storage: Storage = Depends(get_storage)):
    return [column_out(c) for c in storage.reorder_columns(board_id, payload.columnIds)]


@router.get("/columns/{column_id}", response_model=ColumnOut)
def get_column(column_id: str, storage: Storage = Depends(get_storage)):
    return column_out(storage.get_column(column_id))


@router.patch("/columns/{column_id}", response_model=ColumnOut)
def update_column(column_id: str, payload: ColumnPatch, storage: Storage = Depends(get_storage)):
    fields = payload_fields(payload, nullable=("taskLimit",))
    return column_out(storage.update_column(column_id, **fields))


@router.delete("/columns/{column_id}", status_code=204)
def delete_column(column_id: str, storage: Storage = Depends(get_storage)):
    storage.delete_column(column_id)
    return Response(status_code=204)


# === Task endpoints ===


@router.post("/tasks", response_model=TaskOut, status_code=201)
def create_task(payload: TaskIn, storage: Storage = Depends(get_storage)):
    return task_out(storage.create_task(**payload_fields(payload)))


@router.get("/tasks", response_model=list[TaskOut])
def list_tasks(
    column_id: Optional[str] = Query(default=None, alias="columnId"),
    search: Optional[str] = Query(default=None),
    storage: Storage = Depends(get_storage),
):
    if search:
        return [task_out(t) for t in storage.search_tasks(search)]
    return [task_out(t) for t in storage.list_tasks(column_id)]


@router.post("/tasks/reorder/{column_id}", response_model=list[TaskOut])
def reorder_tasks(column_id: str, payload: TaskReorder, storage: Storage = Depends(get_storage)):
    return [task_out(t) for t in storage.reorder_tasks(column_id, payload.taskIds)]


@router.get("/tasks/{task_id}", response_model=TaskOut)
def get_task(task_id: str, storage: Storage = Depends(get_storage)):
    return task_out(storage.get_task(task_id))


@router.patch("/tasks/{task_id}", response_model=TaskOut)
def update_task(task_id: str, payload: TaskPatch, storage: Storage = Depends(get_storage)):
    fields = payload_fields(
        payload,
        nullable=("description", "storyPoints", "dueDate", "tags", "assignee"),
    )
    return task_out(storage.update_task(task_id, **fields))


@router.post("/tasks/{task_id}/move", response_model=TaskOut)
def move_task(task_id: str, payload: TaskMove, storage: Storage = Depends(get_storage)):
    return task_out(storage.move_task(task_id, payload.targetColumnId, payload.newPosition))


@router.delete("/tasks/{task_id}", status_code=204)
def delete_task(task_id: str, storage: Storage = Depends(get_storage)):
    storage.delete_task(task_id)
    return Response(status_code=204)


app.include_router(router)
