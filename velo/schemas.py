from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from .db import ProjectStatus, TaskPriority, TaskType

HEX_COLOR = r"^#[0-9A-Fa-f]{6}$"


class ErrorBody(BaseModel):
    code: str
    message: str
    details: Optional[dict[str, Any]] = None
    requestId: Optional[str] = None


class ErrorEnvelope(BaseModel):
    error: ErrorBody


class Health(BaseModel):
    status: str = "ok"


class Version(BaseModel):
    version: str


# === Projects ===


class ProjectIn(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    description: Optional[str] = None
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR)
    icon: Optional[str] = Field(default=None, max_length=50)
    status: Optional[ProjectStatus] = None


class ProjectPatch(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    description: Optional[str] = None
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR)
    icon: Optional[str] = Field(default=None, max_length=50)
    status: Optional[ProjectStatus] = None


class BoardSummary(BaseModel):
    id: str
    name: str
    description: Optional[str]


class ProjectOut(BaseModel):
    id: str
    name: str
    description: Optional[str]
    color: str
    icon: Optional[str]
    status: ProjectStatus
    createdAt: datetime
    updatedAt: datetime
    boards: list[BoardSummary] = []


# === Boards ===


class BoardIn(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    description: Optional[str] = None
    projectId: str


class BoardPatch(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    description: Optional[str] = None


# === Tasks ===


class TaskIn(BaseModel):
    title: str = Field(min_length=2, max_length=200)
    description: Optional[str] = None
    priority: Optional[TaskPriority] = None
    type: Optional[TaskType] = None
    position: Optional[int] = Field(default=None, ge=0)
    storyPoints: Optional[int] = Field(default=None, ge=1, le=100)
    dueDate: Optional[date] = None
    tags: Optional[list[str]] = None
    assignee: Optional[str] = Field(default=None, max_length=100)
    columnId: str


class TaskPatch(BaseModel):
    title: Optional[str] = Field(default=None, min_length=2, max_length=200)
    description: Optional[str] = None
    priority: Optional[TaskPriority] = None
    type: Optional[TaskType] = None
    position: Optional[int] = Field(default=None, ge=0)
    storyPoints: Optional[int] = Field(default=None, ge=1, le=100)
    dueDate: Optional[date] = None
    tags: Optional[list[str]] = None
    assignee: Optional[str] = Field(default=None, max_length=100)
    columnId: Optional[str] = None


class TaskMove(BaseModel):
    targetColumnId: str
    newPosition: int = Field(ge=0)


class TaskReorder(BaseModel):
    taskIds: list[str]


class TaskOut(BaseModel):
    id: str
    title: str
    description: Optional[str]
    priority: TaskPriority
    type: TaskType
    position: int
    storyPoints: Optional[int]
    dueDate: Optional[date]
    tags: list[str]
    assignee: Optional[str]
    columnId: str
    boardId: Optional[str] = None
    createdAt: datetime
    updatedAt: datetime


# === Columns ===


class ColumnIn(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR)
    position: Optional[int] = Field(default=None, ge=0)
    taskLimit: Optional[int] = Field(default=None, ge=1)
    boardId: str


class ColumnPatch(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR)
    position: Optional[int] = Field(default=None, ge=0)
    taskLimit: Optional[int] = Field(default=None, ge=1)


class ColumnReorder(BaseModel):
    columnIds: list[str]


class ColumnOut(BaseModel):
    id: str
    boardId: str
    name: str
    color: str
    position: int
    taskLimit: Optional[int]
    taskCount: int
    createdAt: datetime
    updatedAt: datetime
    tasks: list[TaskOut] = []


class BoardOut(BaseModel):
    id: str
    projectId: str
    name: str
    description: Optional[str]
    createdAt: datetime
    updatedAt: datetime
    columns: list[ColumnOut] = []
