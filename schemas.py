from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Dict
from datetime import datetime, timezone
import html
import bleach

from task_models import TaskPriority, TaskStatus

MAX_NAME_LENGTH = 255


def _clean(value: Optional[str]) -> Optional[str]:
    # Bleach entfernt alle HTML-Tags (tags=[]) und Attribute; gespeichert wird
    # Klartext, also Entities wieder auflösen ("Q&A" bleibt "Q&A"). Wiederholen,
    # bis sich nichts mehr ändert, damit "&lt;script&gt;" kein Tag ergibt.
    while value:
        cleaned = html.unescape(bleach.clean(value, tags=[], attributes={}, strip=True))
        if cleaned == value:
            break
        value = cleaned
    return value


# --- Shared references ---
class UserRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class CategoryRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


# --- Task Models ---
class TaskCreate(BaseModel):
    """
    Validation rules for creating (and updating) a task, keyed by field name.

    ``owner_id`` is accepted only so it can be checked for existence; the
    owner of a new task is always the requesting user.
    """

    model_config = ConfigDict(use_enum_values=True)

    title: str = Field(min_length=1, max_length=MAX_NAME_LENGTH)
    description: Optional[str] = None
    priority: TaskPriority
    status: TaskStatus
    due_date: Optional[datetime] = None
    assigned_to_id: Optional[int] = None
    owner_id: Optional[int] = None
    categories: Optional[List[int]] = None

    @field_validator("due_date", "assigned_to_id", "owner_id", "description", mode="before")
    @classmethod
    def empty_string_to_none(cls, v):
        if isinstance(v, str) and v.strip() == "":
            return None
        return v

    @field_validator("title", "description")
    @classmethod
    def sanitize_input(cls, v: Optional[str]) -> Optional[str]:
        return _clean(v)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("The title field is required.")
        # Field(max_length) saw the raw input, the stored value is checked again
        if len(v) > MAX_NAME_LENGTH:
            raise ValueError(f"The title may not be greater than {MAX_NAME_LENGTH} characters.")
        return v

    @field_validator("due_date")
    @classmethod
    def normalize_due_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v

    @field_validator("categories")
    @classmethod
    def unique_categories(cls, v: Optional[List[int]]) -> Optional[List[int]]:
        if v is None:
            return v
        return list(dict.fromkeys(v))

    def task_fields(self, only_sent: bool = False) -> dict:
        """Column values that may be written to the task row.

        With ``only_sent`` the fields missing from the request body are left out,
        so an update never blanks a column the client did not mention.
        """
        return self.model_dump(
            include={"title", "description", "priority", "status", "due_date", "assigned_to_id"},
            exclude_unset=only_sent,
        )


class TaskUpdate(TaskCreate):
    pass


class Task(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: int
    assigned_to_id: Optional[int] = None
    title: str
    description: Optional[str] = None
    priority: TaskPriority
    status: TaskStatus
    due_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    owner: Optional[UserRef] = None
    assignee: Optional[UserRef] = None
    categories: List[CategoryRef] = []


class TaskListItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: int
    assigned_to_id: Optional[int] = None
    title: str
    priority: TaskPriority
    status: TaskStatus
    due_date: Optional[datetime] = None
    owner: Optional[UserRef] = None
    assignee: Optional[UserRef] = None
    categories: List[CategoryRef] = []


class PageLinks(BaseModel):
    first: str
    last: str
    prev: Optional[str] = None
    next: Optional[str] = None


class TaskFilters(BaseModel):
    status: Optional[str] = None
    priority: Optional[str] = None
    category: Optional[str] = None
    q: Optional[str] = None


class TaskPage(BaseModel):
    data: List[TaskListItem]
    current_page: int
    per_page: int
    total: int
    last_page: int
    links: PageLinks
    filters: TaskFilters
    categories: List[CategoryRef]


class TaskResult(BaseModel):
    success: bool = True
    message: str
    task: Optional[Task] = None


# --- Category Models ---
class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=MAX_NAME_LENGTH)

    @field_validator("name")
    @classmethod
    def sanitize_name(cls, v: str) -> str:
        v = (_clean(v) or "").strip()
        if not v:
            raise ValueError("The name field is required.")
        if len(v) > MAX_NAME_LENGTH:
            raise ValueError(f"The name may not be greater than {MAX_NAME_LENGTH} characters.")
        return v


class CategoryUpdate(CategoryCreate):
    pass


class Category(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class CategoryPage(BaseModel):
    data: List[Category]
    current_page: int
    per_page: int
    total: int
    last_page: int
    links: PageLinks


class CategoryResult(BaseModel):
    success: bool = True
    message: str
    category: Optional[Category] = None


# --- Live channel payloads ---
class TaskChangeEvent(BaseModel):
    id: int
    title: str
    status: str
    action: str


class TaskReminder(BaseModel):
    task_id: int
    user_id: int
    title: str
    due_date: str


class ErrorResponse(BaseModel):
    detail: str
    errors: Optional[Dict[str, List[str]]] = None
