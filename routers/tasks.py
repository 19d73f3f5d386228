from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from typing import Optional

from category_service import active_categories
from dependencies import get_db, get_current_user, get_notifier
from models import User
from notifier import Notifier
from policies import authorize, can_view_any
from schemas import Task, TaskCreate, TaskUpdate, TaskPage, TaskListItem, TaskFilters, TaskResult, CategoryRef
from task_filters import list_tasks, only_filters, page_links
import task_service

router = APIRouter(
    prefix="/tasks",
    tags=["tasks"]
)


@router.get("", response_model=TaskPage)
def read_tasks(
    request: Request,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    category: Optional[str] = None,
    q: Optional[str] = None,
    page: int = Query(1, ge=1),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    authorize(can_view_any(user), "You are not authorized to view the task list.")

    filters = only_filters({"status": status, "priority": priority, "category": category, "q": q})
    result = list_tasks(db, filters, page)

    return TaskPage(
        data=[TaskListItem.model_validate(t) for t in result.items],
        current_page=result.page,
        per_page=result.per_page,
        total=result.total,
        last_page=result.last_page,
        links=page_links(request.url, result),
        filters=TaskFilters(**filters),
        categories=[CategoryRef.model_validate(c) for c in active_categories(db)],
    )


@router.get("/{task_id}", response_model=Task)
def read_task(task_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    authorize(can_view_any(user), "You are not authorized to view this task.")
    return Task.model_validate(task_service.get_task(db, task_id))


@router.post("", response_model=TaskResult, status_code=201)
def create_task(
    task: TaskCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    db_task = task_service.create_task(db, user, task, notifier)
    return TaskResult(message="Task created successfully.", task=Task.model_validate(db_task))


@router.put("/{task_id}", response_model=TaskResult)
def update_task(
    task_id: int,
    task: TaskUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    db_task = task_service.get_task(db, task_id)
    db_task = task_service.update_task(db, user, db_task, task, notifier)
    return TaskResult(message="Task updated successfully.", task=Task.model_validate(db_task))


@router.delete("/{task_id}", response_model=TaskResult)
def delete_task(
    task_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    db_task = task_service.get_task(db, task_id)
    task_service.delete_task(db, user, db_task, notifier)
    return TaskResult(message="Task deleted successfully.")
