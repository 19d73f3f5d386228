import logging
import threading
import weakref
from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import fits_id_column
from errors import TaskNotFoundError, TaskPersistenceError, TaskValidationError
from models import Category, User
from notifier import Notifier
from policies import authorize, can_assign, can_create, can_delete, can_update
from schemas import TaskCreate, TaskUpdate
from task_models import CategoryTask, TaskDB

logger = logging.getLogger(__name__)

_locks_guard = threading.Lock()
# An entry lives only while some thread holds or waits on it
_task_locks = weakref.WeakValueDictionary()


@contextmanager
def task_lock(task_id: int):
    """Serialize commit + publish per task so events arrive in commit order."""
    with _locks_guard:
        lock = _task_locks.get(task_id)
        if lock is None:
            lock = threading.Lock()
            _task_locks[task_id] = lock
    with lock:
        yield


def get_task(db: Session, task_id: int) -> TaskDB:
    if not fits_id_column(task_id):
        raise TaskNotFoundError()
    task = db.query(TaskDB).filter(TaskDB.id == task_id, TaskDB.deleted_at.is_(None)).first()
    if not task:
        raise TaskNotFoundError()
    return task


def _user_exists(db: Session, user_id: int) -> bool:
    if not fits_id_column(user_id):
        return False
    return db.query(User.id).filter(User.id == user_id).first() is not None


def validate_references(db: Session, payload: TaskCreate):
    """Reject ids that point nowhere, before any transaction is opened."""
    errors = {}
    if payload.owner_id is not None and not _user_exists(db, payload.owner_id):
        errors["owner_id"] = ["The selected owner id is invalid."]
    if payload.assigned_to_id is not None and not _user_exists(db, payload.assigned_to_id):
        errors["assigned_to_id"] = ["The selected assigned to id is invalid."]
    if payload.categories:
        candidates = [c for c in payload.categories if fits_id_column(c)]
        found = {
            row.id
            for row in db.query(Category.id).filter(
                Category.id.in_(candidates), Category.deleted_at.is_(None)
            )
        }
        for index, category_id in enumerate(payload.categories):
            if category_id not in found:
                errors[f"categories.{index}"] = [f"The selected categories.{index} is invalid."]
    if errors:
        raise TaskValidationError(errors)


def sync_categories(db: Session, task_id: int, category_ids: Iterable[int]) -> dict:
    """
    Make the task's category links exactly ``category_ids``.

    Missing links are inserted, extra links deleted, matching links left
    alone. Runs inside the caller's transaction and only flushes.

    Returns:
        dict: ``{"attached": [...], "detached": [...]}`` (sorted ids).
    """
    desired = set(category_ids)
    current = {
        row.category_id
        for row in db.query(CategoryTask.category_id).filter(CategoryTask.task_id == task_id)
    }

    detached = sorted(current - desired)
    attached = sorted(desired - current)

    if detached:
        db.query(CategoryTask).filter(
            CategoryTask.task_id == task_id,
            CategoryTask.category_id.in_(detached),
        ).delete(synchronize_session=False)
    for category_id in attached:
        db.add(CategoryTask(task_id=task_id, category_id=category_id))
    db.flush()

    return {"attached": attached, "detached": detached}


def _commit(db: Session, failure_message: str):
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Transaction failed: {e}", exc_info=True)
        raise TaskPersistenceError(failure_message) from e


def create_task(db: Session, requester: User, payload: TaskCreate, notifier: Optional[Notifier] = None) -> TaskDB:
    authorize(can_create(requester), "You are not authorized to create tasks.")
    validate_references(db, payload)

    fields = payload.task_fields()
    # Whoever creates the task owns it; a submitted owner_id never wins
    fields["owner_id"] = requester.id

    failure = "Failed to create task. Please try again later."
    try:
        task = TaskDB(**fields)
        db.add(task)
        db.flush()
        if "categories" in payload.model_fields_set:
            sync_categories(db, task.id, payload.categories or [])
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Transaction failed: {e}", exc_info=True)
        raise TaskPersistenceError(failure) from e
    _commit(db, failure)
    db.refresh(task)

    logger.info("Task %s created by user %s", task.id, requester.id)
    if notifier is not None:
        notifier.task_changed(task, "created")
        notifier.schedule_due_reminder(task)
    return task


def update_task(db: Session, requester: User, task: TaskDB, payload: TaskUpdate, notifier: Optional[Notifier] = None) -> TaskDB:
    authorize(can_update(requester, task), "You are not authorized to update this task.")

    sent = payload.model_fields_set
    if "assigned_to_id" in sent and payload.assigned_to_id != task.assigned_to_id:
        authorize(can_assign(requester, task), "Only the owner can (re)assign this task to another user.")

    validate_references(db, payload)

    fields = payload.task_fields(only_sent=True)
    reminder_relevant = any(
        name in fields and fields[name] != getattr(task, name)
        for name in ("due_date", "assigned_to_id")
    )

    failure = "Failed to update task. Please try again later."
    with task_lock(task.id):
        try:
            for field, value in fields.items():
                setattr(task, field, value)
            if "categories" in sent:
                sync_categories(db, task.id, payload.categories or [])
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Transaction failed: {e}", exc_info=True)
            raise TaskPersistenceError(failure) from e
        _commit(db, failure)
        db.refresh(task)
        if notifier is not None:
            notifier.task_changed(task, "updated")

    logger.info("Task %s updated by user %s", task.id, requester.id)
    if notifier is not None and reminder_relevant:
        notifier.schedule_due_reminder(task)
    return task


def delete_task(db: Session, requester: User, task: TaskDB, notifier: Optional[Notifier] = None) -> TaskDB:
    authorize(can_delete(requester, task), "You are not authorized to delete this task.")

    with task_lock(task.id):
        # Soft delete: category links stay for history, list queries skip the row
        task.deleted_at = datetime.utcnow()
        _commit(db, "Failed to delete task. Please try again later.")
        db.refresh(task)
        if notifier is not None:
            notifier.task_changed(task, "deleted")

    logger.info("Task %s deleted by user %s", task.id, requester.id)
    return task
