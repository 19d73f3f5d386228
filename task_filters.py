import math
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

from sqlalchemy import false, or_
from sqlalchemy.orm import Query, Session, selectinload

from config import PAGE_SIZE
from database import fits_id_column
from models import Category
from task_models import TaskDB

FILTER_KEYS = ("status", "priority", "category", "q")
LIKE_ESCAPE = "\\"


@dataclass
class Page:
    items: List[Any]
    total: int
    page: int
    per_page: int

    @property
    def last_page(self) -> int:
        return max(1, math.ceil(self.total / self.per_page))

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.last_page


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so the term only ever matches literally."""
    return (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def only_filters(params: Mapping[str, Any]) -> dict:
    """Pick the supported filter keys out of a query-parameter mapping."""
    return {key: params.get(key) for key in FILTER_KEYS if not _blank(params.get(key))}


# --- single-filter scopes; each one is a no-op for a blank value ---

def search(query: Query, term: Optional[str]) -> Query:
    if _blank(term):
        return query
    like = f"%{escape_like(term.strip())}%"
    return query.filter(
        or_(
            TaskDB.title.ilike(like, escape=LIKE_ESCAPE),
            TaskDB.description.ilike(like, escape=LIKE_ESCAPE),
        )
    )


def with_status(query: Query, status) -> Query:
    if _blank(status):
        return query
    return query.filter(TaskDB.status == getattr(status, "value", status))


def with_priority(query: Query, priority) -> Query:
    if _blank(priority):
        return query
    return query.filter(TaskDB.priority == getattr(priority, "value", priority))


def in_category(query: Query, category_id) -> Query:
    if _blank(category_id):
        return query
    try:
        category_id = int(category_id)
    except (TypeError, ValueError):
        # An id that can never exist, not a client error
        return query.filter(false())
    if not fits_id_column(category_id):
        return query.filter(false())
    return query.filter(TaskDB.categories.any(Category.id == category_id))


def apply_filters(query: Query, filters: Mapping[str, Any]) -> Query:
    query = search(query, filters.get("q"))
    query = with_status(query, filters.get("status"))
    query = with_priority(query, filters.get("priority"))
    return in_category(query, filters.get("category"))


# --- queries ---

def active_tasks(db: Session) -> Query:
    """Non-deleted tasks in insertion order."""
    return db.query(TaskDB).filter(TaskDB.deleted_at.is_(None)).order_by(TaskDB.id)


def paginate(query: Query, page: int = 1, per_page: int = PAGE_SIZE) -> Page:
    page = max(1, int(page or 1))
    total = query.order_by(None).count()
    items = query.offset((page - 1) * per_page).limit(per_page).all()
    return Page(items=items, total=total, page=page, per_page=per_page)


def list_tasks(db: Session, filters: Mapping[str, Any], page: int = 1, per_page: int = PAGE_SIZE) -> Page:
    query = active_tasks(db).options(
        selectinload(TaskDB.owner),
        selectinload(TaskDB.assignee),
        selectinload(TaskDB.categories),
    )
    return paginate(apply_filters(query, filters), page, per_page)


def page_links(url, page: Page) -> dict:
    """Page URLs that keep every other query parameter (active filters) intact."""
    return {
        "first": str(url.include_query_params(page=1)),
        "last": str(url.include_query_params(page=page.last_page)),
        "prev": str(url.include_query_params(page=page.page - 1)) if page.has_prev else None,
        "next": str(url.include_query_params(page=page.page + 1)) if page.has_next else None,
    }
