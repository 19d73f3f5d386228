import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from database import fits_id_column
from errors import CategoryNotFoundError, CategoryValidationError, PersistenceError
from models import Category
from schemas import CategoryCreate, CategoryUpdate

logger = logging.getLogger(__name__)

NAME_TAKEN = "The name has already been taken."


def active_categories(db: Session):
    return db.query(Category).filter(Category.deleted_at.is_(None)).order_by(Category.id)


def get_category(db: Session, category_id: int) -> Category:
    if not fits_id_column(category_id):
        raise CategoryNotFoundError()
    category = active_categories(db).filter(Category.id == category_id).first()
    if not category:
        raise CategoryNotFoundError()
    return category


def _ensure_unique_name(db: Session, name: str, ignore_id: int = None):
    # Soft-deleted rows count too, the column is unique at the database level
    query = db.query(Category.id).filter(Category.name == name)
    if ignore_id is not None:
        query = query.filter(Category.id != ignore_id)
    if query.first() is not None:
        raise CategoryValidationError({"name": [NAME_TAKEN]})


def _commit(db: Session, name: str):
    try:
        db.commit()
    except IntegrityError as e:
        # Lost a race against a concurrent insert of the same name
        db.rollback()
        raise CategoryValidationError({"name": [NAME_TAKEN]}) from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Category transaction failed for {name!r}: {e}", exc_info=True)
        raise PersistenceError("Failed to save category. Please try again later.") from e


def create_category(db: Session, payload: CategoryCreate) -> Category:
    _ensure_unique_name(db, payload.name)
    category = Category(name=payload.name)
    db.add(category)
    _commit(db, payload.name)
    db.refresh(category)
    logger.info("Category %s created (%s)", category.id, category.name)
    return category


def update_category(db: Session, category: Category, payload: CategoryUpdate) -> Category:
    _ensure_unique_name(db, payload.name, ignore_id=category.id)
    category.name = payload.name
    _commit(db, payload.name)
    db.refresh(category)
    return category


def delete_category(db: Session, category: Category) -> Category:
    category.deleted_at = datetime.utcnow()
    _commit(db, category.name)
    db.refresh(category)
    logger.info("Category %s soft-deleted", category.id)
    return category
