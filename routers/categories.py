from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

import category_service
from dependencies import get_db, get_current_user
from models import User
from schemas import Category, CategoryCreate, CategoryUpdate, CategoryPage, CategoryResult
from task_filters import paginate, page_links

router = APIRouter(
    prefix="/categories",
    tags=["categories"]
)


@router.get("", response_model=CategoryPage)
def read_categories(
    request: Request,
    page: int = Query(1, ge=1),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    result = paginate(category_service.active_categories(db), page)
    return CategoryPage(
        data=[Category.model_validate(c) for c in result.items],
        current_page=result.page,
        per_page=result.per_page,
        total=result.total,
        last_page=result.last_page,
        links=page_links(request.url, result),
    )


@router.post("", response_model=CategoryResult, status_code=201)
def create_category(category: CategoryCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    db_category = category_service.create_category(db, category)
    return CategoryResult(message="Category created successfully.", category=Category.model_validate(db_category))


@router.put("/{category_id}", response_model=CategoryResult)
def update_category(category_id: int, category: CategoryUpdate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    db_category = category_service.get_category(db, category_id)
    db_category = category_service.update_category(db, db_category, category)
    return CategoryResult(message="Category updated successfully.", category=Category.model_validate(db_category))


@router.delete("/{category_id}", response_model=CategoryResult)
def delete_category(category_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    db_category = category_service.get_category(db, category_id)
    category_service.delete_category(db, db_category)
    return CategoryResult(message="Category deleted successfully.")
