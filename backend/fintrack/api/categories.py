from fastapi import APIRouter, Depends
from typing import List
from sqlalchemy.orm import Session
from fintrack.models.schemas import Category, CategoryCreate
from fintrack.database.session import get_db as get_session
from fintrack.database.db_service import get_db_service
from fintrack.database.stores import CategoryCatalog

router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("", response_model=List[Category])
async def get_categories(session: Session = Depends(get_session)):
    catalog = CategoryCatalog(get_db_service(session))
    return [Category(**cat) for cat in catalog.list()]


@router.post("", response_model=Category, status_code=201)
async def create_category(
    category: CategoryCreate,
    session: Session = Depends(get_session)
):
    catalog = CategoryCatalog(get_db_service(session))
    created_category = catalog.create(category.model_dump())
    session.commit()
    return Category(**created_category)


@router.post("/init-defaults")
async def initialize_default_categories(session: Session = Depends(get_session)):
    """Create the default categories if the catalog is empty."""
    catalog = CategoryCatalog(get_db_service(session))
    created = catalog.initialize_defaults()
    session.commit()

    if not created:
        return {"message": "Categories already initialized", "count": 0}
    return {
        "message": "Default categories initialized successfully",
        "count": len(created),
        "categories": [Category(**cat) for cat in created],
    }


@router.get("/{category_id}", response_model=Category)
async def get_category(
    category_id: str,
    session: Session = Depends(get_session)
):
    catalog = CategoryCatalog(get_db_service(session))
    return Category(**catalog.get(category_id))


@router.put("/{category_id}", response_model=Category)
async def update_category(
    category_id: str,
    category_update: CategoryCreate,
    session: Session = Depends(get_session)
):
    catalog = CategoryCatalog(get_db_service(session))
    updated_category = catalog.update(category_id, category_update.model_dump())
    session.commit()
    return Category(**updated_category)


@router.delete("/{category_id}")
async def delete_category(
    category_id: str,
    session: Session = Depends(get_session)
):
    catalog = CategoryCatalog(get_db_service(session))
    catalog.delete(category_id)
    session.commit()

    return {"message": "Category deleted successfully"}
