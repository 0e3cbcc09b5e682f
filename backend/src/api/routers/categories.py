"""Category CRUD endpoints."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import check_rate_limit, get_async_session, get_current_identity
from core.exceptions import NotFoundError
from schemas.category import CategoryCreate, CategoryResponse, CategoryUpdate
from schemas.session import SessionIdentity
from services import category_service

router = APIRouter(
    prefix="/api/categories",
    tags=["categories"],
    dependencies=[Depends(check_rate_limit)],
)


@router.get("", response_model=list[CategoryResponse])
async def list_categories(
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_async_session),
) -> list[CategoryResponse]:
    """List the current user's categories, newest first."""
    categories = await category_service.list_categories(db, identity.id)
    return [CategoryResponse.model_validate(c) for c in categories]


@router.post("", response_model=CategoryResponse, status_code=201)
async def create_category(
    data: CategoryCreate,
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_async_session),
) -> CategoryResponse:
    """Create a category."""
    category = await category_service.create_category(db, identity.id, data)
    await db.commit()
    return CategoryResponse.model_validate(category)


@router.get("/{category_id}", response_model=CategoryResponse)
async def get_category(
    category_id: str,
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_async_session),
) -> CategoryResponse:
    """Get a single category."""
    category = await category_service.get_category(db, identity.id, category_id)
    if category is None:
        raise NotFoundError("Category not found")
    return CategoryResponse.model_validate(category)


@router.put("/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: str,
    data: CategoryUpdate,
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_async_session),
) -> CategoryResponse:
    """Update a category; omitted fields are left unchanged."""
    category = await category_service.update_category(db, identity.id, category_id, data)
    if category is None:
        raise NotFoundError("Category not found")
    await db.commit()
    return CategoryResponse.model_validate(category)


@router.delete("/{category_id}", status_code=204)
async def delete_category(
    category_id: str,
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_async_session),
) -> None:
    """Delete a category."""
    deleted = await category_service.delete_category(db, identity.id, category_id)
    if not deleted:
        raise NotFoundError("Category not found")
    await db.commit()
