"""Service layer for category CRUD. Every query is scoped to one user."""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models.category import Category
from schemas.category import CategoryCreate, CategoryUpdate


async def list_categories(db: AsyncSession, user_id: str) -> list[Category]:
    """All of the user's categories, newest first."""
    result = await db.scalars(
        select(Category)
        .where(Category.user_id == user_id)
        .order_by(Category.created_at.desc(), Category.name),
    )
    return list(result.all())


async def create_category(db: AsyncSession, user_id: str, data: CategoryCreate) -> Category:
    """Create a category owned by `user_id`."""
    category = Category(
        user_id=user_id,
        name=data.name,
        description=data.description,
        color=data.color,
    )
    db.add(category)
    await db.flush()
    await db.refresh(category)
    return category


async def get_category(db: AsyncSession, user_id: str, category_id: str) -> Category | None:
    """A single category, or None if missing or owned by someone else."""
    return await db.scalar(
        select(Category).where(Category.id == category_id, Category.user_id == user_id),
    )


async def update_category(
    db: AsyncSession,
    user_id: str,
    category_id: str,
    data: CategoryUpdate,
) -> Category | None:
    """Apply the provided fields; returns None if the category is not the user's."""
    category = await get_category(db, user_id, category_id)
    if category is None:
        return None
    for field, value in data.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(category, field, value)
    await db.flush()
    await db.refresh(category)
    return category


async def delete_category(db: AsyncSession, user_id: str, category_id: str) -> bool:
    """Delete a category; False if it is not the user's."""
    category = await get_category(db, user_id, category_id)
    if category is None:
        return False
    await db.delete(category)
    await db.flush()
    return True
