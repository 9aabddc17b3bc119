"""Natural-key upsert shared by the synchronizers."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession


async def upsert(db: AsyncSession, model, key: dict, values: dict):
    """Update the row matching ``key`` in place, or insert a new one.

    ``None`` key parts match NULL, so metrics without an ad stay unique per
    (campaign, date) instead of piling up on every re-sync.
    """
    conditions = [
        getattr(model, column).is_(None) if value is None else getattr(model, column) == value
        for column, value in key.items()
    ]
    result = await db.execute(select(model).where(*conditions))
    row = result.scalars().first()
    if row:
        for column, value in values.items():
            setattr(row, column, value)
    else:
        row = model(**key, **values)
        db.add(row)
        await db.flush()
    return row
