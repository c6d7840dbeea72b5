"""
Row loading shared by the services.

`for_update=True` takes the row lock (SELECT ... FOR UPDATE on Postgres;
SQLite has no row locks and relies on the entity lock alone) and refreshes
any copy already in the session's identity map, so preconditions are always
checked against the committed row.
"""

from typing import Optional, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from gigflow.core.errors import NotAParty, NotFound
from gigflow.core.security import Principal
from gigflow.engine.parties import Party
from gigflow.models.booking import Booking

T = TypeVar("T")


async def load(
    db: AsyncSession,
    model: Type[T],
    entity_id: int,
    for_update: bool = False,
    label: Optional[str] = None,
) -> T:
    stmt = select(model).where(model.id == entity_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    row = result.scalar_one_or_none()
    if row is None:
        raise NotFound(f"{label or model.__name__} {entity_id} not found")
    return row


async def next_seq(db: AsyncSession, event_model, owner_column, owner_id: int) -> int:
    result = await db.execute(
        select(func.coalesce(func.max(event_model.seq), 0)).where(owner_column == owner_id)
    )
    return result.scalar_one() + 1


def acting_party(booking: Booking, principal: Principal) -> Party:
    """The side of the deal the caller acts for; outsiders and admins are refused."""
    party = principal.party
    if booking.user_id_for(party.value) != principal.user_id:
        raise NotAParty()
    return party


def ensure_can_view(booking: Booking, principal: Principal) -> None:
    if principal.is_admin:
        return
    if booking.party_of(principal.user_id) is None:
        raise NotAParty()
