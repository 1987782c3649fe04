from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import inspect as sa_inspect

from .models import Order, OrderItem, OrderStatus, utcnow
from .search import OrderSearchCriteria, Page, paginate


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _criteria_clauses(criteria: OrderSearchCriteria) -> list:
    """Translates the storage-side part of the criteria into SQL predicates (AND-ed)."""
    clauses = []

    # Keyword matches the order id or any item's product name, case-insensitive
    if criteria.keyword:
        pattern = f"%{_escape_like(criteria.keyword)}%"
        clauses.append(or_(
            Order.id.ilike(pattern, escape="\\"),
            Order.items.any(OrderItem.product_name.ilike(pattern, escape="\\")),
        ))

    if criteria.min_update_date is not None:
        clauses.append(Order.updated_at >= criteria.min_update_date)
    if criteria.max_update_date is not None:
        clauses.append(Order.updated_at <= criteria.max_update_date)

    if criteria.statuses:
        clauses.append(Order.status.in_(criteria.statuses))

    return clauses


class OrderRepository:
    @staticmethod
    async def save(db: AsyncSession, order: Order) -> Order:
        if sa_inspect(order).persistent:
            # Item-only changes do not dirty the parent row
            order.updated_at = utcnow()
        db.add(order)
        await db.commit()
        return order

    @staticmethod
    async def get_order(db: AsyncSession, order_id: str) -> Order | None:
        result = await db.execute(select(Order).where(Order.id == order_id))
        return result.scalars().first()

    @staticmethod
    async def find_latest_pending(db: AsyncSession, user_id: str) -> Order | None:
        """The user's working cart: most recent PENDING order by order date."""
        result = await db.execute(
            select(Order)
            .where(Order.user_id == user_id, Order.status == OrderStatus.PENDING)
            .order_by(Order.order_date.desc())
            .limit(1)
        )
        return result.scalars().first()

    @staticmethod
    async def list_by_user(db: AsyncSession, user_id: str, page: int, size: int) -> Page[Order]:
        where = and_(Order.user_id == user_id, Order.is_removed.is_(False))
        total = await db.scalar(select(func.count()).select_from(Order).where(where))
        result = await db.execute(
            select(Order)
            .where(where)
            .order_by(Order.updated_at.desc(), Order.order_date.desc(), Order.created_at.desc())
            .offset(page * size)
            .limit(size)
        )
        return Page(content=list(result.scalars().all()), total_elements=total or 0, page=page, size=size)

    @staticmethod
    async def list_by_user_and_status(db: AsyncSession, user_id: str, status: OrderStatus) -> list[Order]:
        result = await db.execute(
            select(Order)
            .where(Order.user_id == user_id, Order.status == status)
            .order_by(Order.order_date.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_all(db: AsyncSession) -> list[Order]:
        result = await db.execute(select(Order).order_by(Order.created_at))
        return list(result.scalars().all())

    @staticmethod
    async def search_user_orders(
        db: AsyncSession, user_id: str, criteria: OrderSearchCriteria, page: int, size: int
    ) -> Page[Order]:
        clauses = [Order.user_id == user_id, Order.is_removed.is_(False), *_criteria_clauses(criteria)]
        stmt = select(Order).where(*clauses).order_by(Order.updated_at.desc())

        if not criteria.has_price_range:
            total = await db.scalar(select(func.count()).select_from(Order).where(*clauses))
            result = await db.execute(stmt.offset(page * size).limit(size))
            return Page(content=list(result.scalars().all()), total_elements=total or 0, page=page, size=size)

        # Order totals are derived from items: filter in memory, then page
        result = await db.execute(stmt)
        matching = [o for o in result.scalars().all() if criteria.matches_price(o.total_price)]
        return paginate(matching, page, size)

    @staticmethod
    async def search_seller_candidates(db: AsyncSession, criteria: OrderSearchCriteria) -> list[Order]:
        """Non-cart orders passing the storage-side filters; seller extraction happens in memory."""
        result = await db.execute(
            select(Order)
            .where(Order.status != OrderStatus.PENDING, *_criteria_clauses(criteria))
            .order_by(Order.created_at.desc())
        )
        return list(result.scalars().all())
