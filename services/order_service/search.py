"""Search criteria value object and paging helpers shared by buyer and seller searches."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from math import ceil
from typing import Generic, Iterable, Sequence, TypeVar

from .exceptions import ValidationError
from .models import OrderStatus

T = TypeVar("T")


def parse_date(value: str) -> datetime:
    """Accepts full ISO-8601 or YYYY-MM-DD (start of day, UTC)."""
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError as e:
        raise ValidationError(f"Invalid date format: {value}", code="invalid_date") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class OrderSearchCriteria:
    """
    Optional filters for order searches. Every field left as None is ignored.

    keyword, the update-date range and statuses are pushed down to storage.
    The price range is always applied in memory: for sellers it depends on the
    subtotal of their own items, which storage cannot compute.
    """
    keyword: str | None = None
    min_price: float | None = None
    max_price: float | None = None
    min_update_date: datetime | None = None
    max_update_date: datetime | None = None
    statuses: tuple[OrderStatus, ...] = field(default_factory=tuple)

    @classmethod
    def build(
        cls,
        keyword: str | None = None,
        min_price: float | None = None,
        max_price: float | None = None,
        min_update_date: str | None = None,
        max_update_date: str | None = None,
        statuses: Iterable[OrderStatus] | None = None,
    ) -> "OrderSearchCriteria":
        if (min_price is not None and min_price < 0) or (max_price is not None and max_price < 0):
            raise ValidationError("Price filters must be non-negative", code="invalid_price_range")
        if min_price is not None and max_price is not None and min_price > max_price:
            raise ValidationError("min_price must not exceed max_price", code="invalid_price_range")

        min_date = parse_date(min_update_date) if min_update_date else None
        max_date = parse_date(max_update_date) if max_update_date else None
        if min_date and max_date and min_date > max_date:
            raise ValidationError("min_update_date must not be after max_update_date", code="invalid_date_range")

        keyword = keyword.strip() if keyword else None
        return cls(
            keyword=keyword or None,
            min_price=min_price,
            max_price=max_price,
            min_update_date=min_date,
            max_update_date=max_date,
            statuses=tuple(statuses or ()),
        )

    @property
    def has_price_range(self) -> bool:
        return self.min_price is not None or self.max_price is not None

    def matches_price(self, amount: float) -> bool:
        if self.min_price is not None and amount < self.min_price:
            return False
        if self.max_price is not None and amount > self.max_price:
            return False
        return True


@dataclass
class Page(Generic[T]):
    content: list[T]
    total_elements: int
    page: int
    size: int

    @property
    def total_pages(self) -> int:
        return ceil(self.total_elements / self.size) if self.size else 0


def validate_paging(page: int, size: int) -> None:
    if page < 0:
        raise ValidationError("page must be >= 0", code="invalid_page")
    if size < 1:
        raise ValidationError("size must be >= 1", code="invalid_page")


def paginate(items: Sequence[T], page: int, size: int) -> Page[T]:
    start = page * size
    return Page(content=list(items[start:start + size]), total_elements=len(items), page=page, size=size)
