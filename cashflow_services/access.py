"""
Shop access control seam.

Role and permission policy belongs to the auth service.  The ledger only
needs two questions answered, so it depends on ``ShopAccessChecker`` and
ships the membership-table implementation used in a single database
deployment.
"""

from abc import ABC, abstractmethod
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from cashflow_kernel.exceptions import AccessDeniedError
from cashflow_kernel.models.party import UserShop


class ShopAccessChecker(ABC):
    @abstractmethod
    def has_access(self, user_id: UUID, shop_id: UUID) -> bool:
        ...

    @abstractmethod
    def shops_for(self, user_id: UUID) -> list[UUID]:
        """Shops the user is a member of, in a stable order."""
        ...

    def require_access(self, user_id: UUID, shop_id: UUID) -> None:
        if not self.has_access(user_id, shop_id):
            raise AccessDeniedError(str(user_id), str(shop_id))


class MembershipAccessChecker(ShopAccessChecker):
    """Answers access questions from the ``user_shops`` table."""

    def __init__(self, session: Session):
        self.session = session

    def has_access(self, user_id: UUID, shop_id: UUID) -> bool:
        row = self.session.scalar(
            select(UserShop.id).where(
                UserShop.user_id == user_id,
                UserShop.shop_id == shop_id,
            )
        )
        return row is not None

    def shops_for(self, user_id: UUID) -> list[UUID]:
        rows = self.session.scalars(
            select(UserShop.shop_id)
            .where(UserShop.user_id == user_id)
            .order_by(UserShop.created_at, UserShop.shop_id)
        )
        return list(rows)
