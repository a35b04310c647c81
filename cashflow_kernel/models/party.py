"""
Module: cashflow_kernel.models.party
Responsibility: Users, shops and shop membership.
Architecture position: Kernel > Models.  May import from db/ only.

These rows are owned by the auth service; the ledger only reads them to
resolve names for descriptions and to answer membership questions.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cashflow_kernel.db.base import TrackedBase


class UserRole(str, Enum):
    SHOP_OWNER = "SHOP_OWNER"
    SHOP_STAFF = "SHOP_STAFF"
    CUSTOMER = "CUSTOMER"


class User(TrackedBase):
    """A platform user: shop owner, staff member or customer."""

    __tablename__ = "users"

    __table_args__ = (
        UniqueConstraint("email", name="uq_users_email"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    contact_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    role: Mapped[str] = mapped_column(String(20), default=UserRole.CUSTOMER.value, nullable=False)

    memberships: Mapped[list["UserShop"]] = relationship(back_populates="user")

    @property
    def contact_info(self) -> str:
        return self.contact_number or self.email or "No contact info"

    def __repr__(self) -> str:
        return f"<User {self.id} {self.name!r} ({self.role})>"


class Shop(TrackedBase):
    __tablename__ = "shops"

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    members: Mapped[list["UserShop"]] = relationship(back_populates="shop")

    def __repr__(self) -> str:
        return f"<Shop {self.id} {self.name!r}>"


class UserShop(TrackedBase):
    """Membership of a user in a shop; the unit of shop access."""

    __tablename__ = "user_shops"

    __table_args__ = (
        UniqueConstraint("user_id", "shop_id", name="uq_user_shop"),
        Index("idx_user_shops_shop", "shop_id"),
    )

    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    shop_id: Mapped[UUID] = mapped_column(ForeignKey("shops.id"), nullable=False)

    user: Mapped["User"] = relationship(back_populates="memberships")
    shop: Mapped["Shop"] = relationship(back_populates="members")
