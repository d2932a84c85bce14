"""References to tables owned by other parts of the platform.

Users, posts (the dishes customers order) and restaurants are managed by the
profile/catalog services. They are mapped here read-mostly; the only write
this service performs is the stock decrement/restore on ``posts.quantity``.
"""

import uuid
from decimal import Decimal
from typing import Optional

from libs.db.base import Base
from sqlalchemy import Float, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

_EXTERNAL = {"extend_existing": True, "info": {"skip_autogenerate": True}}


class UserRef(Base):
    __tablename__ = "users"
    __table_args__ = _EXTERNAL

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False)
    avatar: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    contact_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Stored home location, used as the delivery fallback
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    def __repr__(self):
        return f"<UserRef {self.username}>"


class RestaurantRef(Base):
    __tablename__ = "restaurants"
    __table_args__ = _EXTERNAL

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    def __repr__(self):
        return f"<RestaurantRef {self.name}>"


class ProductRef(Base):
    """A dish listed by its author (the cook who fulfils it)."""

    __tablename__ = "posts"
    __table_args__ = _EXTERNAL

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    author_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id"), nullable=False, index=True
    )
    caption: Mapped[str] = mapped_column(String(255), nullable=False)
    image: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    quantity: Mapped[int] = mapped_column(Integer, default=1)

    author = relationship("UserRef", lazy="joined")

    def __repr__(self):
        return f"<ProductRef {self.caption}>"
