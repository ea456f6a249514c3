"""
Category model: the ordered list of gallery categories.
"""
from datetime import datetime

from sqlalchemy import String, DateTime, Integer
from sqlalchemy.orm import Mapped, mapped_column

from storefront.database import Base, utcnow


class Category(Base):
    """A gallery category. Photos refer to it by name."""

    __tablename__ = "categories"

    name: Mapped[str] = mapped_column(String(255), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<Category(name={self.name})>"
