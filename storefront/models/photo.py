"""
Photo model for storing photo metadata.
The image files live on disk; the record holds their paths.
"""
from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, DateTime, Integer, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from storefront.database import Base, utcnow


class Photo(Base):
    """
    One sellable photo: a clean original plus its watermarked preview.
    """

    __tablename__ = "photos"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    # File metadata
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    original_filename: Mapped[str] = mapped_column(String(255), nullable=False)

    # Storage paths, relative to the upload root
    original_path: Mapped[str] = mapped_column(String(500), nullable=False)
    preview_path: Mapped[str] = mapped_column(String(500), nullable=False)

    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    category: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )

    def __repr__(self) -> str:
        return f"<Photo(id={self.id}, filename={self.filename})>"
