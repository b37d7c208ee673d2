from datetime import datetime
from typing import Optional

from pgvector.sqlalchemy import Vector
from sqlalchemy import DateTime, Integer, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

DEFAULT_EMBEDDING_DIMENSIONS = 1536


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


def build_clip_model(dimensions: int = DEFAULT_EMBEDDING_DIMENSIONS):
    """Return the ``clip`` ORM class for a given embedding dimensionality.

    The vector column width is part of the table definition, so each
    dimensionality gets its own declarative registry.
    """

    class _Base(DeclarativeBase):
        pass

    class Clip(_Base, TimestampMixin):
        __tablename__ = "clip"

        id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
        origin_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
        start_frame: Mapped[int] = mapped_column(Integer, nullable=False)
        end_frame: Mapped[int] = mapped_column(Integer, nullable=False)
        video_url: Mapped[str] = mapped_column(Text, nullable=False)
        animation_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
        description: Mapped[str] = mapped_column(Text, nullable=False)
        embedding = mapped_column(Vector(dimensions), nullable=False)

        __mapper_args__ = {"eager_defaults": True}

    return Clip
