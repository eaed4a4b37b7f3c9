from __future__ import annotations
"""ModelRegistry ORM model — an owner's provider credentials and model list."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from storyreel.database import Base


class ModelRegistryRecord(Base):
    """One JSON document per owner.

    Shape::

        {
          "providers": [{"id", "name", "baseUrl", "apiKey"}],
          "models": [{"id", "apiModel", "type", "providerId", "endpoint", "params"}],
          "activeModels": {"text": ..., "image": ..., "video": ...}
        }
    """

    __tablename__ = "model_registry"

    owner_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )
