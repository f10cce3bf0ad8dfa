from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import String, Boolean, Integer, DateTime, ForeignKey, Index, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sensory_share_gateway.db.base import Base, CreatedAt, UpdatedAt


class StorageMountORM(Base):
    __tablename__ = "storage_mounts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    name: Mapped[str] = mapped_column(String, nullable=False)
    storage_type: Mapped[str] = mapped_column(String(16), nullable=False, server_default="S3")
    storage_config_id: Mapped[str] = mapped_column(
        ForeignKey("s3_configs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Абсолютный виртуальный путь, например /public/docs
    mount_path: Mapped[str] = mapped_column(String, nullable=False)
    remark: Mapped[Optional[str]] = mapped_column(String)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    cache_ttl: Mapped[int] = mapped_column(Integer, nullable=False, server_default="300")
    created_by: Mapped[Optional[str]] = mapped_column(String(64))

    created_at: Mapped[CreatedAt]
    updated_at: Mapped[UpdatedAt]
    last_used: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    storage_config: Mapped["StorageConfigORM"] = relationship("StorageConfigORM", lazy="joined")

    __table_args__ = (
        Index("idx_storage_mounts_active_sort", "is_active", "sort_order"),
    )
