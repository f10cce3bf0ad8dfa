from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import String, Boolean, DateTime, func, text
from sqlalchemy.orm import Mapped, mapped_column

from sensory_share_gateway.db.base import Base


class ApiKeyORM(Base):
    __tablename__ = "api_keys"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    key: Mapped[str] = mapped_column(String, nullable=False, unique=True)

    text_permission: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    file_permission: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    mount_permission: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    basic_path: Mapped[str] = mapped_column(String, nullable=False, server_default="/")

    # "Бессрочные" ключи хранятся с датой 9999-12-31, а не NULL
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    last_used: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
