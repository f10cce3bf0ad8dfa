from typing import Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from sensory_share_gateway.db.base import Base, UpdatedAt


class SystemSettingORM(Base):
    __tablename__ = "system_settings"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String)
    updated_at: Mapped[UpdatedAt]
