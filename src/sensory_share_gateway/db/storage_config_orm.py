# sensory_share_gateway/db/storage_config_orm.py
from typing import Optional
from uuid import uuid4

from sqlalchemy import String, BigInteger, Boolean, Integer, text
from sqlalchemy.orm import Mapped, mapped_column

from sensory_share_gateway.db.base import Base, CreatedAt, UpdatedAt


class StorageConfigORM(Base):
    __tablename__ = "s3_configs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    name: Mapped[str] = mapped_column(String, nullable=False)
    provider_type: Mapped[str] = mapped_column(String(32), nullable=False, server_default="Other")

    endpoint_url: Mapped[str] = mapped_column(String, nullable=False)
    region: Mapped[Optional[str]] = mapped_column(String)
    bucket_name: Mapped[str] = mapped_column(String, nullable=False)
    access_key_id: Mapped[str] = mapped_column(String, nullable=False)
    # Зашифровано Fernet-ключом, производным от GATEWAY__ENCRYPTION_SECRET
    secret_access_key: Mapped[str] = mapped_column(String, nullable=False)
    path_style: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    custom_host: Mapped[Optional[str]] = mapped_column(String)

    default_folder: Mapped[str] = mapped_column(String, nullable=False, server_default="")
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    # NULL - публичная конфигурация без владельца
    admin_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    # NULL - без ограничения ёмкости
    total_storage_bytes: Mapped[Optional[int]] = mapped_column(BigInteger)
    signature_expires_in: Mapped[int] = mapped_column(Integer, nullable=False, server_default="3600")

    created_at: Mapped[CreatedAt]
    updated_at: Mapped[UpdatedAt]
