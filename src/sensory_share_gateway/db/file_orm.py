from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import String, BigInteger, Boolean, Integer, DateTime, ForeignKey, Index, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sensory_share_gateway.db.base import Base, CreatedAt, UpdatedAt


class FileORM(Base):
    __tablename__ = "files"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    slug: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    filename: Mapped[str] = mapped_column(String, nullable=False)
    storage_path: Mapped[str] = mapped_column(String, nullable=False)
    s3_url: Mapped[str] = mapped_column(String, nullable=False)
    s3_config_id: Mapped[str] = mapped_column(
        ForeignKey("s3_configs.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    mimetype: Mapped[Optional[str]] = mapped_column(String(255))
    # До commit - 0 (placeholder)
    size: Mapped[int] = mapped_column(BigInteger, nullable=False, server_default="0")
    etag: Mapped[Optional[str]] = mapped_column(String)

    # '<admin id>' или 'apikey:<key id>' - на это завязаны проверки владения
    created_by: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    remark: Mapped[Optional[str]] = mapped_column(String)
    password: Mapped[Optional[str]] = mapped_column(String)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    max_views: Mapped[Optional[int]] = mapped_column(Integer)
    views: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    use_proxy: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))

    created_at: Mapped[CreatedAt]
    updated_at: Mapped[UpdatedAt]

    password_record: Mapped[Optional["FilePasswordORM"]] = relationship(
        "FilePasswordORM", back_populates="file", cascade="all, delete-orphan", uselist=False, lazy="selectin"
    )

    __table_args__ = (
        Index("idx_files_s3_config_id_size", "s3_config_id", "size"),
    )


class FilePasswordORM(Base):
    __tablename__ = "file_passwords"

    file_id: Mapped[str] = mapped_column(ForeignKey("files.id", ondelete="CASCADE"), primary_key=True)
    plain_password: Mapped[str] = mapped_column(String, nullable=False)

    created_at: Mapped[CreatedAt]
    updated_at: Mapped[UpdatedAt]

    file: Mapped["FileORM"] = relationship("FileORM", back_populates="password_record")
