# relief_app/models/user.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy import String, DateTime, ForeignKey, Index, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from relief_app.db.base import Base
from relief_app.models.enums import CreationMethod


class User(Base):
    """
    Family / donor / checker / admin account.
    Cases, assignments, decisions and audit entries reference it by id.
    """
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    email: Mapped[str] = mapped_column(String(256), nullable=False, unique=True)
    first_name: Mapped[str] = mapped_column(String(128), nullable=False)
    last_name: Mapped[str] = mapped_column(String(128), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    role: Mapped[str] = mapped_column(String(16), nullable=False)

    # 🔐 AUTH
    password_hash: Mapped[str] = mapped_column(String(256), nullable=False)
    is_active: Mapped[bool] = mapped_column(
        nullable=False, default=True, server_default=sa.true()
    )

    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    creation_method: Mapped[str] = mapped_column(
        String(32), nullable=False, default=CreationMethod.self_registration.value
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    last_login_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (Index("ix_users_role_active", "role", "is_active"),)

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
