# relief_app/services/user_service.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from relief_app.core.errors import ConflictError, NotFoundError, ValidationError
from relief_app.core.security import hash_password, verify_password
from relief_app.models.enums import CreationMethod, UserRole
from relief_app.models.user import User
from relief_app.policies.rbac import ACTION_MANAGE_CHECKERS, Principal, require_action
from relief_app.services.notification_service import (
    LoggingNotificationSender,
    NotificationSender,
    safe_notify,
)

logger = logging.getLogger(__name__)

SELF_SERVICE_ROLES = frozenset({UserRole.FAMILY, UserRole.DONOR})


def _now():
    return datetime.now(timezone.utc)


def principal_for(user: User) -> Principal:
    return Principal(
        user_id=str(user.id),
        role=UserRole(user.role),
        display_name=user.display_name,
        email=user.email,
    )


class UserService:
    def __init__(self, *, notifier: Optional[NotificationSender] = None):
        self.notifier = notifier if notifier is not None else LoggingNotificationSender()

    # ---------------------------
    # READS
    # ---------------------------

    def get_by_email(self, db: Session, email: str) -> Optional[User]:
        return (
            db.execute(select(User).where(func.lower(User.email) == email.strip().lower()))
            .scalars()
            .one_or_none()
        )

    def list_checkers(self, db: Session, *, active: Optional[bool] = None) -> List[User]:
        stmt = select(User).where(User.role == UserRole.CHECKER.value)
        if active is not None:
            stmt = stmt.where(User.is_active.is_(active))
        return list(db.execute(stmt.order_by(User.created_at.desc())).scalars().all())

    # ---------------------------
    # AUTH
    # ---------------------------

    def authenticate(self, db: Session, email: str, password: str) -> Optional[Principal]:
        user = self.get_by_email(db, email)
        if user is None or not user.is_active:
            return None
        if not verify_password(password, user.password_hash):
            return None

        user.last_login_at = _now()
        db.commit()
        return principal_for(user)

    # ---------------------------
    # MUTATIONS
    # ---------------------------

    def create_user(
        self,
        db: Session,
        *,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        role: UserRole,
        phone: Optional[str] = None,
        created_by: Optional[uuid.UUID] = None,
        creation_method: CreationMethod = CreationMethod.self_registration,
    ) -> User:
        user = User(
            id=uuid.uuid4(),
            email=email.strip().lower(),
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            phone=phone,
            role=role.value,
            password_hash=hash_password(password),
            is_active=True,
            created_by=created_by,
            creation_method=creation_method.value,
        )
        db.add(user)
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise ConflictError("A user with this email already exists.") from e
        db.refresh(user)
        return user

    def create_checker(
        self,
        db: Session,
        admin: Principal,
        *,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        phone: Optional[str] = None,
    ) -> User:
        require_action(admin, ACTION_MANAGE_CHECKERS)
        user = self.create_user(
            db,
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            role=UserRole.CHECKER,
            phone=phone,
            created_by=uuid.UUID(admin.user_id),
            creation_method=CreationMethod.admin_created,
        )
        logger.info("checker created", extra={"userId": str(user.id), "actorId": admin.user_id})
        safe_notify(self.notifier, "account_created", user, created_by=admin.user_id)
        return user

    def register(
        self,
        db: Session,
        *,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        role: UserRole,
        phone: Optional[str] = None,
    ) -> User:
        """Open sign-up for families and donors."""
        if role not in SELF_SERVICE_ROLES:
            raise ValidationError(
                "Only family and donor accounts can self-register.",
                errors=[{"field": "role", "message": "not allowed for self-registration"}],
            )
        user = self.create_user(
            db,
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            role=role,
            phone=phone,
            creation_method=CreationMethod.self_registration,
        )
        logger.info("account registered", extra={"userId": str(user.id), "role": user.role})
        safe_notify(self.notifier, "account_created", user)
        return user

    def set_checker_active(self, db: Session, admin: Principal, checker_id: str, active: bool) -> User:
        require_action(admin, ACTION_MANAGE_CHECKERS)
        try:
            key = uuid.UUID(str(checker_id))
        except ValueError:
            raise ValidationError(
                "Invalid checker id.",
                errors=[{"field": "checkerId", "message": "not a valid id"}],
            )

        user = db.get(User, key)
        if user is None or user.role != UserRole.CHECKER.value:
            raise NotFoundError("Checker not found.")

        user.is_active = active
        db.commit()
        db.refresh(user)
        logger.info(
            "checker status changed",
            extra={"userId": str(user.id), "isActive": active, "actorId": admin.user_id},
        )
        return user
