# relief_app/services/notification_service.py
from __future__ import annotations

import logging
from typing import Optional

from relief_app.models.case import Case
from relief_app.models.user import User

logger = logging.getLogger(__name__)


class NotificationSender:
    """
    Outbound notices to families and staff.
    Called after the transaction commits; a failure here never undoes
    the state change it reports on.
    """

    def case_submitted(self, case: Case) -> None:
        raise NotImplementedError

    def case_decided(self, case: Case) -> None:
        raise NotImplementedError

    def account_created(self, user: User, created_by: Optional[str] = None) -> None:
        raise NotImplementedError


class LoggingNotificationSender(NotificationSender):
    """Default sender: emits one structured log record per notice."""

    def case_submitted(self, case: Case) -> None:
        logger.info(
            "notify case submitted",
            extra={"caseId": case.case_id, "to": case.user_email, "status": case.status},
        )

    def case_decided(self, case: Case) -> None:
        decision = case.decision
        logger.info(
            "notify case decided",
            extra={
                "caseId": case.case_id,
                "to": case.user_email,
                "decision": decision.decision if decision else None,
            },
        )

    def account_created(self, user: User, created_by: Optional[str] = None) -> None:
        logger.info(
            "notify account created",
            extra={"userId": str(user.id), "to": user.email, "role": user.role, "createdBy": created_by},
        )


def safe_notify(sender: Optional[NotificationSender], event: str, *args, **kwargs) -> bool:
    """
    Invoke sender.<event>(...) and report success.
    Delivery problems are logged, not raised.
    """
    if sender is None:
        return False
    try:
        getattr(sender, event)(*args, **kwargs)
        return True
    except Exception:
        logger.exception("notification failed", extra={"event": event})
        return False
