"""Per-coach payment settings: enabled methods, reminder schedule, company profile."""

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from coachbill.config import settings
from coachbill.errors import NotFoundError
from coachbill.models.billing import PaymentSettings
from coachbill.schemas.billing import PaymentSettingsUpsert
from coachbill.services.common import require_uuid

logger = logging.getLogger(__name__)


class PaymentSettingsService:
    @staticmethod
    def get(db: Session, coach_id: str) -> PaymentSettings:
        item = db.scalar(
            select(PaymentSettings).where(PaymentSettings.coach_id == require_uuid(coach_id))
        )
        if not item:
            raise NotFoundError("Payment settings not found")
        return item

    @staticmethod
    def upsert(db: Session, coach_id: str, payload: PaymentSettingsUpsert) -> PaymentSettings:
        coach_uuid = require_uuid(coach_id)
        item = db.scalar(select(PaymentSettings).where(PaymentSettings.coach_id == coach_uuid))
        created = item is None
        if created:
            item = PaymentSettings(
                coach_id=coach_uuid,
                first_reminder_days=settings.first_reminder_days,
                second_reminder_days=settings.second_reminder_days,
                final_reminder_days=settings.final_reminder_days,
                overdue_suspension_days=settings.overdue_suspension_days,
                auto_invoice_generation=True,
            )
            db.add(item)

        data = payload.model_dump(exclude_unset=True)
        schedule = data.pop("reminder_schedule", None)
        if schedule is not None:
            for key, value in schedule.items():
                setattr(item, key, value)
        methods = data.pop("payment_methods_enabled", None)
        if methods is not None:
            item.payment_methods_enabled = [method.value for method in methods]
        for key, value in data.items():
            setattr(item, key, value)
        db.commit()
        db.refresh(item)
        logger.info(
            "%s payment settings %s",
            "Created" if created else "Updated",
            item.id,
            extra={"coach_id": coach_uuid},
        )
        return item


payment_settings = PaymentSettingsService()
