import logging

from sqlalchemy.orm import Session

from coachbill.errors import NotFoundError, ValidationError
from coachbill.models.billing import PricingPlan, Subscription, SubscriptionStatus
from coachbill.schemas.billing import SubscriptionCreate, SubscriptionUpdate
from coachbill.services.common import (
    apply_ordering,
    apply_pagination,
    coerce_uuid,
    validate_enum,
)
from coachbill.services.response import ListResponseMixin

logger = logging.getLogger(__name__)

VALID_TRANSITIONS: dict[SubscriptionStatus, set[SubscriptionStatus]] = {
    SubscriptionStatus.active: {SubscriptionStatus.paused, SubscriptionStatus.cancelled},
    SubscriptionStatus.paused: {SubscriptionStatus.active, SubscriptionStatus.cancelled},
    SubscriptionStatus.cancelled: set(),
}


class Subscriptions(ListResponseMixin):
    @staticmethod
    def create(db: Session, payload: SubscriptionCreate) -> Subscription:
        plan = db.get(PricingPlan, coerce_uuid(payload.pricing_plan_id))
        if not plan:
            raise NotFoundError("Pricing plan not found")
        if plan.coach_id != payload.coach_id:
            raise ValidationError("Pricing plan belongs to another coach")
        if not plan.is_active:
            raise ValidationError("Pricing plan is no longer offered")
        data = payload.model_dump()
        if data["sessions_remaining"] is None:
            data["sessions_remaining"] = plan.session_count
        item = Subscription(**data)
        db.add(item)
        db.commit()
        db.refresh(item)
        logger.info("Created Subscription: %s", item.id, extra={"coach_id": item.coach_id})
        return item

    @staticmethod
    def get(db: Session, item_id: str) -> Subscription:
        item = db.get(Subscription, coerce_uuid(item_id))
        if not item:
            raise NotFoundError("Subscription not found")
        return item

    @staticmethod
    def list(
        db: Session,
        coach_id: str | None,
        client_id: str | None,
        status: str | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ) -> tuple[list[Subscription], int]:
        query = db.query(Subscription)
        if coach_id:
            query = query.filter(Subscription.coach_id == coerce_uuid(coach_id))
        if client_id:
            query = query.filter(Subscription.client_id == coerce_uuid(client_id))
        if status:
            query = query.filter(
                Subscription.status == validate_enum(status, SubscriptionStatus, "status")
            )
        total = query.count()
        query = apply_ordering(
            query,
            order_by,
            order_dir,
            {
                "created_at": Subscription.created_at,
                "next_billing_date": Subscription.next_billing_date,
            },
        )
        items = list(apply_pagination(query, limit, offset).all())
        return items, total

    @staticmethod
    def update(db: Session, item_id: str, payload: SubscriptionUpdate) -> Subscription:
        item = db.get(Subscription, coerce_uuid(item_id))
        if not item:
            raise NotFoundError("Subscription not found")
        data = payload.model_dump(exclude_unset=True)
        target = data.get("status")
        if target is not None and target != item.status:
            _validate_transition(item.status, target)
        for key, value in data.items():
            setattr(item, key, value)
        db.commit()
        db.refresh(item)
        logger.info("Updated Subscription: %s", item.id)
        return item

    @staticmethod
    def set_status(db: Session, item_id: str, target: SubscriptionStatus) -> Subscription:
        item = db.get(Subscription, coerce_uuid(item_id))
        if not item:
            raise NotFoundError("Subscription not found")
        if item.status == target:
            return item
        _validate_transition(item.status, target)
        item.status = target
        db.commit()
        db.refresh(item)
        logger.info("Subscription %s is now %s", item.id, target.value)
        return item

    def pause(self, db: Session, item_id: str) -> Subscription:
        return self.set_status(db, item_id, SubscriptionStatus.paused)

    def resume(self, db: Session, item_id: str) -> Subscription:
        return self.set_status(db, item_id, SubscriptionStatus.active)

    def cancel(self, db: Session, item_id: str) -> Subscription:
        return self.set_status(db, item_id, SubscriptionStatus.cancelled)


def _validate_transition(current: SubscriptionStatus, target: SubscriptionStatus) -> None:
    if target not in VALID_TRANSITIONS.get(current, set()):
        raise ValidationError(
            f"Cannot move subscription from '{current.value}' to '{target.value}'"
        )


subscriptions = Subscriptions()
