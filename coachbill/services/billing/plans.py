import logging

from sqlalchemy.orm import Session

from coachbill.errors import NotFoundError
from coachbill.models.billing import PricingPlan
from coachbill.schemas.billing import PricingPlanCreate, PricingPlanUpdate
from coachbill.services.common import apply_ordering, apply_pagination, coerce_uuid
from coachbill.services.response import ListResponseMixin

logger = logging.getLogger(__name__)


class PricingPlans(ListResponseMixin):
    @staticmethod
    def create(db: Session, payload: PricingPlanCreate) -> PricingPlan:
        item = PricingPlan(**payload.model_dump())
        db.add(item)
        db.commit()
        db.refresh(item)
        logger.info("Created PricingPlan: %s", item.id, extra={"coach_id": item.coach_id})
        return item

    @staticmethod
    def get(db: Session, item_id: str) -> PricingPlan:
        item = db.get(PricingPlan, coerce_uuid(item_id))
        if not item:
            raise NotFoundError("Pricing plan not found")
        return item

    @staticmethod
    def list(
        db: Session,
        coach_id: str | None,
        is_active: bool | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ) -> tuple[list[PricingPlan], int]:
        query = db.query(PricingPlan)
        if coach_id:
            query = query.filter(PricingPlan.coach_id == coerce_uuid(coach_id))
        if is_active is not None:
            query = query.filter(PricingPlan.is_active == is_active)
        total = query.count()
        query = apply_ordering(
            query,
            order_by,
            order_dir,
            {
                "created_at": PricingPlan.created_at,
                "name": PricingPlan.name,
                "price": PricingPlan.price,
            },
        )
        items = list(apply_pagination(query, limit, offset).all())
        return items, total

    @staticmethod
    def update(db: Session, item_id: str, payload: PricingPlanUpdate) -> PricingPlan:
        item = db.get(PricingPlan, coerce_uuid(item_id))
        if not item:
            raise NotFoundError("Pricing plan not found")
        for key, value in payload.model_dump(exclude_unset=True).items():
            setattr(item, key, value)
        db.commit()
        db.refresh(item)
        logger.info("Updated PricingPlan: %s", item.id)
        return item

    @staticmethod
    def delete(db: Session, item_id: str) -> None:
        item = db.get(PricingPlan, coerce_uuid(item_id))
        if not item:
            raise NotFoundError("Pricing plan not found")
        # Subscriptions keep pointing at retired plans.
        item.is_active = False
        db.commit()
        logger.info("Retired PricingPlan: %s", item.id)


pricing_plans = PricingPlans()
