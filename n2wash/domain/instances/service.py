"""
Instance service - tenant lifecycle for the super admin console, plus the
settings an instance admin manages for their own business.
"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import (
    ROLE_ADMIN,
    Instance,
    InstanceFeature,
    InstanceSubscription,
    SubscriptionPlan,
    User,
    UserRole,
)
from ...plan_limits import DEFAULT_STATION_LIMIT, count_active_stations, get_feature, get_sms_usage, is_feature_enabled
from ...security import hash_password
from ...shared.timeutils import WEEKDAY_KEYS, utcnow
from .schemas import FeatureToggle, InstanceCreate, InstanceSettingsUpdate, InstanceUpdate, PlanCreate, SubscriptionUpdate

logger = logging.getLogger(__name__)

KNOWN_FEATURES = ("offers", "halls", "sms_reminders", "push_notifications")

SETTINGS_FIELDS = {
    "name": "name",
    "shortName": "short_name",
    "phone": "phone",
    "reservationPhone": "reservation_phone",
    "email": "email",
    "address": "address",
    "googleMapsUrl": "google_maps_url",
    "website": "website",
    "socialFacebook": "social_facebook",
    "socialInstagram": "social_instagram",
    "primaryColor": "primary_color",
    "timezone": "timezone",
    "autoConfirmReservations": "auto_confirm_reservations",
    "bookingDaysAhead": "booking_days_ahead",
    "customerEditCutoffHours": "customer_edit_cutoff_hours",
}


class InstanceService:
    def __init__(self, db: Session):
        self.db = db

    def get_instance(self, instance_id: int, include_deleted: bool = False) -> Instance:
        instance = self.db.query(Instance).filter(Instance.id == instance_id).first()
        if not instance or (instance.deleted_at is not None and not include_deleted):
            raise HTTPException(status_code=404, detail="Instance not found")
        return instance

    def _commit(self, error_detail: str):
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.error(f"❌ {error_detail}: {e}")
            raise HTTPException(status_code=400, detail=error_detail) from e

    # ------------------------------------------------------------------
    # Super admin
    # ------------------------------------------------------------------

    def list_instances(self, include_deleted: bool = False) -> list[dict]:
        query = self.db.query(Instance)
        if not include_deleted:
            query = query.filter(Instance.deleted_at.is_(None))
        result = []
        for instance in query.order_by(Instance.name).all():
            subscription = instance.subscription
            result.append(
                {
                    "id": instance.id,
                    "name": instance.name,
                    "slug": instance.slug,
                    "active": instance.active,
                    "deletedAt": instance.deleted_at,
                    "createdAt": instance.created_at,
                    "stations": count_active_stations(self.db, instance.id),
                    "stationLimit": subscription.station_limit if subscription else DEFAULT_STATION_LIMIT,
                    "plan": subscription.plan.slug if subscription and subscription.plan else None,
                    "sms": get_sms_usage(instance),
                }
            )
        return result

    def create_instance(self, data: InstanceCreate) -> Instance:
        if self.db.query(Instance).filter(Instance.slug == data.slug).first():
            raise HTTPException(status_code=400, detail="Slug already in use")

        instance = Instance(
            name=data.name,
            slug=data.slug,
            short_name=data.shortName,
            phone=data.phone,
            email=data.email,
            address=data.address,
            timezone=data.timezone,
            sms_limit=data.smsLimit,
            working_hours={
                day: ({"open": "08:00", "close": "18:00"} if day not in ("saturday", "sunday") else None)
                for day in WEEKDAY_KEYS
            },
        )
        self.db.add(instance)
        self.db.flush()

        if data.planId is not None:
            plan = self._get_plan(data.planId)
            self.db.add(
                InstanceSubscription(
                    instance_id=instance.id,
                    plan_id=plan.id,
                    station_limit=data.stationLimit or DEFAULT_STATION_LIMIT,
                )
            )

        if data.admin is not None:
            admin = User(
                instance_id=instance.id,
                username=data.admin.username,
                email=data.admin.email,
                password_hash=hash_password(data.admin.password),
            )
            admin.roles.append(UserRole(role=ROLE_ADMIN, instance_id=instance.id))
            self.db.add(admin)

        self._commit("Instance could not be created (slug or admin email already in use)")
        self.db.refresh(instance)
        logger.info(f"🏢 Instance {instance.slug} created")
        return instance

    def update_instance(self, instance_id: int, data: InstanceUpdate) -> Instance:
        instance = self.get_instance(instance_id)
        if data.slug is not None and data.slug != instance.slug:
            if self.db.query(Instance).filter(Instance.slug == data.slug, Instance.id != instance.id).first():
                raise HTTPException(status_code=400, detail="Slug already in use")
            instance.slug = data.slug
        if data.name is not None:
            instance.name = data.name
        if data.active is not None:
            instance.active = data.active
        if data.smsLimit is not None:
            instance.sms_limit = data.smsLimit
        self._commit("Instance could not be updated")
        self.db.refresh(instance)
        return instance

    def delete_instance(self, instance_id: int) -> dict:
        """Soft delete: the instance disappears from routing but its data stays"""
        instance = self.get_instance(instance_id)
        instance.deleted_at = utcnow()
        instance.active = False
        self.db.commit()
        logger.info(f"🗑️ Instance {instance.slug} soft-deleted")
        return {"message": "Instance deleted"}

    # Plans and subscriptions

    def list_plans(self) -> list[SubscriptionPlan]:
        return self.db.query(SubscriptionPlan).order_by(SubscriptionPlan.sort_order, SubscriptionPlan.id).all()

    def create_plan(self, data: PlanCreate) -> SubscriptionPlan:
        plan = SubscriptionPlan(
            name=data.name,
            slug=data.slug,
            description=data.description,
            base_price=data.basePrice,
            price_per_station=data.pricePerStation,
            sms_limit=data.smsLimit,
            included_features=data.includedFeatures,
            sort_order=data.sortOrder,
        )
        self.db.add(plan)
        self._commit("Plan slug already exists")
        self.db.refresh(plan)
        return plan

    def _get_plan(self, plan_id: int) -> SubscriptionPlan:
        plan = self.db.query(SubscriptionPlan).filter(SubscriptionPlan.id == plan_id).first()
        if not plan:
            raise HTTPException(status_code=404, detail="Plan not found")
        return plan

    def set_subscription(self, instance_id: int, data: SubscriptionUpdate) -> dict:
        instance = self.get_instance(instance_id)
        plan = self._get_plan(data.planId)

        subscription = instance.subscription
        if subscription is None:
            subscription = InstanceSubscription(instance_id=instance.id, plan_id=plan.id)
            self.db.add(subscription)
        subscription.plan_id = plan.id
        if data.stationLimit is not None:
            subscription.station_limit = data.stationLimit
        elif subscription.station_limit is None:
            subscription.station_limit = DEFAULT_STATION_LIMIT
        if data.monthlyPrice is not None:
            subscription.monthly_price = data.monthlyPrice
        else:
            subscription.monthly_price = plan.base_price + plan.price_per_station * subscription.station_limit
        if data.status is not None:
            subscription.status = data.status
        if data.isTrial is not None:
            subscription.is_trial = data.isTrial
        if data.trialExpiresAt is not None:
            subscription.trial_expires_at = data.trialExpiresAt
        if data.endsAt is not None:
            subscription.ends_at = data.endsAt
        instance.sms_limit = plan.sms_limit

        self.db.commit()
        self.db.refresh(subscription)
        logger.info(f"💳 Instance {instance.slug} moved to plan {plan.slug} ({subscription.station_limit} stations)")
        return self.get_subscription(instance_id)

    def get_subscription(self, instance_id: int) -> dict:
        instance = self.get_instance(instance_id)
        subscription = instance.subscription
        if subscription is None:
            return {
                "plan": None,
                "stationLimit": DEFAULT_STATION_LIMIT,
                "stationsUsed": count_active_stations(self.db, instance_id),
            }
        return {
            "plan": {"id": subscription.plan.id, "name": subscription.plan.name, "slug": subscription.plan.slug},
            "stationLimit": subscription.station_limit,
            "stationsUsed": count_active_stations(self.db, instance_id),
            "monthlyPrice": subscription.monthly_price,
            "status": subscription.status,
            "isTrial": subscription.is_trial,
            "trialExpiresAt": subscription.trial_expires_at,
            "startsAt": subscription.starts_at,
            "endsAt": subscription.ends_at,
        }

    # SMS quota

    def sms_usage_all(self) -> list[dict]:
        instances = self.db.query(Instance).filter(Instance.deleted_at.is_(None)).order_by(Instance.name).all()
        return [get_sms_usage(i) for i in instances]

    def reset_sms_usage(self, instance_id: int) -> dict:
        instance = self.get_instance(instance_id)
        instance.sms_used = 0
        self.db.commit()
        logger.info(f"🔄 SMS usage reset for instance {instance.slug}")
        return get_sms_usage(instance)

    # Feature toggles

    def list_features(self, instance_id: int) -> list[dict]:
        self.get_instance(instance_id)
        keys = list(KNOWN_FEATURES)
        for feature in self.db.query(InstanceFeature).filter(InstanceFeature.instance_id == instance_id):
            if feature.feature_key not in keys:
                keys.append(feature.feature_key)
        result = []
        for key in keys:
            feature = get_feature(self.db, instance_id, key)
            result.append(
                {
                    "key": key,
                    "enabled": is_feature_enabled(self.db, instance_id, key),
                    "overridden": feature is not None,
                    "parameters": feature.parameters if feature else None,
                }
            )
        return result

    def set_feature(self, instance_id: int, feature_key: str, data: FeatureToggle) -> dict:
        self.get_instance(instance_id)
        feature = get_feature(self.db, instance_id, feature_key)
        if feature is None:
            feature = InstanceFeature(instance_id=instance_id, feature_key=feature_key)
            self.db.add(feature)
        feature.enabled = data.enabled
        if data.parameters is not None:
            feature.parameters = data.parameters
        self.db.commit()
        logger.info(f"🚩 Feature {feature_key} {'enabled' if data.enabled else 'disabled'} for instance {instance_id}")
        return {"key": feature_key, "enabled": feature.enabled, "parameters": feature.parameters}

    def clear_feature(self, instance_id: int, feature_key: str) -> dict:
        """Drop the override so the plan decides again"""
        feature = get_feature(self.db, instance_id, feature_key)
        if feature is None:
            raise HTTPException(status_code=404, detail="Feature override not found")
        self.db.delete(feature)
        self.db.commit()
        return {"key": feature_key, "enabled": is_feature_enabled(self.db, instance_id, feature_key)}

    # ------------------------------------------------------------------
    # Instance admin
    # ------------------------------------------------------------------

    def update_settings(self, instance_id: int, data: InstanceSettingsUpdate) -> Instance:
        instance = self.get_instance(instance_id)
        for field, column in SETTINGS_FIELDS.items():
            value = getattr(data, field)
            if value is not None:
                setattr(instance, column, value)
        self.db.commit()
        self.db.refresh(instance)
        return instance

    def set_logo(self, instance_id: int, key: Optional[str]) -> Instance:
        instance = self.get_instance(instance_id)
        instance.logo_url = key
        self.db.commit()
        self.db.refresh(instance)
        return instance
