"""
Plan limits: stations per subscription, SMS quota and feature flags.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from .models import Instance, InstanceFeature, InstanceSubscription, Station

logger = logging.getLogger(__name__)

# Used when an instance has no subscription row yet
DEFAULT_STATION_LIMIT = 2


def get_station_limit(db: Session, instance_id: int) -> int:
    subscription = (
        db.query(InstanceSubscription).filter(InstanceSubscription.instance_id == instance_id).first()
    )
    if not subscription:
        return DEFAULT_STATION_LIMIT
    return subscription.station_limit


def count_active_stations(db: Session, instance_id: int) -> int:
    return (
        db.query(Station)
        .filter(Station.instance_id == instance_id, Station.active.is_(True))
        .count()
    )


def can_add_station(db: Session, instance_id: int) -> tuple:
    """
    Check if the instance can have another active station.
    Returns (can_add, error_message).
    """
    limit = get_station_limit(db, instance_id)
    current = count_active_stations(db, instance_id)
    if current < limit:
        return (True, None)
    return (
        False,
        f"Station limit reached ({current}/{limit}). Upgrade your plan to add more stations.",
    )


def check_sms_available(db: Session, instance_id: int) -> bool:
    """True while the instance has SMS quota left"""
    instance = db.query(Instance).filter(Instance.id == instance_id).first()
    if not instance:
        return False
    return instance.sms_used < instance.sms_limit


def increment_sms_usage(db: Session, instance_id: int) -> None:
    """Count one sent SMS against the instance quota. Caller commits."""
    instance = db.query(Instance).filter(Instance.id == instance_id).first()
    if instance:
        instance.sms_used = (instance.sms_used or 0) + 1


def get_sms_usage(instance: Instance) -> dict:
    return {
        "instanceId": instance.id,
        "instanceName": instance.name,
        "used": instance.sms_used,
        "limit": instance.sms_limit,
        "remaining": max(0, instance.sms_limit - instance.sms_used),
    }


def get_feature(db: Session, instance_id: int, feature_key: str) -> Optional[InstanceFeature]:
    return (
        db.query(InstanceFeature)
        .filter(InstanceFeature.instance_id == instance_id, InstanceFeature.feature_key == feature_key)
        .first()
    )


def is_feature_enabled(db: Session, instance_id: int, feature_key: str) -> bool:
    """
    An explicit instance toggle wins; otherwise the feature is enabled when the
    subscribed plan includes it.
    """
    feature = get_feature(db, instance_id, feature_key)
    if feature is not None:
        return bool(feature.enabled)

    subscription = (
        db.query(InstanceSubscription).filter(InstanceSubscription.instance_id == instance_id).first()
    )
    if subscription and subscription.plan:
        return feature_key in (subscription.plan.included_features or [])
    return False
