"""Offer repository - Database operations for offers"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Offer, OfferView


class OfferRepository:
    """Repository for offer database operations"""

    @staticmethod
    def get_offers(db: Session, instance_id: int, status: Optional[str] = None) -> list[Offer]:
        query = db.query(Offer).filter(Offer.instance_id == instance_id)
        if status:
            query = query.filter(Offer.status == status)
        return query.order_by(Offer.created_at.desc(), Offer.id.desc()).all()

    @staticmethod
    def get_offer_by_id(db: Session, instance_id: int, offer_id: int) -> Optional[Offer]:
        return db.query(Offer).filter(Offer.id == offer_id, Offer.instance_id == instance_id).first()

    @staticmethod
    def get_offer_by_token(db: Session, token: str) -> Optional[Offer]:
        return db.query(Offer).filter(Offer.public_token == token).first()

    @staticmethod
    def numbers_with_suffix(db: Session, instance_id: int, suffix: str) -> list[str]:
        """Offer numbers of the instance ending with e.g. '/03/2025'"""
        rows = (
            db.query(Offer.offer_number)
            .filter(Offer.instance_id == instance_id, Offer.offer_number.like(f"%{suffix}"))
            .all()
        )
        return [row[0] for row in rows]

    @staticmethod
    def add_view(db: Session, offer: Offer, user_agent: Optional[str], duration_seconds: Optional[int]) -> OfferView:
        view = OfferView(offer_id=offer.id, user_agent=(user_agent or "")[:500] or None, duration_seconds=duration_seconds)
        db.add(view)
        return view

    @staticmethod
    def count_views(db: Session, offer_id: int) -> int:
        return db.query(OfferView).filter(OfferView.offer_id == offer_id).count()
