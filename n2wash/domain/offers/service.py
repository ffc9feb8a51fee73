"""
Offer service - priced offers sent to customers as a public link.

Numbering is sequential per instance and calendar month (in the instance
timezone): 1/03/2025, 2/03/2025, ... Totals are kept on the row; the net
total is the sum of quantity x unit net price and the gross adds VAT.
"""

import logging
from datetime import date, datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import Instance, Offer, User
from ...plan_limits import is_feature_enabled
from ...shared.timeutils import to_local, utcnow
from ..notifications.service import notify
from .repository import OfferRepository
from .schemas import OfferCreate, OfferItem, OfferUpdate, PublicOfferResponse

logger = logging.getLogger(__name__)

OFFERS_FEATURE = "offers"
RESPONDABLE_STATUSES = ("sent", "viewed")
LOCKED_STATUSES = ("accepted", "rejected")


def calculate_totals(items: list[dict], vat_rate: float) -> tuple[float, float]:
    """(net, gross) rounded to grosze"""
    net = sum(float(item["quantity"]) * float(item["unit_price_net"]) for item in items)
    net = round(net, 2)
    return net, round(net * (1 + vat_rate / 100), 2)


def next_offer_number(existing: list[str], month: int, year: int) -> str:
    highest = 0
    for number in existing:
        head = number.split("/", 1)[0]
        if head.isdigit():
            highest = max(highest, int(head))
    return f"{highest + 1}/{month:02d}/{year}"


def _item_rows(items: list[OfferItem]) -> list[dict]:
    return [
        {
            "name": item.name,
            "description": item.description,
            "quantity": item.quantity,
            "unit_price_net": item.unitPriceNet,
        }
        for item in items
    ]


class OfferService:
    def __init__(self, db: Session):
        self.db = db
        self.repo = OfferRepository()

    def _require_feature(self, instance_id: int):
        if not is_feature_enabled(self.db, instance_id, OFFERS_FEATURE):
            raise HTTPException(status_code=403, detail="Offers are not enabled for this instance")

    def _expire_if_due(self, offer: Offer, today: Optional[date] = None) -> Offer:
        """Offers past valid_until that were never answered become expired"""
        today = today or utcnow().date()
        if offer.valid_until and offer.valid_until < today and offer.status in ("draft", "sent", "viewed"):
            offer.status = "expired"
            self.db.commit()
            self.db.refresh(offer)
        return offer

    def list_offers(self, instance_id: int, status: Optional[str] = None) -> list[Offer]:
        self._require_feature(instance_id)
        offers = self.repo.get_offers(self.db, instance_id)
        for offer in offers:
            self._expire_if_due(offer)
        if status:
            offers = [o for o in offers if o.status == status]
        return offers

    def get_offer(self, instance_id: int, offer_id: int) -> Offer:
        self._require_feature(instance_id)
        offer = self.repo.get_offer_by_id(self.db, instance_id, offer_id)
        if not offer:
            raise HTTPException(status_code=404, detail="Offer not found")
        return self._expire_if_due(offer)

    def create_offer(self, instance_id: int, data: OfferCreate, user: User) -> Offer:
        self._require_feature(instance_id)
        instance = self.db.query(Instance).filter(Instance.id == instance_id).first()
        local_now = to_local(utcnow(), instance.timezone if instance else None)
        suffix = f"/{local_now.month:02d}/{local_now.year}"

        items = _item_rows(data.items)
        total_net, total_gross = calculate_totals(items, data.vatRate)

        for _ in range(3):
            number = next_offer_number(
                self.repo.numbers_with_suffix(self.db, instance_id, suffix), local_now.month, local_now.year
            )
            offer = Offer(
                instance_id=instance_id,
                offer_number=number,
                customer_data=data.customer.model_dump(),
                vehicle_data=data.vehicle.model_dump() if data.vehicle else None,
                items=items,
                vat_rate=data.vatRate,
                total_net=total_net,
                total_gross=total_gross,
                notes=data.notes,
                payment_terms=data.paymentTerms,
                valid_until=data.validUntil,
                created_by=user.id,
            )
            self.db.add(offer)
            try:
                self.db.commit()
            except IntegrityError:
                # Another offer took the number in the meantime
                self.db.rollback()
                continue
            self.db.refresh(offer)
            logger.info(f"✅ Offer {offer.offer_number} created on instance {instance_id}")
            return offer

        raise HTTPException(status_code=409, detail="Could not allocate an offer number")

    def update_offer(self, instance_id: int, offer_id: int, data: OfferUpdate) -> Offer:
        offer = self.get_offer(instance_id, offer_id)
        if offer.status in LOCKED_STATUSES:
            raise HTTPException(status_code=400, detail=f"Offer is already {offer.status}")

        if data.customer is not None:
            offer.customer_data = data.customer.model_dump()
        if data.vehicle is not None:
            offer.vehicle_data = data.vehicle.model_dump()
        if data.items is not None:
            offer.items = _item_rows(data.items)
        if data.vatRate is not None:
            offer.vat_rate = data.vatRate
        if data.notes is not None:
            offer.notes = data.notes
        if data.paymentTerms is not None:
            offer.payment_terms = data.paymentTerms
        if data.validUntil is not None:
            offer.valid_until = data.validUntil
            if offer.status == "expired" and data.validUntil >= utcnow().date():
                offer.status = "sent" if offer.sent_at else "draft"

        offer.total_net, offer.total_gross = calculate_totals(offer.items or [], offer.vat_rate)
        self.db.commit()
        self.db.refresh(offer)
        return offer

    def mark_sent(self, instance_id: int, offer_id: int) -> Offer:
        offer = self.get_offer(instance_id, offer_id)
        if offer.status not in ("draft", "sent"):
            raise HTTPException(status_code=400, detail=f"Cannot send an offer that is {offer.status}")
        offer.status = "sent"
        offer.sent_at = utcnow()
        self.db.commit()
        self.db.refresh(offer)
        logger.info(f"📤 Offer {offer.offer_number} marked as sent")
        return offer

    def delete_offer(self, instance_id: int, offer_id: int) -> dict:
        offer = self.get_offer(instance_id, offer_id)
        self.db.delete(offer)
        self.db.commit()
        return {"message": "Offer deleted"}

    def get_views(self, instance_id: int, offer_id: int) -> list:
        offer = self.get_offer(instance_id, offer_id)
        return sorted(offer.views, key=lambda v: v.created_at or datetime.min, reverse=True)

    # ------------------------------------------------------------------
    # Public link
    # ------------------------------------------------------------------

    def _get_public(self, token: str) -> Offer:
        offer = self.repo.get_offer_by_token(self.db, token)
        if not offer or offer.status == "draft":
            raise HTTPException(status_code=404, detail="Offer not found")
        return self._expire_if_due(offer)

    async def view_public(self, token: str, user_agent: Optional[str] = None,
                          duration_seconds: Optional[int] = None) -> dict:
        """Record a view; the first view moves a sent offer to viewed and notifies the business"""
        offer = self._get_public(token)
        self.repo.add_view(self.db, offer, user_agent, duration_seconds)

        first_view = offer.viewed_at is None
        if first_view:
            offer.viewed_at = utcnow()
        if offer.status == "sent":
            offer.status = "viewed"
        self.db.commit()
        self.db.refresh(offer)

        if first_view:
            customer = (offer.customer_data or {}).get("name", "")
            await notify(
                self.db,
                offer.instance_id,
                "offer_viewed",
                f"Oferta {offer.offer_number} została otwarta",
                customer,
                entity_type="offer",
                entity_id=offer.id,
            )

        instance = self.db.query(Instance).filter(Instance.id == offer.instance_id).first()
        return {
            "offer": PublicOfferResponse.model_validate(offer).model_dump(mode="json"),
            "instance": {
                "name": instance.name,
                "phone": instance.phone,
                "email": instance.email,
                "address": instance.address,
                "logoKey": instance.logo_url,
            },
        }

    async def respond_public(self, token: str, accept: bool) -> dict:
        offer = self._get_public(token)
        if offer.status not in RESPONDABLE_STATUSES:
            raise HTTPException(status_code=400, detail=f"Offer is {offer.status} and cannot be answered")

        now = utcnow()
        offer.responded_at = now
        if accept:
            offer.status = "accepted"
            offer.approved_at = now
        else:
            offer.status = "rejected"
            offer.rejected_at = now
        self.db.commit()
        self.db.refresh(offer)
        logger.info(f"📨 Offer {offer.offer_number} {offer.status} by customer")

        verb = "zaakceptowana" if accept else "odrzucona"
        await notify(
            self.db,
            offer.instance_id,
            f"offer_{offer.status}",
            f"Oferta {offer.offer_number} {verb}",
            (offer.customer_data or {}).get("name"),
            entity_type="offer",
            entity_id=offer.id,
        )
        return {"success": True, "status": offer.status}
