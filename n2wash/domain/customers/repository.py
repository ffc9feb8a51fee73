"""Customer repository - Database operations for the customer book"""

import re
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models import Customer, Reservation


class CustomerRepository:
    """Repository for customer database operations"""

    @staticmethod
    def search(db: Session, instance_id: int, query: Optional[str], limit: int) -> list[Customer]:
        """Customers whose name or phone contains the query, alphabetically"""
        customers = db.query(Customer).filter(Customer.instance_id == instance_id)
        if query:
            conditions = [Customer.name.ilike(f"%{query}%"), Customer.email.ilike(f"%{query}%")]
            digits = re.sub(r"\D", "", query)
            if digits:
                conditions.append(Customer.phone.contains(digits))
            customers = customers.filter(or_(*conditions))
        return customers.order_by(Customer.name, Customer.id).limit(limit).all()

    @staticmethod
    def get_by_id(db: Session, instance_id: int, customer_id: int) -> Optional[Customer]:
        return db.query(Customer).filter(Customer.id == customer_id, Customer.instance_id == instance_id).first()

    @staticmethod
    def get_by_phone(db: Session, instance_id: int, phone: str) -> Optional[Customer]:
        return db.query(Customer).filter(Customer.instance_id == instance_id, Customer.phone == phone).first()

    @staticmethod
    def visits(db: Session, instance_id: int, phone: str, limit: int = 50) -> list[Reservation]:
        return (
            db.query(Reservation)
            .filter(
                Reservation.instance_id == instance_id,
                Reservation.customer_phone == phone,
                Reservation.status != "change_requested",
            )
            .order_by(Reservation.reservation_date.desc(), Reservation.start_time.desc())
            .limit(limit)
            .all()
        )
