"""Customer service - the instance's customer book"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import Customer
from .repository import CustomerRepository
from .schemas import CustomerCreate, CustomerDetail, CustomerResponse, CustomerUpdate, CustomerVisit

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 200


class CustomerService:
    def __init__(self, db: Session):
        self.db = db
        self.repo = CustomerRepository()

    def list_customers(self, instance_id: int, search: Optional[str] = None, limit: int = 50) -> list[Customer]:
        search = (search or "").strip() or None
        return self.repo.search(self.db, instance_id, search, min(limit, MAX_PAGE_SIZE))

    def get_customer(self, instance_id: int, customer_id: int) -> Customer:
        customer = self.repo.get_by_id(self.db, instance_id, customer_id)
        if not customer:
            raise HTTPException(status_code=404, detail="Customer not found")
        return customer

    def get_customer_detail(self, instance_id: int, customer_id: int) -> CustomerDetail:
        """Customer card with the visit history matched by phone"""
        customer = self.get_customer(instance_id, customer_id)
        visits = self.repo.visits(self.db, instance_id, customer.phone)
        return CustomerDetail(
            **CustomerResponse.model_validate(customer).model_dump(),
            visits=[CustomerVisit.model_validate(v) for v in visits],
        )

    def _commit(self, customer: Customer) -> Customer:
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise HTTPException(status_code=409, detail="Customer with this phone already exists") from e
        self.db.refresh(customer)
        return customer

    def create_customer(self, instance_id: int, data: CustomerCreate) -> Customer:
        if self.repo.get_by_phone(self.db, instance_id, data.phone):
            raise HTTPException(status_code=409, detail="Customer with this phone already exists")
        customer = Customer(instance_id=instance_id, name=data.name, phone=data.phone, email=data.email)
        self.db.add(customer)
        customer = self._commit(customer)
        logger.info(f"👤 Customer {customer.id} added to instance {instance_id}")
        return customer

    def update_customer(self, instance_id: int, customer_id: int, data: CustomerUpdate) -> Customer:
        customer = self.get_customer(instance_id, customer_id)
        if data.phone is not None and data.phone != customer.phone:
            if self.repo.get_by_phone(self.db, instance_id, data.phone):
                raise HTTPException(status_code=409, detail="Customer with this phone already exists")
            # A new number has not been confirmed by SMS yet
            customer.phone = data.phone
            customer.phone_verified = False
        if data.name is not None:
            customer.name = data.name
        if "email" in data.model_fields_set:
            customer.email = data.email
        return self._commit(customer)
