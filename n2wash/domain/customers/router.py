"""Customer router"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import require_instance_role
from ...database import get_db
from ...models import User
from .schemas import CustomerCreate, CustomerDetail, CustomerResponse, CustomerUpdate
from .service import MAX_PAGE_SIZE, CustomerService

router = APIRouter(prefix="/instances/{instance_id}/customers", tags=["Customers"])

staff = require_instance_role("admin", "employee")


def get_customer_service(db: Session = Depends(get_db)) -> CustomerService:
    return CustomerService(db)


@router.get("", response_model=list[CustomerResponse])
async def list_customers(
    instance_id: int,
    search: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
    current_user: User = Depends(staff),
    service: CustomerService = Depends(get_customer_service),
):
    """Customer book, optionally filtered by name, e-mail or phone digits"""
    return service.list_customers(instance_id, search, limit)


@router.post("", response_model=CustomerResponse, status_code=201)
async def create_customer(
    instance_id: int,
    data: CustomerCreate,
    current_user: User = Depends(staff),
    service: CustomerService = Depends(get_customer_service),
):
    return service.create_customer(instance_id, data)


@router.get("/{customer_id}", response_model=CustomerDetail)
async def get_customer(
    instance_id: int,
    customer_id: int,
    current_user: User = Depends(staff),
    service: CustomerService = Depends(get_customer_service),
):
    return service.get_customer_detail(instance_id, customer_id)


@router.put("/{customer_id}", response_model=CustomerResponse)
async def update_customer(
    instance_id: int,
    customer_id: int,
    data: CustomerUpdate,
    current_user: User = Depends(staff),
    service: CustomerService = Depends(get_customer_service),
):
    return service.update_customer(instance_id, customer_id, data)
