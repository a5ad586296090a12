# Overview: Service-layer operations for customers; registration and lookup.

from __future__ import annotations

from ..extensions import db
from ..models import Customer
from ..validation import ModelValidationPolicy, ConflictError, NotFoundError, validate_payload
from .branch_scope_service import BranchScope


CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "email", "notes"},
    required_on_create={"name", "phone"},
)


def create_customer(scope: BranchScope, payload: dict) -> Customer:
    """
    Register a customer. The caller's branch (if any) is kept as the home branch.

    Raises:
        ValidationError: Bad payload
        ConflictError: Phone number already registered
    """
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
    if db.session.query(Customer).filter_by(phone=patch["phone"]).first() is not None:
        raise ConflictError(f"A customer with phone {patch['phone']} already exists")

    customer = Customer(branch_id=scope.branch_id, **patch)
    db.session.add(customer)
    db.session.commit()
    return customer


def get_customer(customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id).first()
    if customer is None:
        raise NotFoundError(f"Customer {customer_id} not found")
    return customer


def search_customers(term: str | None = None, limit: int = 50) -> list[Customer]:
    query = db.session.query(Customer)
    if term:
        like = f"%{term.strip()}%"
        query = query.filter((Customer.name.ilike(like)) | (Customer.phone.ilike(like)))
    return query.order_by(Customer.name.asc()).limit(limit).all()
