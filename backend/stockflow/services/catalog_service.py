# Overview: Catalog lookups and creation for products, suppliers and customers.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, Supplier, Customer
from ..errors import NotFound, ValidationError
from .concurrency import lock_for_update, run_with_retry


def get_product_in_org(
    org_id: int,
    product_id: int,
    *,
    require_active: bool = False,
    lock: bool = False,
) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    # Products of another org are reported exactly like missing ones
    if product is None or product.org_id != org_id:
        raise NotFound(f"product {product_id} not found")
    if require_active and not product.is_active:
        raise ValidationError(f"product {product.sku} is inactive")
    return product


def get_supplier_in_org(org_id: int, supplier_id: int) -> Supplier:
    supplier = db.session.get(Supplier, supplier_id)
    if supplier is None or supplier.org_id != org_id:
        raise NotFound(f"supplier {supplier_id} not found")
    return supplier


def get_customer_in_org(org_id: int, customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None or customer.org_id != org_id:
        raise NotFound(f"customer {customer_id} not found")
    return customer


def list_products(org_id: int, *, include_inactive: bool = False) -> list[Product]:
    q = db.session.query(Product).filter(Product.org_id == org_id)
    if not include_inactive:
        q = q.filter(Product.is_active.is_(True))
    return q.order_by(Product.name.asc(), Product.id.asc()).all()


def create_product(
    *,
    org_id: int,
    sku: str,
    name: str,
    price_cents: int = 0,
    cost_cents: int = 0,
    category: str | None = None,
    image_url: str | None = None,
) -> Product:
    sku = (sku or "").strip()
    name = (name or "").strip()
    if not sku:
        raise ValidationError("sku is required")
    if not name:
        raise ValidationError("name is required")
    if price_cents < 0 or cost_cents < 0:
        raise ValidationError("price and cost cannot be negative")

    def _op():
        product = Product(
            org_id=org_id,
            sku=sku,
            name=name,
            price_cents=price_cents,
            cost_cents=cost_cents,
            category=category,
            image_url=image_url,
        )
        db.session.add(product)
        try:
            db.session.flush()
        except IntegrityError:
            raise ValidationError(f"sku {sku} already exists")
        db.session.commit()
        return product

    return run_with_retry(_op)


def list_suppliers(org_id: int) -> list[Supplier]:
    return db.session.query(Supplier).filter_by(org_id=org_id).order_by(Supplier.name.asc()).all()


def create_supplier(*, org_id: int, name: str, contact_name=None, phone=None, email=None) -> Supplier:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    supplier = Supplier(org_id=org_id, name=name, contact_name=contact_name, phone=phone, email=email)
    db.session.add(supplier)
    db.session.commit()
    return supplier


def list_customers(org_id: int) -> list[Customer]:
    return db.session.query(Customer).filter_by(org_id=org_id).order_by(Customer.name.asc()).all()


def create_customer(*, org_id: int, name: str, phone=None, email=None) -> Customer:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    customer = Customer(org_id=org_id, name=name, phone=phone, email=email)
    db.session.add(customer)
    db.session.commit()
    return customer
