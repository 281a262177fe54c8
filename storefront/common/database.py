from dataclasses import asdict
from datetime import datetime
from typing import Optional, Dict, Any, List

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from .config import settings
from .db import Base
from .errors import InsufficientStock, PaymentAlreadyExists, ProductNotFound
from ..cart.model import CartItem
from ..inventory.model import Product
from ..orders.model import Order, OrderItem, ORDER_PAID, ORDER_PENDING
from ..payments.model import (
    Payment,
    PAYMENT_EXPIRED,
    PAYMENT_PENDING,
    PAYMENT_PROCESSING,
    PAYMENT_SUCCESS,
)
from ..payments.gateway import load_response


# Async SQLAlchemy engine and session factory
engine = create_async_engine(settings.DB_URL, future=True, echo=False)
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def init_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _product_dict(prod: Product) -> Dict[str, Any]:
    return {
        "id": prod.id,
        "name": prod.name,
        "stock": prod.stock,
        "price": prod.price,
        "image_url": prod.image_url,
        "description": prod.description,
    }


def _item_dict(item: OrderItem, product: Optional[Product] = None) -> Dict[str, Any]:
    data = {
        "id": item.id,
        "order_id": item.order_id,
        "product_id": item.product_id,
        "quantity": item.quantity,
        "price": item.price,
    }
    if product is not None:
        data["product"] = _product_dict(product)
    return data


def _order_dict(order: Order, payment: Optional[Payment] = None) -> Dict[str, Any]:
    data = {
        "id": order.id,
        "user_id": order.user_id,
        "total_amount": order.total_amount,
        "status": order.status,
        "created_at": _iso(order.created_at),
        "items": [_item_dict(i) for i in order.items],
    }
    if payment is not None:
        data["payment"] = _payment_dict(payment)
    return data


def _payment_dict(payment: Payment) -> Dict[str, Any]:
    response = load_response(payment.gateway_response)
    return {
        "id": payment.id,
        "order_id": payment.order_id,
        "amount": payment.amount,
        "method": payment.method,
        "bank": payment.bank,
        "status": payment.status,
        "transaction_id": payment.transaction_id,
        "verification_code": payment.verification_code,
        "gateway_response": asdict(response) if response is not None else None,
        "expires_at": _iso(payment.expires_at),
        "paid_at": _iso(payment.paid_at),
        "created_at": _iso(payment.created_at),
    }


# -- products / stock ledger ------------------------------------------------

async def fetch_product(product_id: int) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        prod = await session.get(Product, product_id)
        if not prod:
            return None
        return _product_dict(prod)


async def fetch_products() -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        res = await session.execute(sa.select(Product).order_by(Product.id))
        return [_product_dict(prod) for prod in res.scalars().all()]


async def search_products(name: str, limit: int = 10) -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        stmt = (
            sa.select(Product)
            .where(Product.name.contains(name, autoescape=True))
            .order_by(Product.name.asc())
            .limit(limit)
        )
        res = await session.execute(stmt)
        return [_product_dict(prod) for prod in res.scalars().all()]


async def create_product(name: str, price: float, stock: int, image_url: Optional[str] = None, description: str = "") -> Dict[str, Any]:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            prod = Product(name=name, price=price, stock=stock, image_url=image_url, description=description)
            session.add(prod)
        return _product_dict(prod)


async def get_product_stock(product_id: int) -> Optional[int]:
    async with AsyncSessionLocal() as session:
        stmt = sa.select(Product.stock).where(Product.id == product_id)
        res = await session.execute(stmt)
        row = res.first()
        return int(row[0]) if row else None


async def _conditional_decrement(session: AsyncSession, product_id: int, quantity: int) -> int:
    """Decrement inside the caller's transaction; returns the new stock level."""
    stmt = (
        sa.update(Product)
        .where(Product.id == product_id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity)
    )
    res = await session.execute(stmt)
    current = (await session.execute(sa.select(Product.stock).where(Product.id == product_id))).scalar()
    if current is None:
        raise ProductNotFound(f"Product {product_id} not found")
    if not res.rowcount:
        raise InsufficientStock(product_id, quantity, available=int(current))
    return int(current)


async def decrement_stock(product_id: int, quantity: int) -> int:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            return await _conditional_decrement(session, product_id, quantity)


async def increment_stock(product_id: int, quantity: int) -> int:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            stmt = (
                sa.update(Product)
                .where(Product.id == product_id)
                .values(stock=Product.stock + quantity)
            )
            res = await session.execute(stmt)
            if not res.rowcount:
                raise ProductNotFound(f"Product {product_id} not found")
            current = (await session.execute(sa.select(Product.stock).where(Product.id == product_id))).scalar()
        return int(current)


# -- orders ------------------------------------------------------------------

async def create_order_with_items(user_id: int, items: List[Dict[str, Any]], total_amount: float) -> Dict[str, Any]:
    """
    Insert the order with its items and decrement stock for every item in a
    single transaction. Any failing decrement rolls the whole order back.
    """
    async with AsyncSessionLocal() as session:
        async with session.begin():
            order = Order(
                user_id=user_id,
                total_amount=total_amount,
                status=ORDER_PENDING,
                items=[
                    OrderItem(product_id=i["product_id"], quantity=i["quantity"], price=i["price"])
                    for i in items
                ],
            )
            session.add(order)
            await session.flush()  # assign PKs
            for item in items:
                await _conditional_decrement(session, item["product_id"], item["quantity"])
        return _order_dict(order)


async def fetch_order(order_id: int) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        order = await session.get(Order, order_id)
        if not order:
            return None
        payment = (await session.execute(sa.select(Payment).where(Payment.order_id == order_id))).scalar_one_or_none()
        return _order_dict(order, payment)


async def fetch_order_with_products(order_id: int) -> Optional[Dict[str, Any]]:
    """Order and its items, each item carrying its current product record."""
    async with AsyncSessionLocal() as session:
        order = await session.get(Order, order_id)
        if not order:
            return None
        ids = {item.product_id for item in order.items}
        res = await session.execute(sa.select(Product).where(Product.id.in_(ids)))
        products = {prod.id: prod for prod in res.scalars().all()}
        data = _order_dict(order)
        data["items"] = [_item_dict(item, products.get(item.product_id)) for item in order.items]
        return data


async def fetch_orders(user_id: Optional[int] = None) -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        stmt = (
            sa.select(Order, Payment)
            .outerjoin(Payment, Payment.order_id == Order.id)
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        if user_id is not None:
            stmt = stmt.where(Order.user_id == user_id)
        res = await session.execute(stmt)
        return [_order_dict(order, payment) for order, payment in res.all()]


async def update_order_status(order_id: int, status: str, expected: Optional[str] = None) -> bool:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            stmt = sa.update(Order).where(Order.id == order_id)
            if expected is not None:
                stmt = stmt.where(Order.status == expected)
            res = await session.execute(stmt.values(status=status))
            return bool(res.rowcount)


# -- payments ----------------------------------------------------------------

async def claim_payment(order_id: int, amount: float, method: str, bank: Optional[str]) -> Dict[str, Any]:
    """Insert the order's single payment row; the unique order_id settles races."""
    try:
        async with AsyncSessionLocal() as session:
            async with session.begin():
                payment = Payment(order_id=order_id, amount=amount, method=method, bank=bank, status=PAYMENT_PENDING)
                session.add(payment)
    except IntegrityError:
        raise PaymentAlreadyExists(f"A payment already exists for order {order_id}")
    return _payment_dict(payment)


async def update_payment(payment_id: int, **fields: Any) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            # write first so SQLite takes the write lock before any read
            res = await session.execute(sa.update(Payment).where(Payment.id == payment_id).values(**fields))
            if not res.rowcount:
                return None
            payment = (await session.execute(sa.select(Payment).where(Payment.id == payment_id))).scalar_one()
        return _payment_dict(payment)


async def find_payment_by_transaction_id(transaction_id: str) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        stmt = sa.select(Payment).where(Payment.transaction_id == transaction_id)
        payment = (await session.execute(stmt)).scalar_one_or_none()
        return _payment_dict(payment) if payment else None


async def find_payment_by_order_id(order_id: int) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        stmt = sa.select(Payment).where(Payment.order_id == order_id)
        payment = (await session.execute(stmt)).scalar_one_or_none()
        return _payment_dict(payment) if payment else None


async def settle_payment(payment_id: int, gateway_response: str, paid_at: datetime) -> bool:
    """Move a processing payment to success and its order to paid in one transaction."""
    async with AsyncSessionLocal() as session:
        async with session.begin():
            stmt = (
                sa.update(Payment)
                .where(
                    Payment.id == payment_id,
                    Payment.status == PAYMENT_PROCESSING,
                    sa.or_(Payment.expires_at.is_(None), Payment.expires_at > paid_at),
                )
                .values(
                    status=PAYMENT_SUCCESS,
                    paid_at=paid_at,
                    verification_code=None,
                    gateway_response=gateway_response,
                )
            )
            res = await session.execute(stmt)
            if not res.rowcount:
                return False
            order_id = (await session.execute(sa.select(Payment.order_id).where(Payment.id == payment_id))).scalar()
            await session.execute(
                sa.update(Order)
                .where(Order.id == order_id, Order.status == ORDER_PENDING)
                .values(status=ORDER_PAID)
            )
        return True


async def expire_payment(payment_id: int) -> bool:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            stmt = (
                sa.update(Payment)
                .where(Payment.id == payment_id, Payment.status == PAYMENT_PROCESSING)
                .values(status=PAYMENT_EXPIRED, verification_code=None)
            )
            res = await session.execute(stmt)
            return bool(res.rowcount)


async def release_payment_claim(payment_id: int) -> bool:
    """Drop a claim the gateway never answered so the order can be paid again."""
    async with AsyncSessionLocal() as session:
        async with session.begin():
            stmt = sa.delete(Payment).where(Payment.id == payment_id, Payment.status == PAYMENT_PENDING)
            res = await session.execute(stmt)
            return bool(res.rowcount)


# -- cart --------------------------------------------------------------------

def _cart_item_dict(item: CartItem, product: Optional[Product] = None) -> Dict[str, Any]:
    data = {
        "id": item.id,
        "user_id": item.user_id,
        "product_id": item.product_id,
        "quantity": item.quantity,
        "created_at": _iso(item.created_at),
    }
    if product is not None:
        data["product"] = _product_dict(product)
    return data


async def _merge_cart_item(user_id: int, product_id: int, quantity: int) -> Dict[str, Any]:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            match = (CartItem.user_id == user_id, CartItem.product_id == product_id)
            res = await session.execute(
                sa.update(CartItem).where(*match).values(quantity=CartItem.quantity + quantity)
            )
            if not res.rowcount:
                session.add(CartItem(user_id=user_id, product_id=product_id, quantity=quantity))
                await session.flush()
            item = (await session.execute(sa.select(CartItem).where(*match))).scalar_one()
        return _cart_item_dict(item)


async def add_cart_item(user_id: int, product_id: int, quantity: int) -> Dict[str, Any]:
    """Add a product to the user's cart, merging into an existing line."""
    try:
        return await _merge_cart_item(user_id, product_id, quantity)
    except IntegrityError:
        # a concurrent add inserted the line first; merge into it
        return await _merge_cart_item(user_id, product_id, quantity)


async def fetch_cart(user_id: int) -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        stmt = (
            sa.select(CartItem, Product)
            .join(Product, Product.id == CartItem.product_id)
            .where(CartItem.user_id == user_id)
            .order_by(CartItem.id)
        )
        res = await session.execute(stmt)
        return [_cart_item_dict(item, prod) for item, prod in res.all()]


async def set_cart_quantity(user_id: int, product_id: int, quantity: int) -> int:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            stmt = (
                sa.update(CartItem)
                .where(CartItem.user_id == user_id, CartItem.product_id == product_id)
                .values(quantity=quantity)
            )
            res = await session.execute(stmt)
            return res.rowcount


async def remove_cart_item(user_id: int, product_id: int) -> int:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            stmt = sa.delete(CartItem).where(CartItem.user_id == user_id, CartItem.product_id == product_id)
            res = await session.execute(stmt)
            return res.rowcount
