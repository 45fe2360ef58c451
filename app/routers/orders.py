"""
Orders Router - Shipping and order detail for buyers and sellers.
Endpoints: /api/orders/*
"""
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.security import SessionUser, require_user
from app.db.deps import get_db
from app.services import order_service

router = APIRouter(prefix="/api/orders", tags=["orders"])


class ShipIn(BaseModel):
    carrier: Optional[str] = None
    trackingNumber: Optional[str] = None


@router.get("")
def list_orders(
    role: Literal["buyer", "seller"] = "buyer",
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    user: SessionUser = Depends(require_user),
    db: Session = Depends(get_db),
):
    return order_service.list_orders(db, user.sub, role=role, page=page, per_page=per_page)


@router.get("/{order_id}")
def get_order(order_id: str, user: SessionUser = Depends(require_user), db: Session = Depends(get_db)):
    return order_service.get_order_detail(db, order_id, user.sub)


@router.post("/{order_id}/ship")
def ship_order(
    order_id: str,
    payload: ShipIn,
    user: SessionUser = Depends(require_user),
    db: Session = Depends(get_db),
):
    return order_service.ship_order(db, order_id, user.sub, payload.carrier, payload.trackingNumber)
