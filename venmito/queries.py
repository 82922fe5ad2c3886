# venmito/queries.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from .models import Person, PersonDevice, Promotion, Transaction, TransactionItem, Transfer


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _money(value) -> float:
    return float(value or 0.0)


def _person_ref(person: Optional[Person]) -> Optional[Dict[str, Any]]:
    if person is None:
        return None
    return {"id": person.id, "identifier": person.identifier, "name": person.full_name}


def q_people(session: Session) -> List[Dict[str, Any]]:
    """
    People with their linked device names.
    """
    stmt = (
        select(Person)
        .options(selectinload(Person.device_links).selectinload(PersonDevice.device))
        .order_by(Person.id)
    )
    return [
        {
            "id": p.id,
            "identifier": p.identifier,
            "first_name": p.first_name,
            "last_name": p.last_name,
            "email": p.email,
            "telephone": p.telephone,
            "city": p.city,
            "country": p.country,
            "dob": _iso(p.dob),
            "devices": [link.device.device_name for link in sorted(p.device_links, key=lambda l: l.id)],
        }
        for p in session.scalars(stmt)
    ]


def q_promotions(session: Session) -> List[Dict[str, Any]]:
    stmt = select(Promotion).options(selectinload(Promotion.person)).order_by(Promotion.id)
    return [
        {
            "id": promo.id,
            "person_id": promo.person_id,
            "promotion": promo.promotion,
            "responded": bool(promo.responded),
            "promotion_date": _iso(promo.promotion_date),
            "person": _person_ref(promo.person),
            "email": promo.person.email if promo.person else None,
            "telephone": promo.person.telephone if promo.person else None,
        }
        for promo in session.scalars(stmt)
    ]


def q_transfers(session: Session) -> List[Dict[str, Any]]:
    stmt = (
        select(Transfer)
        .options(selectinload(Transfer.sender), selectinload(Transfer.recipient))
        .order_by(Transfer.date, Transfer.id)
    )
    return [
        {
            "id": t.id,
            "amount": _money(t.amount),
            "date": _iso(t.date),
            "sender": _person_ref(t.sender),
            "recipient": _person_ref(t.recipient),
        }
        for t in session.scalars(stmt)
    ]


def q_transactions(session: Session) -> List[Dict[str, Any]]:
    """
    Transactions with their buyer and line items, newest first.
    """
    stmt = (
        select(Transaction)
        .options(
            selectinload(Transaction.person),
            selectinload(Transaction.lines).selectinload(TransactionItem.item),
        )
        .order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
    )
    return [
        {
            "id": t.id,
            "external_id": t.external_id,
            "person_id": t.person_id,
            "person": _person_ref(t.person),
            "phone": t.phone,
            "store": t.store,
            "transaction_date": _iso(t.transaction_date),
            "total_amount": _money(t.total_amount),
            "items": [
                {
                    "item_name": line.item.name,
                    "quantity": int(line.quantity),
                    "price_per_item": _money(line.price_per_item),
                    "total_price": _money(line.total_price),
                }
                for line in sorted(t.lines, key=lambda l: l.id)
            ],
        }
        for t in session.scalars(stmt)
    ]
