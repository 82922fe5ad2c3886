# venmito/matching.py
"""
Entity lookups used by the reconcilers.

None of these raise for "not found"; absence is returned as None and the
caller decides whether that means insert or skip.
"""
from __future__ import annotations

from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from .models import Item, Person, Transaction


def find_person_by_email(session: Session, email: Optional[str]) -> Optional[Person]:
    if not email:
        return None
    return session.scalars(select(Person).where(Person.email == email)).first()


def find_person_by_contact(
    session: Session,
    email: Optional[str] = None,
    telephone: Optional[str] = None,
) -> Optional[Person]:
    """
    email OR telephone, lowest id wins. Only the keys that are present take
    part, so a missing email never matches people without one.
    """
    conditions = []
    if email:
        conditions.append(Person.email == email)
    if telephone:
        conditions.append(Person.telephone == telephone)
    if not conditions:
        return None
    stmt = select(Person).where(or_(*conditions)).order_by(Person.id).limit(1)
    return session.scalars(stmt).first()


def find_person_by_identifier(session: Session, identifier: Optional[str]) -> Optional[Person]:
    if not identifier:
        return None
    stmt = select(Person).where(Person.identifier == identifier).order_by(Person.id).limit(1)
    return session.scalars(stmt).first()


def find_person_by_phone(session: Session, phone: Optional[str]) -> Optional[Person]:
    if not phone:
        return None
    stmt = select(Person).where(Person.telephone == phone).order_by(Person.id).limit(1)
    return session.scalars(stmt).first()


def find_transaction_by_external_id(session: Session, external_id: Optional[str]) -> Optional[Transaction]:
    if not external_id:
        return None
    stmt = select(Transaction).where(Transaction.external_id == external_id).limit(1)
    return session.scalars(stmt).first()


def find_item_by_name(session: Session, name: str) -> Optional[Item]:
    return session.scalars(select(Item).where(Item.name == name)).first()
