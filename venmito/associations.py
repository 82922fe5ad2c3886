# venmito/associations.py
"""Child records written alongside a reconciled parent: device links and line items."""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import RECOVERABLE_ERRORS, is_fatal
from .matching import find_item_by_name
from .models import Device, Item, Person, PersonDevice, Transaction, TransactionItem
from .records import LineItem

logger = logging.getLogger(__name__)


def _link_device(session: Session, person: Person, device: Device) -> bool:
    """Insert the person/device link; an existing link is not an error."""
    exists = session.scalar(
        select(PersonDevice.id).where(
            PersonDevice.person_id == person.id,
            PersonDevice.device_id == device.id,
        )
    )
    if exists is not None:
        return False
    try:
        with session.begin_nested():
            session.add(PersonDevice(person_id=person.id, device_id=device.id))
            session.flush()
    except IntegrityError:
        logger.debug("Link person=%s device=%s already present", person.id, device.id)
        return False
    return True


def sync_person_devices(session: Session, person: Person, device_names: Iterable[str]) -> List[str]:
    """
    Replace the person's device links with `device_names`.

    Devices the person was already linked to are reused by name, everything
    else gets a fresh `devices` row. Devices are not shared between people.
    Returns the names that ended up linked, in input order.
    """
    reusable: Dict[str, Device] = {
        d.device_name: d
        for d in session.scalars(
            select(Device).join(PersonDevice, PersonDevice.device_id == Device.id)
            .where(PersonDevice.person_id == person.id)
            .order_by(Device.id)
        )
    }
    session.execute(delete(PersonDevice).where(PersonDevice.person_id == person.id))

    linked: List[str] = []
    for name in device_names:
        try:
            with session.begin_nested():
                device = reusable.get(name)
                if device is None:
                    device = Device(device_name=name)
                    session.add(device)
                    session.flush()
                    reusable[name] = device
                if _link_device(session, person, device) and name not in linked:
                    linked.append(name)
        except RECOVERABLE_ERRORS as exc:
            if is_fatal(exc):
                raise
            logger.warning("Could not link device %r to %s: %s", name, person.email or person.id, exc)
    return linked


def _resolve_item(session: Session, line: LineItem) -> Item:
    item = find_item_by_name(session, line.name)
    if item is None:
        item = Item(name=line.name, default_price=line.price_per_item)
        session.add(item)
        session.flush()
    return item


def attach_transaction_items(session: Session, transaction: Transaction, lines: Iterable[LineItem]) -> int:
    """
    Write one transaction_items row per line. The first failing line stops
    the loop; the header and the lines written so far are kept.
    """
    lines = list(lines)
    attached = 0
    try:
        for line in lines:
            with session.begin_nested():
                item = _resolve_item(session, line)
                session.add(TransactionItem(
                    transaction_id=transaction.id,
                    item_id=item.id,
                    quantity=line.quantity,
                    price_per_item=line.price_per_item,
                    total_price=line.line_total,
                ))
                session.flush()
            attached += 1
    except RECOVERABLE_ERRORS as exc:
        if is_fatal(exc):
            raise
        logger.warning(
            "Stopped attaching items to transaction %s after %d of %d lines: %s",
            transaction.external_id or transaction.id, attached, len(lines), exc,
        )
    return attached
