# venmito/registry.py
from __future__ import annotations

from typing import Dict, Type

from .errors import UnknownFamilyError
from .people import PeopleReconciler
from .pipeline import Reconciler
from .promotions import PromotionsReconciler
from .transactions import TransactionsReconciler
from .transfers import TransfersReconciler

RECONCILERS: Dict[str, Type[Reconciler]] = {
    cls.family: cls
    for cls in (PeopleReconciler, PromotionsReconciler, TransfersReconciler, TransactionsReconciler)
}


def get_reconciler(family: str) -> Type[Reconciler]:
    try:
        return RECONCILERS[family]
    except KeyError:
        raise UnknownFamilyError(f"Unknown entity family: {family!r}") from None
