# venmito/dashboard.py
"""
Admin dashboard aggregates.

Each chart is built from the same listings the CRUD endpoints serve, reshaped
with pandas. Results are cached under ``<prefix>:dashboard:<chart>:<limit>``
and dropped whenever an upload or load touches the data.
"""
from __future__ import annotations

import logging
import math
from time import perf_counter
from typing import Any, Callable, Dict, List, Optional, Tuple

import pandas as pd
from fastapi import APIRouter, Depends, HTTPException, Query
from redis import Redis
from sqlalchemy.orm import Session

from .cache import get_json, key, set_json
from .deps import get_cache, get_db, get_settings
from .queries import q_people, q_promotions, q_transactions, q_transfers
from .settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])

DEFAULT_LIMIT = 7
VOLUME_BINS = [-math.inf, 10, 50, 100, math.inf]
VOLUME_LABELS = ["<10", "10-50", "50-100", ">=100"]


def _ms(start: float) -> int:
    return math.ceil((perf_counter() - start) * 1000)


def _wrap(payload: dict, started: float, *, cached: bool | None = None, ttl: int | None = None) -> dict:
    payload.setdefault("elapsed_ms", _ms(started))
    if cached is not None:
        payload["cached"] = cached
    payload["ttl_seconds"] = ttl if ttl is not None else None
    return payload


def _r2(value) -> float:
    return round(float(value or 0.0), 2)


# -------------------------------------------------------
# Builders: listings in, chart payload out
# -------------------------------------------------------

def devices_chart(people: List[Dict[str, Any]]) -> Dict[str, Any]:
    links = pd.DataFrame(
        [{"person_id": p["id"], "device": d} for p in people for d in p.get("devices") or []],
        columns=["person_id", "device"],
    )
    counts = links.groupby("device").size().sort_values(ascending=False, kind="mergesort")
    per_person = links.groupby("person_id").size()
    return {
        "devices": [{"device": name, "count": int(n)} for name, n in counts.items()],
        "stats": {
            "people": len(people),
            "people_with_devices": int(per_person.size),
            "multi_device_people": int((per_person > 1).sum()),
            "avg_devices_per_person": round(len(links) / len(people), 2) if people else 0.0,
        },
    }


def popular_items_chart(transactions: List[Dict[str, Any]], limit: int = DEFAULT_LIMIT) -> Dict[str, Any]:
    lines = pd.DataFrame(
        [line for t in transactions for line in t.get("items") or []],
        columns=["item_name", "quantity", "price_per_item", "total_price"],
    )
    if lines.empty:
        return {"items": []}
    grouped = (
        lines.groupby("item_name")
        .agg(quantity=("quantity", "sum"), lines=("quantity", "size"), revenue=("total_price", "sum"))
        .reset_index()
        .sort_values(["quantity", "item_name"], ascending=[False, True])
        .head(limit)
    )
    return {
        "items": [
            {"item": r.item_name, "quantity": int(r.quantity), "lines": int(r.lines), "revenue": _r2(r.revenue)}
            for r in grouped.itertuples(index=False)
        ]
    }


def transactions_by_store_chart(transactions: List[Dict[str, Any]]) -> Dict[str, Any]:
    df = pd.DataFrame(transactions, columns=["store", "total_amount"])
    if df.empty:
        return {"stores": []}
    grouped = (
        df.groupby("store")
        .agg(n=("total_amount", "size"), total=("total_amount", "sum"))
        .reset_index()
        .sort_values(["n", "store"], ascending=[False, True])
    )
    return {
        "stores": [
            {"store": r.store, "count": int(r.n), "total_amount": _r2(r.total)}
            for r in grouped.itertuples(index=False)
        ]
    }


def transaction_trends_chart(transactions: List[Dict[str, Any]]) -> Dict[str, Any]:
    df = pd.DataFrame(transactions, columns=["transaction_date", "total_amount"])
    if df.empty:
        return {"months": []}
    df["month"] = df["transaction_date"].str[:7]
    grouped = (
        df.groupby("month")
        .agg(n=("total_amount", "size"), amount=("total_amount", "sum"))
        .reset_index()
        .sort_values("month")
    )
    return {
        "months": [
            {"month": r.month, "count": int(r.n), "amount": _r2(r.amount)}
            for r in grouped.itertuples(index=False)
        ]
    }


def transfer_trends_chart(transfers: List[Dict[str, Any]]) -> Dict[str, Any]:
    df = pd.DataFrame(transfers, columns=["date", "amount"])
    if df.empty:
        return {"days": [], "stats": {"total_transfers": 0, "total_amount": 0.0, "avg_amount": 0.0, "max_amount": 0.0}}
    grouped = (
        df.groupby("date")
        .agg(n=("amount", "size"), amount=("amount", "sum"))
        .reset_index()
        .sort_values("date")
    )
    return {
        "days": [
            {"date": r.date, "count": int(r.n), "amount": _r2(r.amount)}
            for r in grouped.itertuples(index=False)
        ],
        "stats": {
            "total_transfers": int(len(df)),
            "total_amount": _r2(df["amount"].sum()),
            "avg_amount": _r2(df["amount"].mean()),
            "max_amount": _r2(df["amount"].max()),
        },
    }


def transfer_volume_chart(transfers: List[Dict[str, Any]]) -> Dict[str, Any]:
    df = pd.DataFrame(transfers, columns=["amount"])
    if df.empty:
        return {"buckets": []}
    df["bucket"] = pd.cut(df["amount"], bins=VOLUME_BINS, labels=VOLUME_LABELS, right=False)
    grouped = df.groupby("bucket", observed=False)["amount"].agg(["size", "sum"])
    return {
        "buckets": [
            {"range": str(label), "count": int(row["size"]), "value": _r2(row["sum"])}
            for label, row in grouped.iterrows()
            if row["size"] > 0
        ]
    }


def transfers_by_user_chart(transfers: List[Dict[str, Any]], limit: int = DEFAULT_LIMIT) -> Dict[str, Any]:
    rows = []
    for t in transfers:
        amount = float(t["amount"])
        for ref, sent in ((t["sender"], True), (t["recipient"], False)):
            rows.append({
                "person_id": ref["id"],
                "name": ref["name"],
                "sent": int(sent),
                "sent_amount": amount if sent else 0.0,
                "received": int(not sent),
                "received_amount": 0.0 if sent else amount,
            })
    df = pd.DataFrame(rows, columns=["person_id", "name", "sent", "sent_amount", "received", "received_amount"])
    if df.empty:
        return {"users": []}
    grouped = df.groupby(["person_id", "name"], as_index=False).sum()
    grouped["activity"] = grouped["sent"] + grouped["received"]
    grouped = grouped.sort_values(["activity", "person_id"], ascending=[False, True]).head(limit)
    return {
        "users": [
            {
                "person_id": int(r.person_id),
                "name": r.name,
                "sent": int(r.sent),
                "received": int(r.received),
                "sent_amount": _r2(r.sent_amount),
                "received_amount": _r2(r.received_amount),
            }
            for r in grouped.itertuples(index=False)
        ]
    }


def promotions_by_company_chart(promotions: List[Dict[str, Any]]) -> Dict[str, Any]:
    df = pd.DataFrame(promotions, columns=["promotion", "responded"])
    if df.empty:
        return {"promotions": [], "response_rate": 0.0}
    df["responded"] = df["responded"].astype(bool)
    grouped = (
        df.groupby("promotion")
        .agg(total=("responded", "size"), responded=("responded", "sum"))
        .reset_index()
        .sort_values(["total", "promotion"], ascending=[False, True])
    )
    return {
        "promotions": [
            {
                "promotion": r.promotion,
                "total": int(r.total),
                "responded": int(r.responded),
                "not_responded": int(r.total - r.responded),
            }
            for r in grouped.itertuples(index=False)
        ],
        "response_rate": round(float(df["responded"].mean()), 4),
    }


# chart name -> (listing query, builder, takes a limit)
CHARTS: Dict[str, Tuple[Callable[[Session], List[Dict[str, Any]]], Callable[..., Dict[str, Any]], bool]] = {
    "devices": (q_people, devices_chart, False),
    "popular-items": (q_transactions, popular_items_chart, True),
    "transactions-by-store": (q_transactions, transactions_by_store_chart, False),
    "transaction-trends": (q_transactions, transaction_trends_chart, False),
    "transfer-trends": (q_transfers, transfer_trends_chart, False),
    "transfer-volume": (q_transfers, transfer_volume_chart, False),
    "transfers-by-user": (q_transfers, transfers_by_user_chart, True),
    "promotions-by-company": (q_promotions, promotions_by_company_chart, False),
}


def build_chart(session: Session, chart: str, limit: int = DEFAULT_LIMIT) -> Dict[str, Any]:
    try:
        query, builder, limited = CHARTS[chart]
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown chart: {chart}") from None
    listing = query(session)
    return builder(listing, limit) if limited else builder(listing)


@router.get("/{chart}")
def dashboard_chart(
    chart: str,
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=100),
    db: Session = Depends(get_db),
    r: Optional[Redis] = Depends(get_cache),
    settings: Settings = Depends(get_settings),
):
    started = perf_counter()
    if chart not in CHARTS:
        raise HTTPException(status_code=404, detail=f"Unknown chart: {chart}")

    ck = key(settings.CACHE_PREFIX, "dashboard", chart, limit)
    cached = get_json(r, ck)
    if cached is not None:
        return _wrap(cached, started, cached=True, ttl=settings.CACHE_TTL_SECONDS)

    payload = build_chart(db, chart, limit)
    set_json(r, ck, payload, ttl=settings.CACHE_TTL_SECONDS)
    logger.info("Built dashboard chart %s in %dms", chart, _ms(started))
    return _wrap(payload, started, cached=False, ttl=settings.CACHE_TTL_SECONDS)
