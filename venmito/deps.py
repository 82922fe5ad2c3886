# venmito/deps.py
"""FastAPI dependencies reading the resources created in the app lifespan."""
from __future__ import annotations

from typing import Iterator, Optional

from fastapi import Request
from redis import Redis
from sqlalchemy.orm import Session

from .db import Database
from .settings import Settings


def get_database(request: Request) -> Database:
    return request.app.state.db


def get_db(request: Request) -> Iterator[Session]:
    db = request.app.state.db.session()
    try:
        yield db
    finally:
        db.close()


def get_cache(request: Request) -> Optional[Redis]:
    return request.app.state.cache


def get_settings(request: Request) -> Settings:
    return request.app.state.settings
