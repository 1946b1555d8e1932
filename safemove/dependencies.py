# safemove/dependencies.py

from functools import lru_cache

from safemove.config import Settings, get_settings
from safemove.db import SessionLocal
from safemove.notifications import build_dispatcher
from safemove.timer import utcnow


# Helper to get DB session: one pooled connection per request, always released
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@lru_cache()
def get_app_settings() -> Settings:
    return get_settings()


@lru_cache()
def _cached_dispatcher():
    return build_dispatcher(get_app_settings())


def get_dispatcher():
    """Messaging provider picked from the environment (WhatsApp, e-mail or log)."""
    return _cached_dispatcher()


def get_clock():
    """Wall clock used by every lifecycle call; tests override it to move time."""
    return utcnow
