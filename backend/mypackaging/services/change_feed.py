# Overview: In-process change notifications for ledger collections, delivered after commit.

"""
Change feed

Readers (dashboards, reports, the hutang view) subscribe to a collection
and receive a CollectionChange for every committed write to it. Engines only
enqueue changes; nothing is delivered until the surrounding transaction
commits, and a rollback discards the queue, so subscribers never observe a
write that did not happen.

Subscribers run synchronously after commit and must not touch the session.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable

from sqlalchemy import event
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

COLLECTIONS = (
    "products",
    "sales",
    "payments",
    "purchases",
    "supplier_returns",
    "shop_uses",
    "stock_transfers",
    "stock_audits",
    "audit_logs",
)

_PENDING_CHANGES_KEY = "mypackaging.pending_changes"
_PENDING_CALLBACKS_KEY = "mypackaging.after_commit"


@dataclass(frozen=True)
class CollectionChange:
    collection: str
    change: str  # created | updated | deleted
    entity_id: int | None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class _Subscription:
    collection: str
    callback: Callable[[CollectionChange], None]
    predicate: Callable[[CollectionChange], bool] | None = None


_subscriptions: list[_Subscription] = []
_lock = threading.Lock()
_installed = False


def subscribe(
    collection: str,
    callback: Callable[[CollectionChange], None],
    predicate: Callable[[CollectionChange], bool] | None = None,
) -> Callable[[], None]:
    """
    Register `callback` for committed changes to `collection`.

    `predicate` filters changes (e.g. only Hutang sales). Returns a function
    that removes the subscription.
    """
    if collection not in COLLECTIONS:
        raise ValueError(f"unknown collection: {collection}")

    sub = _Subscription(collection=collection, callback=callback, predicate=predicate)
    with _lock:
        _subscriptions.append(sub)

    def unsubscribe() -> None:
        with _lock:
            if sub in _subscriptions:
                _subscriptions.remove(sub)

    return unsubscribe


def record_change(collection: str, change: str, entity_id: int | None, data: dict | None = None) -> None:
    """Queue a change on the current session; delivered after commit."""
    from ..extensions import db

    session = db.session()
    session.info.setdefault(_PENDING_CHANGES_KEY, []).append(
        CollectionChange(collection=collection, change=change, entity_id=entity_id, data=data or {})
    )


def after_commit(callback: Callable[[], None]) -> None:
    """Run `callback` once the current transaction commits; dropped on rollback."""
    from ..extensions import db

    session = db.session()
    session.info.setdefault(_PENDING_CALLBACKS_KEY, []).append(callback)


def _dispatch(session: Session) -> None:
    changes = session.info.pop(_PENDING_CHANGES_KEY, [])
    callbacks = session.info.pop(_PENDING_CALLBACKS_KEY, [])

    for callback in callbacks:
        try:
            callback()
        except Exception:
            logger.exception("after-commit callback failed")

    if not changes:
        return

    with _lock:
        subscriptions = list(_subscriptions)

    for change in changes:
        for sub in subscriptions:
            if sub.collection != change.collection:
                continue
            if sub.predicate is not None and not sub.predicate(change):
                continue
            try:
                sub.callback(change)
            except Exception:
                logger.exception("change subscriber for %s failed", change.collection)


def _discard(session: Session) -> None:
    session.info.pop(_PENDING_CHANGES_KEY, None)
    session.info.pop(_PENDING_CALLBACKS_KEY, None)


def install() -> None:
    """Hook delivery into every SQLAlchemy session. Safe to call repeatedly."""
    global _installed
    if _installed:
        return
    event.listen(Session, "after_commit", _dispatch)
    event.listen(Session, "after_rollback", _discard)
    _installed = True


def clear_subscriptions() -> None:
    with _lock:
        _subscriptions.clear()
