from __future__ import annotations

import json
import os
import re
from typing import Any, Iterable

from flask import g, has_request_context
from sqlalchemy import func, inspect as sa_inspect, select, update

from models import AuditLog, IdCounter
from utils import AuthContext, redact_for_audit


def actor_id(auth: AuthContext | None) -> str:
    if not auth:
        return "SYSTEM"
    return str(auth.userId or auth.email or "SYSTEM")


def _correlation_id() -> str:
    if not has_request_context():
        return ""
    return str(getattr(g, "request_id", "") or "")


def append_audit(
    db,
    *,
    entityType: str,
    entityId: str,
    action: str,
    fromState: str = "",
    toState: str = "",
    stageTag: str = "",
    remark: str = "",
    actor: AuthContext | None = None,
    at: str,
    organizationId: str = "",
    meta: dict[str, Any] | None = None,
) -> None:
    db.add(
        AuditLog(
            logId=f"LOG-{os.urandom(16).hex()}",
            organizationId=str(organizationId or (actor.organizationId if actor else "") or ""),
            entityType=str(entityType or ""),
            entityId=str(entityId or ""),
            action=str(action or ""),
            fromState=str(fromState or ""),
            toState=str(toState or ""),
            stageTag=str(stageTag or ""),
            remark=str(remark or ""),
            actorUserId=actor_id(actor),
            actorRole=str(actor.role if actor else "SYSTEM"),
            actorEmail=str((actor.email if actor else "") or ""),
            at=at,
            correlationId=_correlation_id(),
            metaJson=json.dumps(redact_for_audit(meta or {}), default=str),
        )
    )


def compare_and_set_status(db, row, *, expected: Iterable[str], values: dict[str, Any]) -> bool:
    """
    Conditional UPDATE: applies ``values`` only while status is one of ``expected``.

    Returns False when another writer moved the row first. On success ``row`` is
    refreshed, so set every changed column through ``values``.
    """
    mapper = sa_inspect(row).mapper
    model = mapper.class_
    pk_column = mapper.primary_key[0]
    pk_value = sa_inspect(row).identity[0]
    stmt = (
        update(model)
        .where(pk_column == pk_value)
        .where(model.status.in_(sorted(set(expected))))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    res = db.execute(stmt)
    if int(res.rowcount or 0) != 1:
        return False
    db.refresh(row)
    return True


def next_prefixed_id(
    db,
    *,
    counter_key: str,
    prefix: str,
    pad: int,
    existing_ids: Iterable[str] | None = None,
) -> str:
    row = db.execute(select(IdCounter).where(IdCounter.key == counter_key)).scalar_one_or_none()
    if not row:
        start = 1
        rx = re.compile("^" + re.escape(prefix) + r"(\d+)$")
        for eid in existing_ids or []:
            m = rx.match(str(eid or ""))
            if m:
                start = max(start, int(m.group(1)) + 1)
        row = IdCounter(key=counter_key, nextValue=start)
        db.add(row)
        db.flush()

    n = int(row.nextValue or 1)
    row.nextValue = n + 1
    return f"{prefix}{str(n).zfill(pad)}"


def paginate(db, query, count_query, *, page: int, limit: int) -> tuple[list[Any], int]:
    total = int(db.execute(select(func.count()).select_from(count_query.subquery())).scalar() or 0)
    rows = db.execute(query.offset((page - 1) * limit).limit(limit)).scalars().all()
    return list(rows), total
