"""Org-scoped DB context helpers."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import event, text
from sqlalchemy.engine import Connection
from sqlalchemy.orm import Session, SessionTransaction


ORG_CONTEXT_KEY = "current_org_id"

_SET_ORG_SQL = text("SELECT set_config('app.current_org_id', :org_id, true)")


def set_org_context(session: Session, org_id: Optional[str]) -> None:
    """Set org context consumed by PostgreSQL RLS policies.

    The value is transaction-local in PostgreSQL, so it is remembered on the
    session and re-applied at the start of every later transaction.
    """

    session.info[ORG_CONTEXT_KEY] = org_id or ""
    bind = session.get_bind()
    if bind is None or bind.dialect.name != "postgresql":
        return

    session.execute(_SET_ORG_SQL, {"org_id": org_id or ""})


@event.listens_for(Session, "after_begin")
def _restore_org_context(session: Session, transaction: SessionTransaction, connection: Connection) -> None:
    del transaction
    if ORG_CONTEXT_KEY not in session.info or connection.dialect.name != "postgresql":
        return
    connection.execute(_SET_ORG_SQL, {"org_id": session.info[ORG_CONTEXT_KEY]})
