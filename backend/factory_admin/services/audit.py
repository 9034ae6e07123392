from __future__ import annotations
from typing import Any, Dict, Optional
from flask import g, has_request_context
from factory_admin import get_db
from factory_admin.models.audit import AuditLog


def _request_session():
    if not has_request_context():
        return None
    return g.get('auth_session')


def add_audit(
    action: str,
    entity: Optional[str] = None,
    entity_id: Optional[Any] = None,
    meta: Optional[Dict[str, Any]] = None,
    actor_user_id: Optional[int] = None,
):
    """Stage an audit log entry in the current DB session.

    Parameters:
      action: short action code e.g. ROLE.CREATE, ROLE.PERMISSION.ADD, AUTH.LOGIN
      entity: optional entity name (Role, Permission, User)
      entity_id: optional primary key, stored as string
      meta: additional JSON-safe dictionary (shallow copied)
      actor_user_id: explicit actor; defaults to the authenticated user of the request

    The caller commits.
    """
    session = _request_session()
    role_name = None
    if session is not None:
        role_name = session.role_name
        if actor_user_id is None:
            actor_user_id = session.user.id
    log = AuditLog(
        actor_user_id=actor_user_id or 0,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        role_snapshot=role_name,
        meta=dict(meta or {}),
    )
    get_db().add(log)
    return log
