"""Audit logging decorator for mutating route handlers.

Usage:

@audit_log('ROLE.CREATE', entity='Role', entity_id_key='id', meta_keys=['name'])
def create_role():
    ... return {'success': True, 'data': role_json(role)}, 201

@audit_log('ROLE.UPDATE', entity='Role', entity_id_arg='role_id',
           diff_keys=['display_name', 'priority'], pre_fetch=_role_snapshot)
def update_role(role_id): ...

Parameters:
  action: audit action code (e.g. ROLE.CREATE)
  entity: optional entity label (Role, Permission, User)
  entity_id_key: key in the returned record whose value becomes entity_id
  entity_id_arg: view argument used for entity_id when the record lacks the key
  meta_keys: keys projected from the returned record into meta
  meta_builder: callable (record, rv, args, kwargs) -> dict; overrides meta_keys
  diff_keys / pre_fetch: record before/after values of the listed keys

The inspected record is ``data`` of a ``{'success': ..., 'data': {...}}`` body,
or the body itself when it has no ``data`` mapping. Failures inside the
decorator are logged and never change the handler's response.
"""

from __future__ import annotations
from functools import wraps
from typing import Any, Callable, Dict, Iterable, Optional
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from factory_admin import get_db
from factory_admin.services.audit import add_audit


def _extract_record(rv: Any):
    body = rv[0] if isinstance(rv, tuple) and rv else rv
    if isinstance(body, dict) and isinstance(body.get('data'), dict):
        return body['data']
    return body


def _diff(before: Dict[str, Any], after: Dict[str, Any], keys: Iterable[str]) -> Dict[str, Any]:
    changes = {}
    for k in keys:
        if k in before and k in after and before[k] != after[k]:
            changes[k] = {'before': before[k], 'after': after[k]}
    return changes


def audit_log(
    action: str,
    *,
    entity: Optional[str] = None,
    entity_id_key: Optional[str] = None,
    entity_id_arg: Optional[str] = None,
    meta_keys: Optional[Iterable[str]] = None,
    meta_builder: Optional[Callable[[dict, Any, tuple, dict], dict]] = None,
    diff_keys: Optional[Iterable[str]] = None,
    pre_fetch: Optional[Callable[[tuple, dict], Dict[str, Any]]] = None,
):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            before = None
            if diff_keys and pre_fetch:
                before = pre_fetch(args, kwargs)
            rv = fn(*args, **kwargs)
            try:
                record = _extract_record(rv)
                if not isinstance(record, dict):
                    record = {}
                entity_id = record.get(entity_id_key) if entity_id_key else None
                if entity_id is None and entity_id_arg:
                    entity_id = kwargs.get(entity_id_arg)
                if meta_builder:
                    meta = meta_builder(record, rv, args, kwargs) or {}
                else:
                    meta = {k: record.get(k) for k in (meta_keys or ()) if k in record}
                if diff_keys and isinstance(before, dict):
                    changes = _diff(before, record, diff_keys)
                    if changes:
                        meta['changes'] = changes
                add_audit(action, entity, entity_id, meta)
                get_db().commit()
            except (SQLAlchemyError, KeyError, TypeError, ValueError):
                # the mutation is already committed; a lost audit row must not turn it into an error
                current_app.logger.warning('Audit entry %s could not be written', action, exc_info=True)
                get_db().rollback()
            return rv
        return wrapper
    return outer


__all__ = ['audit_log']
