from flask import Blueprint, request

from factory_admin import get_db
from factory_admin.decorators.auth import require_permission
from factory_admin.models.audit import AuditLog
from factory_admin.utils.filters import apply_filters
from factory_admin.utils.listing import apply_pagination, build_list_payload
from factory_admin.utils.serialize import audit_json

audit_bp = Blueprint('audit', __name__)

AUDIT_FILTERS = {
    'actor': {'coerce': int, 'op': lambda q, v: q.filter(AuditLog.actor_user_id == v)},
    'action': {'op': lambda q, v: q.filter(AuditLog.action == v)},
    'entity': {'op': lambda q, v: q.filter(AuditLog.entity == v)},
    'entity_id': {'op': lambda q, v: q.filter(AuditLog.entity_id == str(v))},
}


@audit_bp.get('/logs')
@require_permission('view_audit_logs')
def list_audit_logs():
    q = get_db().query(AuditLog)
    q = apply_filters(q, AUDIT_FILTERS, request.args.to_dict())
    q, total, limit, offset = apply_pagination(q.order_by(AuditLog.id.desc()))
    rows = [audit_json(a) for a in q.all()]
    return build_list_payload(rows, total, limit, offset)
