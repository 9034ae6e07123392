from __future__ import annotations
from typing import Tuple
from flask import request
from sqlalchemy.orm import Query
from factory_admin.config.pagination import normalize_pagination


def apply_pagination(q: Query) -> Tuple[Query, int, int, int]:
    limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'))
    total = q.order_by(None).count()
    return q.offset(offset).limit(limit), total, limit, offset


def build_list_payload(rows: list, total: int, limit: int, offset: int, **extra):
    payload = {
        'success': True,
        'count': len(rows),
        'data': rows,
        'pagination': {
            'total': total,
            'limit': limit,
            'offset': offset,
            'returned': len(rows)
        }
    }
    payload.update(extra)
    return payload
