from factory_admin.errors import ValidationError

DEFAULT_LIMIT = 10
MAX_LIMIT = 100


def normalize_pagination(limit_raw, offset_raw):
    """Coerce raw query args into a bounded (limit, offset) pair."""
    try:
        limit = int(limit_raw) if limit_raw not in (None, '') else DEFAULT_LIMIT
        offset = int(offset_raw) if offset_raw not in (None, '') else 0
    except (TypeError, ValueError):
        raise ValidationError('limit/offset must be int')
    return max(1, min(limit, MAX_LIMIT)), max(0, offset)
