# /odontoclinic/utils/request_util.py
from datetime import datetime, date, time

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def get_pagination(args):
    """Reads ``page``/``limit`` query parameters, clamped to sane bounds."""
    page = args.get('page', 1, type=int) or 1
    limit = args.get('limit', DEFAULT_PAGE_SIZE, type=int) or DEFAULT_PAGE_SIZE
    return max(page, 1), min(max(limit, 1), MAX_PAGE_SIZE)


def paginate(query, page, limit):
    """Runs a paginated query and returns ``(items, total, total_pages)``."""
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    total_pages = (total + limit - 1) // limit if total else 0
    return items, total, total_pages


def parse_date(value):
    """'YYYY-MM-DD' -> date. Raises ValueError on bad input."""
    if isinstance(value, date):
        return value
    return datetime.strptime(value, '%Y-%m-%d').date()


def parse_time(value):
    """'HH:MM' -> time. Raises ValueError on bad input."""
    if isinstance(value, time):
        return value
    return datetime.strptime(value, '%H:%M').time()


def parse_bool(value):
    if value is None:
        return None
    return str(value).lower() in ('1', 'true', 'yes')


def missing_fields(data, required):
    return [field for field in required if data.get(field) in (None, '')]


def text_value(value):
    """Normalises a JSON scalar for a text column. Raises ValueError for objects and lists."""
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    raise ValueError('expected a string')
