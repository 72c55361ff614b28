"""Request body helpers shared by the dispute routes.

Clients send camelCase keys; snake_case is accepted as well.
"""

from chama_disputes.services.errors import InvalidArgument
from chama_disputes.utils.dates import parse_datetime


def field(data, camel, snake=None, default=None):
    """Value under the camelCase key, else the snake_case key, else default."""
    if camel in data:
        return data[camel]
    if snake and snake in data:
        return data[snake]
    return default


def datetime_field(data, camel, snake=None):
    value = field(data, camel, snake)
    try:
        return parse_datetime(value)
    except ValueError:
        raise InvalidArgument(f'{camel} must be an ISO-8601 timestamp')


def int_field(data, camel, snake=None, default=None):
    value = field(data, camel, snake)
    if value is None or value == '':
        return default
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise InvalidArgument(f'{camel} must be an integer')
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidArgument(f'{camel} must be an integer')


def bool_field(data, camel, snake=None, default=False):
    value = field(data, camel, snake, default)
    if isinstance(value, str):
        return value.lower() in ('true', '1', 'yes')
    return bool(value)


def json_body(request):
    data = request.get_json(silent=True)
    if data is None:
        raise InvalidArgument('No data provided')
    if not isinstance(data, dict):
        raise InvalidArgument('Request body must be a JSON object')
    return data
