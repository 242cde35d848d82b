import json
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from chalicelib.constants.constants import MONEY
from chalicelib.utils.exceptions import ValidationException


def replace_dict_key(item, orig_key, new_key):
    if orig_key in item:
        if new_key not in item:
            item[new_key] = item[orig_key]
        del item[orig_key]


def substitute_keys(dict_to_process: dict, base_keys: dict, opt_dict=None):
    if opt_dict is None:
        opt_dict = {}
    all_keys = {**base_keys, **opt_dict}
    for key, val in all_keys.items():
        if val:
            replace_dict_key(dict_to_process, key, val)
        elif key in dict_to_process.keys():
            dict_to_process.pop(key, None)


def parse_raw_body(chalice_request):
    request_raw_body = chalice_request.raw_body
    if not request_raw_body:
        return {}
    try:
        body = json.loads(request_raw_body)
    except ValueError:
        raise ValidationException('Request body is not a valid JSON document')
    if not isinstance(body, dict):
        raise ValidationException('Request body must be a JSON object')
    return fix_values_from_ui(item=body)


def fix_values_from_ui(item):
    """
    Remove keys with empty or None values and transform float to Decimal
    """
    if item.get('_values_from_ui_strategy') == 'delete_empty':
        list_to_cleanup = ['', None]
    else:
        list_to_cleanup = [None]
    item = cleanup_dict(item, list_to_cleanup)
    item.pop('_values_from_ui_strategy', None)
    result = json.dumps(item)
    return json.loads(result, parse_float=Decimal)


def cleanup_dict(item: dict, list_of_values: list):
    """ Remove None fields in dict with. Supports one nesting.  """

    def sub_clean(sub_item):
        return {
            key: value
            for key, value in sub_item.items()
            if value not in list_of_values
        }

    clean = {}
    for k, v in item.items():
        if isinstance(v, dict):
            nested = sub_clean(v)
            if len(nested.keys()) > 0:
                clean[k] = nested
        elif v not in list_of_values:
            clean[k] = v
    return clean


def to_decimal(value: Any, field: str = 'value', default: Optional[Decimal] = None) -> Optional[Decimal]:
    """
    Money and distance values travel as Decimal, DynamoDB does not accept float
    """
    if value is None:
        return default
    if isinstance(value, bool):
        raise ValidationException(f'{field} must be a number')
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationException(f'{field} must be a number')


def to_money(value: Any) -> Decimal:
    return Decimal(value).quantize(MONEY, rounding=ROUND_HALF_UP)


def to_int(value: Any, field: str = 'value', default: Optional[int] = None) -> Optional[int]:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ValidationException(f'{field} must be an integer')
    try:
        number = Decimal(str(value).strip())
        if number != number.to_integral_value():
            raise ValidationException(f'{field} must be a whole number, got {value}')
        return int(number)
    except (InvalidOperation, ValueError, OverflowError):
        raise ValidationException(f'{field} must be an integer')
