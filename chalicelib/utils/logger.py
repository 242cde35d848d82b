import json
import os
from copy import deepcopy
from datetime import datetime, date
from decimal import Decimal
from logging import setLoggerClass, Logger, NOTSET, getLogger, StreamHandler, Formatter, DEBUG, INFO, WARNING, \
    ERROR
from uuid import uuid4

from chalice.app import Request

# headers which never reach the logs
SENSITIVE_HEADERS = ('authorization', 'x-signature', 'cookie')


class CustomLogger(Logger):
    """
    Every line carries the short lambda request id and the tenant domain of the current request
    """

    def __init__(self, name, level=NOTSET):
        self.current_request_id = None
        self.current_host = None
        super(CustomLogger, self).__init__(name, level)

    def _log(self, level, msg, args, **kwargs):
        prefix = f'[{self.current_request_id}]'
        if self.current_host:
            prefix = f'{prefix} [{self.current_host}]'
        super(CustomLogger, self)._log(level, f'{prefix} : {msg}', args, **kwargs)


def conf_logger(level):
    setLoggerClass(CustomLogger)
    logger_ = getLogger('deliveryos')
    console_handler = StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(Formatter('%(asctime)s - %(levelname)s - %(message)s'))
    if logger_.hasHandlers():
        logger_.handlers.clear()
    logger_.addHandler(console_handler)
    logger_.setLevel(level)
    return logger_


logger = conf_logger(os.environ.get('LOG_LEVEL', 'DEBUG').upper())


def set_request_id(request: Request):
    """
    Short request id (last block of the lambda request uuid) and the tenant host of the request
    """
    aws_request_id = getattr(getattr(request, 'lambda_context', None), 'aws_request_id', None) or str(uuid4())
    logger.current_request_id = aws_request_id.split('-')[-1]
    logger.current_host = (request.headers or {}).get('host')


def log_request(request: Request):
    request_dict = deepcopy(request.to_dict())
    headers = request_dict.get('headers') or {}
    for header in SENSITIVE_HEADERS:
        headers.pop(header, None)
    logger.info(f"Request: {request_dict.get('method')} {(request_dict.get('context') or {}).get('resourcePath')} "
                f"{json.dumps(request_dict, cls=CustomJSONEncoder)}")
    if headers.get('content-type', '').startswith('application/json'):
        logger.debug(f"Request body: {request.raw_body.decode(errors='replace') if request.raw_body else ''}")


class CustomJSONEncoder(json.JSONEncoder):
    """
    Money and distances come out of DynamoDB as Decimal
    """

    def default(self, value):
        if isinstance(value, Decimal):
            return int(value) if value == value.to_integral_value() else float(value)
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        if isinstance(value, (set, frozenset)):
            return sorted(value)
        return super(CustomJSONEncoder, self).default(value)


LEVELS = {
    'debug': DEBUG,
    'info': INFO,
    'warning': WARNING,
    'error': ERROR,
}


def log_exception(error: Exception, status_code: int = 400, msg: str = "", *args, **kwargs):
    """
    Domain errors set LEVEL, anything else is logged with its traceback
    """
    level = getattr(error, 'LEVEL', 'exception')
    payload = json.dumps({
        'error': str(error),
        'exception': error.__class__.__name__,
        'message': str(msg),
        'level': level if level in LEVELS else 'exception',
        'status_code': status_code,
        'args': args,
        'kwargs': kwargs
    }, cls=CustomJSONEncoder)
    if level in LEVELS:
        logger.log(LEVELS[level], payload)
    else:
        logger.exception(payload)


def log_message(*args):
    logger.debug(', '.join(str(arg) for arg in args))
