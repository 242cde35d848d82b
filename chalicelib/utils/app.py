import functools
from typing import Callable

from chalice import Response

from chalicelib.constants.status_codes import http400, http401, http403, http404, http409, http500, http502
from chalicelib.utils.exceptions import MandatoryFieldsAreNotFilled, ValidationException, OrderNotFound, \
    AccessDenied, NotAuthorizedException, AuthorizationException, RecordNotFound, OutOfDeliveryArea, \
    MinimumOrderNotReached, SomeItemsAreNotAvailable, InvalidStatusTransition, CashRegisterAlreadyOpen, \
    CashRegisterNotOpen, CepNotFound, ExternalServiceError, UnknownCompany
from chalicelib.utils.logger import logger, log_exception


def error_response(error: Exception, msg: str = "", status_code: int = 400, *args, **kwargs):
    log_exception(error=error, msg=msg, status_code=status_code, *args, **kwargs)
    return Response(
        body={
            'success': False,
            'error': str(error),
            'exception': error.__class__.__name__,
            "message": str(msg),
            'error_id': getattr(logger, 'current_request_id'),
            'level': getattr(error, 'LEVEL', 'exception')
        },
        status_code=status_code,
        headers={'Content-Type': 'application/json'}
    )


def request_exception_handler(func: Callable):
    @functools.wraps(func)
    def result(*args, **kwargs):
        try:
            logger.info(f'Calling function {func.__name__}')
            return func(*args, **kwargs)
        except (MandatoryFieldsAreNotFilled, ValidationException) as validation_error:
            return error_response(
                error=validation_error,
                msg=f'function = {func.__name__} , error = {validation_error}',
                status_code=http400)
        except (OutOfDeliveryArea, MinimumOrderNotReached, SomeItemsAreNotAvailable) as order_rule_error:
            return error_response(
                error=order_rule_error,
                msg=f'function = {func.__name__} , error = {order_rule_error}',
                status_code=http400)
        except (NotAuthorizedException, AuthorizationException) as not_authorized:
            return error_response(
                error=not_authorized,
                msg='Authorization is required to access this resource',
                status_code=http401)
        except AccessDenied as access_denied:
            return error_response(
                error=access_denied,
                msg="You don't have permissions to access this resource",
                status_code=http403)
        except (OrderNotFound, RecordNotFound, CepNotFound, UnknownCompany) as not_found:
            return error_response(
                error=not_found,
                msg=f'function = {func.__name__} , error = {not_found}',
                status_code=http404)
        except (InvalidStatusTransition, CashRegisterAlreadyOpen, CashRegisterNotOpen) as conflict:
            return error_response(
                error=conflict,
                msg=f'function = {func.__name__} , error = {conflict}',
                status_code=http409)
        except ExternalServiceError as external_error:
            return error_response(
                error=external_error,
                msg=f'function = {func.__name__} , upstream service error = {external_error}',
                status_code=http502)
        except Exception as exception:
            return error_response(
                error=exception,
                msg=f'function = {func.__name__}, error = {exception}',
                status_code=http500)
    return result


def log_start_finish(func: Callable):
    @functools.wraps(func)
    def result(*args, **kwargs):
        logger.info(f'{func.__name__} ::: started')
        response = func(*args, **kwargs)
        logger.info(f'{func.__name__} ::: finished')
        return response
    return result
