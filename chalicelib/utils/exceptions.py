__all__ = ["NotAuthorizedException", "AccessDenied", "RecordNotFound", "NumberOfRetriesExceeded",
           "MandatoryFieldsAreNotFilled", "ValidationException", "AuthorizationException", "InvalidCoordinates",
           "OutOfDeliveryArea", "MinimumOrderNotReached", "SomeItemsAreNotAvailable", "OrderNotFound",
           "InvalidStatusTransition", "CashRegisterAlreadyOpen", "CashRegisterNotOpen", "UnknownCompany",
           "ExternalServiceError", "RoutingServiceError", "GeocodingServiceError", "CepNotFound",
           "PaymentServiceError", "ServiceNotConfigured"]


class NotAuthorizedException(Exception):
    pass


# Generic Exceptions
class AccessDenied(Exception):
    pass


class MandatoryFieldsAreNotFilled(Exception):
    pass


class UnknownCompany(Exception):
    pass


# DynamoDB exceptions
class RecordNotFound(Exception):
    pass


# DB Performance Exception
class NumberOfRetriesExceeded(Exception):
    pass


# Validations exceptions
class ValidationException(Exception):
    pass


class AuthorizationException(Exception):
    pass


class InvalidCoordinates(ValidationException):
    pass


# Delivery exceptions
class OutOfDeliveryArea(Exception):
    LEVEL = 'warning'


class MinimumOrderNotReached(Exception):
    LEVEL = 'warning'


# Order exceptions
class SomeItemsAreNotAvailable(Exception):
    pass


class OrderNotFound(Exception):
    pass


class InvalidStatusTransition(Exception):
    LEVEL = 'warning'


# Cash register exceptions
class CashRegisterAlreadyOpen(Exception):
    LEVEL = 'warning'


class CashRegisterNotOpen(Exception):
    LEVEL = 'warning'


# External services exceptions
class ExternalServiceError(Exception):
    pass


class RoutingServiceError(ExternalServiceError):
    pass


class GeocodingServiceError(ExternalServiceError):
    pass


class PaymentServiceError(ExternalServiceError):
    pass


class CepNotFound(Exception):
    LEVEL = 'info'


class ServiceNotConfigured(Exception):
    LEVEL = 'error'
