import functools
import json
import os
from typing import Dict, List

import jwt
from chalice.app import Request

from chalicelib.utils import exceptions as utils_exceptions
from chalicelib.utils.app import error_response
from chalicelib.utils.logger import log_request, logger, set_request_id

ROLES = ('admin', 'client', 'kitchen', 'motoboy')
STAFF_ROLES = ('admin', 'kitchen', 'motoboy')


def host_company_id_map() -> Dict[str, str]:
    """
    White-label switch: every tenant domain is mapped to its company id
    """
    try:
        return json.loads(os.environ.get('COMPANY_HOSTS') or '{}')
    except ValueError:
        logger.error('host_company_id_map ::: COMPANY_HOSTS is not a valid JSON object')
        return {}


def company_ids() -> List[str]:
    """
    Every configured tenant, used by scheduled jobs which have no request to resolve a tenant from
    """
    ids = set(host_company_id_map().values())
    if os.environ.get('DEFAULT_COMPANY_ID'):
        ids.add(os.environ['DEFAULT_COMPANY_ID'])
    return sorted(ids)


def get_company_id_by_host(host: str):
    company_id = host_company_id_map().get(host) or os.environ.get('DEFAULT_COMPANY_ID')
    if not company_id:
        logger.error(f'Error occurred while trying to get company id by {host=}')
        raise utils_exceptions.UnknownCompany(f'Unknown domain {host}')
    return company_id


def get_company_id_by_request(request: Request):
    return get_company_id_by_host(request.headers.get('host', ''))


def get_bearer_token(authorization_header: str) -> str:
    if not authorization_header:
        raise utils_exceptions.NotAuthorizedException('Authorization header is missing')
    scheme, _, token = authorization_header.partition(' ')
    return token if scheme.lower() == 'bearer' and token else authorization_header


def decode_token(token: str) -> Dict:
    """
    Access tokens are HS256 JWTs issued by the hosted auth service,
    the role lives in app_metadata
    """
    try:
        return jwt.decode(
            token,
            os.environ['JWT_SECRET'],
            algorithms=['HS256'],
            audience=os.environ.get('JWT_AUDIENCE', 'authenticated')
        )
    except jwt.PyJWTError as error:
        raise utils_exceptions.AuthorizationException(f'Invalid access token: {error}')


def get_role(claims: Dict) -> str:
    role = (claims.get('app_metadata') or {}).get('role') or 'client'
    if role not in ROLES:
        raise utils_exceptions.AuthorizationException(f'Unknown role {role}')
    return role


def get_auth_result(request: Request) -> Dict:
    authorizer_context = (request.context or {}).get('authorizer') or {}
    if authorizer_context.get('user_id') and authorizer_context.get('role'):
        user_id, role = authorizer_context['user_id'], authorizer_context['role']
    else:
        claims = decode_token(get_bearer_token(request.headers.get('authorization')))
        user_id, role = claims['sub'], get_role(claims)
    return {'user_id': user_id, 'role': role, 'company_id': get_company_id_by_request(request)}


def authenticate(func):
    """
    Wrapper for functions which require user's authentication
    """

    @functools.wraps(func)
    def result_auth(*args, **kwargs):
        try:
            request = args[0]
            set_request_id(request)
            log_request(request)
            setattr(request, 'auth_result', get_auth_result(request))
        except Exception as err:
            logger.error(f"authenticate ::: {str(err)}")
            return error_response(err, msg=f'{func.__name__}', status_code=401)
        result = func(*args, **kwargs)
        logger.info(f'authenticate ::: SUCCESS, func.__name__ {func.__name__}')
        return result

    return result_auth


def authenticate_class(func):
    """
    Wrapper for class methods which require user's authentication
    """

    @functools.wraps(func)
    def result_auth(*args, **kwargs):
        request = args[1]
        set_request_id(request)
        log_request(request)
        try:
            setattr(request, 'auth_result', get_auth_result(request))
        except utils_exceptions.UnknownCompany:
            raise
        except Exception as err:
            logger.error(f"authenticate_class ::: {str(err)}")
            raise utils_exceptions.NotAuthorizedException(str(err))
        return func(*args, **kwargs)

    return result_auth


def require_role(auth_result: Dict, *roles: str):
    if auth_result.get('role') not in roles:
        raise utils_exceptions.AccessDenied(f"Role {auth_result.get('role')} is not allowed, expected one of {roles}")
