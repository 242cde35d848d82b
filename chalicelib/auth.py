from typing import Dict, List

from chalice import AuthResponse, AuthRoute

from chalicelib.utils import auth as utils_auth
from chalicelib.utils.exceptions import AuthorizationException, NotAuthorizedException
from chalicelib.utils.logger import logger

ALL_METHODS = ['GET', 'POST', 'PUT', 'DELETE']

CUSTOMER_ROUTES = [
    AuthRoute(path='/orders', methods=['GET', 'POST']),
    AuthRoute(path='/orders/*', methods=['GET', 'POST']),
    AuthRoute(path='/payments', methods=['POST'])
]

STAFF_ROUTES = [
    AuthRoute(path='/orders', methods=['GET']),
    AuthRoute(path='/orders/*', methods=['GET', 'POST'])
]

ADMIN_ROUTES = [
    AuthRoute(path='/establishment', methods=['PUT']),
    AuthRoute(path='/delivery-zones', methods=['POST']),
    AuthRoute(path='/delivery-zones/*', methods=ALL_METHODS),
    AuthRoute(path='/products', methods=['POST']),
    AuthRoute(path='/products/*', methods=['PUT', 'DELETE']),
    AuthRoute(path='/orders', methods=['GET', 'POST']),
    AuthRoute(path='/orders/*', methods=ALL_METHODS),
    AuthRoute(path='/payments', methods=['POST']),
    AuthRoute(path='/pdv/sales', methods=['POST']),
    AuthRoute(path='/cash-registers', methods=['POST']),
    AuthRoute(path='/cash-registers/*', methods=['GET', 'POST'])
]

ROLE_ROUTES: Dict[str, List[AuthRoute]] = {
    'client': CUSTOMER_ROUTES,
    'kitchen': STAFF_ROUTES,
    'motoboy': STAFF_ROUTES,
    'admin': ADMIN_ROUTES
}


def role_authorizer(auth_request):
    """
    Grants the routes of the role stored in the access token.
    The role and user id travel to the views in the authorizer context.
    """
    try:
        claims = utils_auth.decode_token(utils_auth.get_bearer_token(auth_request.token))
        user_id, role = claims['sub'], utils_auth.get_role(claims)
    except (AuthorizationException, NotAuthorizedException, KeyError) as error:
        logger.warning(f'role_authorizer ::: access denied, {error}')
        return AuthResponse(routes=[], principal_id='')
    logger.info(f'role_authorizer ::: {user_id=} {role=}')
    return AuthResponse(
        routes=ROLE_ROUTES[role],
        principal_id=user_id,
        context={'user_id': user_id, 'role': role}
    )
