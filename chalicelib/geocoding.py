from chalice import Response

from chalicelib.constants.status_codes import http200
from chalicelib.utils import app as utils_app, exceptions, mapbox, viacep
from chalicelib.utils.logger import logger, set_request_id

MIN_QUERY_LENGTH = 3


@utils_app.request_exception_handler
@utils_app.log_start_finish
def endpoint_geocode(request) -> Response:
    set_request_id(request)
    query = ((request.query_params or {}).get('q') or '').strip()
    if len(query) < MIN_QUERY_LENGTH:
        raise exceptions.ValidationException(f'Query must have at least {MIN_QUERY_LENGTH} characters')
    suggestions = mapbox.search_addresses(query)
    logger.info(f"endpoint_geocode ::: {len(suggestions)} suggestions for {query=}")
    return Response(status_code=http200, body={'success': True, 'suggestions': suggestions})


@utils_app.request_exception_handler
@utils_app.log_start_finish
def endpoint_lookup_cep(request, cep: str) -> Response:
    set_request_id(request)
    return Response(status_code=http200, body={'success': True, 'address': viacep.lookup_cep(cep)})
