from flask import jsonify, request

from ..errors import InvalidRequest, PosError


def error_response(exc: PosError):
    """Render a service error as JSON with its mapped status code."""
    return jsonify(exc.to_dict()), exc.http_status


def json_body() -> dict:
    """Request JSON as a dict; a missing body reads as empty."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidRequest("Request body must be a JSON object")
    return data
