"""Reject unparsable JSON bodies before routing.

FastAPI would otherwise report them as field validation errors; clients get
one E_INVALID_REQUEST "Malformed JSON body" instead.
"""

import json

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import RequestResponseEndpoint
from starlette.responses import Response

from huddle.errors import ApiErrorCode
from huddle.responses import error_response

_BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


async def reject_malformed_json(request: Request, call_next: RequestResponseEndpoint) -> Response:
    if request.method in _BODY_METHODS and "application/json" in request.headers.get(
        "content-type", ""
    ):
        body = await request.body()
        if body:
            try:
                json.loads(body)
            except ValueError:
                return JSONResponse(
                    status_code=400,
                    content=error_response(ApiErrorCode.E_INVALID_REQUEST, "Malformed JSON body"),
                )
    return await call_next(request)
