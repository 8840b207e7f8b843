"""HTTP middleware: request ids and JSON body screening."""

from huddle.middleware.json_body import reject_malformed_json
from huddle.middleware.request_id import REQUEST_ID_HEADER, RequestIDMiddleware

__all__ = ["RequestIDMiddleware", "REQUEST_ID_HEADER", "reject_malformed_json"]
