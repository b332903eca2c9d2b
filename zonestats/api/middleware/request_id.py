"""
Request ID middleware - correlate a request across logs and error envelopes.

An incoming X-Request-ID header is reused; otherwise a UUID4 is generated.
The id is echoed back on every response.
"""

import uuid
from flask import Flask, request, g

REQUEST_ID_HEADER = 'X-Request-ID'


def setup_request_id_middleware(app: Flask) -> None:

    @app.before_request
    def inject_request_id():
        g.request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())

    @app.after_request
    def add_request_id_header(response):
        request_id = getattr(g, 'request_id', None)
        if request_id:
            response.headers[REQUEST_ID_HEADER] = request_id
        return response


def get_request_id():
    """Current request id, or None outside a request."""
    return getattr(g, 'request_id', None)
