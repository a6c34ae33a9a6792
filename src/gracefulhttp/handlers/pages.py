"""
Default demo routes.

    GET /               small HTML index of the routes below
    GET /hello          "Hello, World!"
    GET /json-as-text   a JSON document served as text/plain
"""

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder


INDEX_HTML = """<!DOCTYPE html>
<html>
<head><title>gracefulhttp</title></head>
<body>
<h1>gracefulhttp</h1>
<ul>
<li><a href="/hello">/hello</a></li>
<li><a href="/json-as-text">/json-as-text</a></li>
<li><a href="/health">/health</a></li>
</ul>
</body>
</html>
"""


def index(request: HTTPRequest) -> HTTPResponse:
    return ResponseBuilder().html(INDEX_HTML).build()


def hello(request: HTTPRequest) -> HTTPResponse:
    return ResponseBuilder().text("Hello, World!\n").build()


def json_as_text(request: HTTPRequest) -> HTTPResponse:
    # Valid JSON, deliberately labelled text/plain; nosniff keeps browsers
    # from second-guessing that label.
    return (ResponseBuilder()
        .text('{"status":"ok"}\n')
        .nosniff()
        .build())
