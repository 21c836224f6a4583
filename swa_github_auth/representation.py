"""Representations define how to render a response for a given content-type

See http://flask-classful.teracy.org/#adding-resource-representations-get-real-classy-and-put-on-a-top-hat
"""
import json
from typing import Any

from flask import Response, make_response


def output_json(
    data: Any,
    code: int | None,
    headers: dict[str, str] | None = None,
    content_type: str = "application/json",
) -> Response:
    dumped = json.dumps(data)
    if headers:
        headers.update({"Content-Type": content_type})
    else:
        headers = {"Content-Type": content_type}
    response = make_response(dumped, code, headers)
    return response
