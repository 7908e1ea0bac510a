# border0/client/http_client.py
"""
HTTP Client - one request/response exchange with the Border0 API

Handles:
- Access token header on every request
- JSON encoding of request bodies and decoding of 2xx bodies
- Structured error extraction from 4xx/5xx responses

Retries live one level up, in APIClient.request.
"""

import json
import logging
from typing import Any, Dict, Optional, Tuple

import requests
from pydantic import BaseModel, TypeAdapter, ValidationError

from .errors import APIError, HTTPRequestError

logger = logging.getLogger('border0.client')

# HTTP header names
HEADER_ACCEPT = "Accept"
HEADER_ACCESS_TOKEN = "x-access-token"
HEADER_CONTENT_TYPE = "Content-Type"

# HTTP header values
APPLICATION_JSON = "application/json"

# Longest slice of a non-JSON error body used as the error message
ERROR_BODY_PEEK = 1024


def _encode_body(body: Any) -> bytes:
    if isinstance(body, BaseModel):
        payload = body.model_dump(mode="json", exclude_none=True)
    else:
        payload = body
    return json.dumps(payload).encode("utf-8")


def api_error_from(response: requests.Response) -> APIError:
    """Build an APIError from a 4xx/5xx response"""
    code = response.status_code
    message = ""
    fallback = ""

    try:
        data = json.loads(response.content)
    except ValueError:
        data = None

    if isinstance(data, dict):
        if isinstance(data.get("status_code"), int):
            code = data["status_code"]
        message = data.get("error_message") or ""
        fallback = data.get("message") or ""
    else:
        peeked = response.content[:ERROR_BODY_PEEK]
        if peeked:
            message = peeked.decode("utf-8", errors="replace")

    if not message:
        message = fallback or "unexpected status code"

    return APIError(code, message)


class HTTPClient:
    """
    Thin wrapper around requests.Session bound to one access token
    """

    def __init__(self, token: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    def request(
        self,
        method: str,
        url: str,
        body: Any = None,
        response_model: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Tuple[int, Any]:
        """
        Send one request.

        Args:
            method: HTTP method
            url: Absolute URL
            body: Pydantic model or JSON-serializable object, or None for no body
            response_model: Type to validate a 2xx JSON body into (model, List[model], ...)
            headers: Extra headers

        Returns:
            (status_code, parsed body or None)

        Raises:
            HTTPRequestError: transport failure (status 0) or undecodable 2xx body
            APIError: 4xx/5xx response
        """
        request_headers = dict(headers or {})
        data = None
        if body is None:
            request_headers[HEADER_ACCEPT] = APPLICATION_JSON
        else:
            try:
                data = _encode_body(body)
            except (TypeError, ValueError) as e:
                raise HTTPRequestError(f"failed to encode input into JSON: {e}") from e
            request_headers[HEADER_CONTENT_TYPE] = APPLICATION_JSON
        request_headers[HEADER_ACCESS_TOKEN] = self.token

        try:
            response = self.session.request(
                method, url, data=data, headers=request_headers, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise HTTPRequestError(f"failed to send request: {e}") from e

        status = response.status_code
        logger.debug(f"{method} {url} -> {status}")

        # Successful response (2xx)
        if 200 <= status < 300:
            if response_model is None:
                return status, None
            try:
                parsed = json.loads(response.content)
                return status, TypeAdapter(response_model).validate_python(parsed)
            except (ValueError, ValidationError) as e:
                raise HTTPRequestError(f"failed to decode response from JSON: {e}", status_code=status) from e

        # Error response (4xx, 5xx)
        if status >= 400:
            raise api_error_from(response)

        # Unexpected response (1xx, 3xx)
        return status, None

    def close(self):
        """Drop pooled idle connections"""
        self.session.close()
