"""
Shared HTTP request helper for the Google and Nest APIs.

Maps httpx outcomes onto the bridge error taxonomy:
    401/403             -> AuthError
    other HTTP errors   -> NetworkError(status_code)
    transport failures  -> NetworkError(None)
    non-JSON body       -> NetworkError(status_code)
"""
import logging
from typing import Any, Dict, Optional

import httpx

from nestcam.core.errors import AuthError, NetworkError

logger = logging.getLogger(__name__)

# Bodies above this length are truncated in error messages
MAX_ERROR_BODY_LENGTH = 200


async def request_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    headers: Optional[Dict[str, str]] = None,
    **kwargs: Any,
) -> Any:
    """
    Send a request and return the decoded JSON body.

    Args:
        client: httpx AsyncClient to send with
        method: HTTP method
        url: Absolute URL
        headers: Request headers
        **kwargs: Passed through to client.request (params, json, data)

    Raises:
        AuthError: Credential or token rejected
        NetworkError: Transport failure, HTTP error status or invalid body
    """
    try:
        response = await client.request(method, url, headers=headers, **kwargs)
    except httpx.TimeoutException as e:
        raise NetworkError(f"{method} {url} timed out") from e
    except httpx.RequestError as e:
        raise NetworkError(f"{method} {url} failed: {e}") from e

    if response.status_code in (401, 403):
        raise AuthError(
            f"{method} {url} rejected with HTTP {response.status_code}",
            status_code=response.status_code,
        )

    if response.is_error:
        body = response.text[:MAX_ERROR_BODY_LENGTH]
        raise NetworkError(
            f"{method} {url} returned HTTP {response.status_code}: {body}",
            status_code=response.status_code,
        )

    try:
        return response.json()
    except ValueError as e:
        raise NetworkError(
            f"{method} {url} returned a non-JSON body",
            status_code=response.status_code,
        ) from e
