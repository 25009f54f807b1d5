import re
from typing import Dict

import requests

from connectors.errors import ProviderFetchError

# query parameters that carry secrets; requests echoes full URLs in its exception messages
SECRET_PARAMS = ('access_token', 'fb_exchange_token', 'client_secret', 'refresh_token', 'code')
_SECRET_RE = re.compile(r'\b(%s)=[^&\s\'"]+' % '|'.join(SECRET_PARAMS))


def redact(value) -> str:
    """String form of `value` with secret query parameters masked, safe for logs."""
    return _SECRET_RE.sub(r'\1=***', str(value))


def is_success(response: requests.Response) -> bool:
    return 200 <= response.status_code < 300


def read_json(response: requests.Response, platform: str, action: str) -> Dict:
    """Body of a provider response, or ProviderFetchError for non-2xx / non-JSON replies."""
    if not is_success(response):
        raise ProviderFetchError(platform, f'{action} failed: {redact(response.text[:500])}', response.status_code)
    try:
        return response.json()
    except ValueError as exc:
        raise ProviderFetchError(platform, f'{action} returned malformed JSON', response.status_code) from exc
