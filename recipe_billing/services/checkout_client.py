"""HTTP client for the paylink checkout provider.

Two calls are used: creating a pay session for a paylink (which yields the
redirect URL the user is sent to) and reading a pay session back while it is
still open.
"""

from typing import Any, Dict, Optional

import requests

from recipe_billing.core.config import Settings, settings as default_settings
from recipe_billing.core.errors import BillingAPIError, BillingNotConfiguredError


class CheckoutClient:
    def __init__(self, base_url: str, api_key: str, timeout: int = 10, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.timeout = timeout
        self.http = session or requests.Session()

    @classmethod
    def from_settings(cls, cfg: Optional[Settings] = None) -> 'CheckoutClient':
        cfg = cfg or default_settings
        if not cfg.billing_configured:
            raise BillingNotConfiguredError('Billing is not configured')
        return cls(cfg.billing_base_url, cfg.billing_api_key, timeout=cfg.billing_timeout_seconds)

    def request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = f"{self.base_url}/api/v1/{path.lstrip('/')}"
        headers = {'Content-Type': 'application/json', 'x-api-key': self.api_key}
        try:
            return self.http.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.Timeout as exc:
            raise BillingAPIError(f'{method} {path} timed out after {self.timeout}s') from exc
        except requests.RequestException as exc:
            raise BillingAPIError(f'{method} {path} failed: {exc}') from exc

    def create_pay_session(self, paylink_id: str, user_id: str, success_url: str) -> Dict[str, Any]:
        resp = self.request(
            'POST',
            'paysession/create',
            json={
                'paylinkId': paylink_id,
                'mode': 'paylink',
                'metadata': {'uuid': user_id},
                'successUrl': success_url,
            },
        )
        if resp.status_code != 201:
            raise BillingAPIError(
                f'pay session create failed: {resp.status_code} {resp.text[:300]}', status_code=resp.status_code
            )
        data = _payload_data(resp)
        if not data.get('id') or not data.get('url'):
            raise BillingAPIError('pay session create returned no id/url', status_code=resp.status_code)
        return data

    def get_pay_session(self, checkout_id: str) -> Dict[str, Any]:
        resp = self.request('GET', f'paysession/{checkout_id}')
        if resp.status_code != 200:
            raise BillingAPIError(
                f'pay session {checkout_id} lookup failed: {resp.status_code}', status_code=resp.status_code
            )
        return _payload_data(resp)


def _payload_data(resp: requests.Response) -> Dict[str, Any]:
    try:
        body = resp.json()
    except ValueError as exc:
        raise BillingAPIError('checkout provider returned invalid JSON', status_code=resp.status_code) from exc
    data = body.get('data') if isinstance(body, dict) else None
    if not isinstance(data, dict):
        raise BillingAPIError('checkout provider response has no data object', status_code=resp.status_code)
    return data
