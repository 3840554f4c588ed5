"""MCG API client (external inventory/ERP system)."""
import re
import time
import requests
from typing import Dict, Any, Optional, List
from flask import current_app

from backoffice.exceptions import McgApiError

ITEMS_LIST_FILTER_KEYS = ('Category', 'Manufacturer', 'Barcode', 'ItemID', 'SearchText', 'AvailableOnly')

UPLICALI_URL_PATTERNS = (
    re.compile(r'apis\.uplicali\.com', re.IGNORECASE),
    re.compile(r'SuperMCG/MCG_API', re.IGNORECASE),
)

DEFAULT_TOKEN_TTL = 10 * 60


def is_uplicali(api_flavor: Optional[str], base_url: Optional[str]) -> bool:
    """Uplicali deployments return the full item list in one call and ignore paging."""
    if (api_flavor or '').strip().lower() == 'uplicali':
        return True
    base_url = (base_url or '').strip()
    return any(p.search(base_url) for p in UPLICALI_URL_PATTERNS)


def build_items_list_body(page_number=None, page_size=None, filter=None) -> Dict[str, Any]:
    """Normalize a get_items_list request to the body the upstream expects."""
    body = {}
    for key, value in (('PageNumber', page_number), ('PageSize', page_size)):
        try:
            number = int(value)
        except (TypeError, ValueError):
            continue
        if number > 0:
            body[key] = number
    if isinstance(filter, dict):
        picked = {k: filter[k] for k in ITEMS_LIST_FILTER_KEYS if k in filter}
        if picked:
            body['Filter'] = picked
    return body


class McgClient:
    """
    Thin client for the MCG REST API.

    Authenticates with OAuth2 client credentials and caches the access token
    in memory until shortly before it expires.
    """

    def __init__(
        self,
        base_url: str,
        client_id: str,
        client_secret: str,
        scope: str = '',
        api_version: str = 'v2.6',
        api_flavor: str = 'legacy',
        group=None,
        timeout: int = 25
    ):
        self.base_url = (base_url or '').strip().rstrip('/')
        self.client_id = (client_id or '').strip()
        self.client_secret = (client_secret or '').strip()
        self.scope = (scope or '').strip()
        self.api_version = (api_version or 'v2.6').strip()
        self.api_flavor = (api_flavor or 'legacy').strip().lower()
        self.group = group
        self.timeout = timeout

        self._access_token = ''
        self._expires_at = 0.0

    @classmethod
    def from_config(cls, config) -> 'McgClient':
        """Build a client from a Flask config mapping."""
        return cls(
            base_url=config.get('MCG_BASE_URL', ''),
            client_id=config.get('MCG_CLIENT_ID', ''),
            client_secret=config.get('MCG_CLIENT_SECRET', ''),
            scope=config.get('MCG_SCOPE', ''),
            api_version=config.get('MCG_API_VERSION', 'v2.6'),
            api_flavor=config.get('MCG_API_FLAVOR', 'legacy'),
            group=config.get('MCG_GROUP'),
            timeout=config.get('MCG_REQUEST_TIMEOUT', 25),
        )

    @property
    def uplicali(self) -> bool:
        return is_uplicali(self.api_flavor, self.base_url)

    def _api_url(self, action: str) -> str:
        return f"{self.base_url}/api/{self.api_version}/{action}"

    def _require_credentials(self):
        if not self.client_id or not self.client_secret:
            raise McgApiError('MCG client credentials are not configured', status_code=412)

    # =====================================================
    # AUTH
    # =====================================================

    def fetch_access_token(self) -> str:
        """Request a new token from the OAuth2 endpoint and cache it."""
        self._require_credentials()
        data = {
            'grant_type': 'client_credentials',
            'client_id': self.client_id,
            'client_secret': self.client_secret,
        }
        if self.scope:
            data['scope'] = self.scope

        try:
            response = requests.post(f"{self.base_url}/oauth2/access_token", data=data, timeout=15)
            response.raise_for_status()
            payload = response.json() or {}
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            current_app.logger.error(f"[MCG] Token request failed ({status})")
            raise McgApiError(f'MCG OAuth2 token request failed ({status})', upstream_status=status) from e
        except (requests.RequestException, ValueError) as e:
            current_app.logger.error(f"[MCG] Token request error: {e}")
            raise McgApiError(f'MCG OAuth2 token request failed: {e}') from e

        token = payload.get('access_token') or payload.get('token') or ''
        if not token:
            raise McgApiError('MCG OAuth2 did not return access_token')

        try:
            expires_in = float(payload.get('expires_in') or 0)
        except (TypeError, ValueError):
            expires_in = 0
        # Refresh 60s before the upstream expiry
        ttl = expires_in - 60 if expires_in > 60 else DEFAULT_TOKEN_TTL
        self._access_token = token
        self._expires_at = time.monotonic() + ttl
        return token

    def get_access_token(self) -> str:
        if self._access_token and self._expires_at - time.monotonic() > 10:
            return self._access_token
        return self.fetch_access_token()

    def invalidate_token(self):
        self._access_token = ''
        self._expires_at = 0.0

    # =====================================================
    # API CALLS
    # =====================================================

    def _post(self, action: str, body) -> Any:
        self._require_credentials()
        url = self._api_url(action)
        token = self.get_access_token()

        response = self._send(url, body, token)
        if response.status_code == 401:
            # Token revoked upstream: retry once with a fresh one
            current_app.logger.info(f"[MCG] {action} returned 401, refreshing token")
            self.invalidate_token()
            token = self.get_access_token()
            response = self._send(url, body, token)

        if response.status_code >= 400:
            detail = _error_detail(response)
            current_app.logger.error(f"[MCG] {action} failed ({response.status_code}){detail}")
            raise McgApiError(
                f"MCG {action} failed ({response.status_code}){detail}",
                upstream_status=response.status_code
            )
        try:
            return response.json() if response.content else {}
        except ValueError as e:
            raise McgApiError(f'MCG {action} returned invalid JSON') from e

    def _send(self, url: str, body, token: str):
        try:
            return requests.post(
                url,
                json=body,
                headers={
                    'Authorization': f'Bearer {token}',
                    'Content-Type': 'application/json'
                },
                timeout=self.timeout
            )
        except requests.RequestException as e:
            current_app.logger.error(f"[MCG] Request error on {url}: {e}")
            raise McgApiError(f'MCG request failed: {e}') from e

    def get_items_list(self, page_number=None, page_size=None, filter: Optional[Dict[str, Any]] = None) -> Any:
        """
        Fetch a page of items.

        Args:
            page_number: 1-based page (ignored by uplicali deployments)
            page_size: Items per page
            filter: Optional filter (Category, Manufacturer, Barcode, ItemID,
                SearchText, AvailableOnly; other keys are dropped)

        Returns:
            Raw upstream payload, typically {Items: [...], TotalCount}

        Raises:
            McgApiError: Credentials missing or upstream failure
        """
        body = build_items_list_body(page_number, page_size, filter)
        return self._post('get_items_list', body)

    def delete_items(self, items: List[Dict[str, Any]], group=None) -> Any:
        """Delete items upstream; each entry is {item_id} or {item_code}."""
        body = {'items': items}
        resolved_group = group if group is not None else self.group
        if resolved_group not in (None, ''):
            body['group'] = resolved_group
        current_app.logger.info(f"[MCG] delete_items for {len(items)} identifier(s)")
        return self._post('delete_items', body)


def _error_detail(response) -> str:
    try:
        data = response.json()
    except ValueError:
        text = ' '.join((response.text or '').split())[:160]
        return f": {text}" if text else ''
    if isinstance(data, dict):
        message = data.get('Message') or data.get('error') or data.get('message')
        if message:
            return f": {message}"
    return ''


def get_mcg_client() -> McgClient:
    """Client bound to the current app (token cache shared across requests)."""
    client = current_app.extensions.get('mcg_client')
    if client is None:
        client = McgClient.from_config(current_app.config)
        current_app.extensions['mcg_client'] = client
    return client
