"""OAuth refresh-token flow and GAQL helpers for the Google Ads REST API."""
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

import requests

from errors import AuthFailed, CredentialError, RateLimited, VendorError

logger = logging.getLogger(__name__)

API_VERSION = "v20"
GOOGLE_ADS_BASE_URL = f"https://googleads.googleapis.com/{API_VERSION}"
TOKEN_URL = "https://oauth2.googleapis.com/token"

# Refresh this many seconds before the token actually expires
TOKEN_SAFETY_MARGIN = 300
MAX_AUTH_FAILURES = 3
REQUEST_TIMEOUT = 60

GAQL_ERRORS = {
    400: "잘못된 GAQL 쿼리입니다",
    401: "Google Ads 인증에 실패했습니다",
    403: "Google Ads 계정 접근 권한이 없습니다",
    404: "Google Ads 고객 계정을 찾을 수 없습니다",
}


def format_customer_id(customer_id: str) -> str:
    """Strip dashes and quotes so ``123-456-7890`` becomes ``1234567890``."""
    customer_id = str(customer_id or "").replace('"', "").replace("'", "").strip()
    return "".join(ch for ch in customer_id if ch.isdigit())


class GoogleAdsAuth:
    """Keeps one access token per credential set and refreshes it eagerly.

    States: unauthenticated -> authenticating -> authenticated -> expired.
    """

    def __init__(self, client_id: Optional[str], client_secret: Optional[str],
                 refresh_token: Optional[str], developer_token: Optional[str],
                 login_customer_id: Optional[str] = None,
                 clock: Callable[[], float] = time.time):
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.developer_token = developer_token
        self.login_customer_id = format_customer_id(login_customer_id) if login_customer_id else ""
        self._clock = clock
        self._lock = threading.Lock()
        self._access_token: Optional[str] = None
        self._expires_at = 0.0
        self._failures = 0
        self.state = "unauthenticated"

    def _token_valid(self) -> bool:
        return bool(self._access_token) and self._clock() < self._expires_at

    def get_access_token(self) -> str:
        if self._token_valid():
            return self._access_token

        with self._lock:
            # Another thread may have refreshed while we waited
            if self._token_valid():
                return self._access_token
            if self._access_token:
                self.state = "expired"
            return self._refresh()

    def _refresh(self) -> str:
        if not all([self.client_id, self.client_secret, self.refresh_token]):
            raise CredentialError("Google Ads OAuth credentials are not configured.", "google")
        if self._failures >= MAX_AUTH_FAILURES:
            raise CredentialError(
                f"Google Ads token refresh failed {self._failures} times; check the refresh token.",
                "google",
            )

        self.state = "authenticating"
        logger.info("Refreshing Google Ads access token")
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": self.refresh_token,
            "grant_type": "refresh_token",
        }
        try:
            resp = requests.post(TOKEN_URL, data=data, timeout=30)
        except requests.RequestException as e:
            self._fail()
            raise AuthFailed(f"Google OAuth token request failed: {e}", "google") from e

        if not resp.ok:
            self._fail()
            raise AuthFailed(
                f"Google OAuth token refresh failed: {resp.status_code} {resp.text}", "google"
            )

        payload = resp.json()
        self._access_token = payload["access_token"]
        expires_in = int(payload.get("expires_in", 3600))
        self._expires_at = self._clock() + max(expires_in - TOKEN_SAFETY_MARGIN, 0)
        self._failures = 0
        self.state = "authenticated"
        logger.info(f"Google Ads access token refreshed, valid for {expires_in - TOKEN_SAFETY_MARGIN}s")
        return self._access_token

    def _fail(self):
        self._failures += 1
        self.state = "unauthenticated"
        self._access_token = None

    def headers(self, manager_id: str = "") -> Dict[str, str]:
        if not self.developer_token:
            raise ValueError("Google Ads Developer Token is not set in environment variables.")
        headers = {
            "Authorization": f"Bearer {self.get_access_token()}",
            "developer-token": self.developer_token,
            "Content-Type": "application/json",
        }
        login_id = format_customer_id(manager_id) if manager_id else self.login_customer_id
        if login_id:
            headers["login-customer-id"] = login_id
        return headers


def get_headers_with_auto_token(auth: GoogleAdsAuth, manager_id: str = "") -> Dict[str, str]:
    """Request headers with a fresh bearer token, refreshing it when needed."""
    return auth.headers(manager_id)


def _make_request(method, url: str, headers: Dict[str, str], body: Optional[Dict[str, Any]] = None):
    """Send a Google Ads request. HTTP 429 raises RateLimited."""
    try:
        if body is None:
            resp = method(url, headers=headers, timeout=REQUEST_TIMEOUT)
        else:
            resp = method(url, headers=headers, json=body, timeout=REQUEST_TIMEOUT)
    except requests.RequestException as e:
        raise VendorError(f"Google Ads request failed: {e}", "google") from e

    if resp.status_code == 429:
        raise RateLimited("Google Ads API rate limit exceeded", "google", code=429)
    return resp


def _error_message(resp) -> str:
    try:
        error = resp.json().get("error", {})
        details = error.get("details", [])
        for detail in details:
            for err in detail.get("errors", []):
                if err.get("message"):
                    return err["message"]
        return error.get("message") or resp.text
    except ValueError:
        return resp.text


def execute_gaql(customer_id: str, query: str, manager_id: str = "", *,
                 auth: GoogleAdsAuth) -> Dict[str, Any]:
    """Run a GAQL query through ``googleAds:search`` and follow every page.

    Returns:
        ``{"results": [...], "totalRows": n, "query": query}``
    """
    cid = format_customer_id(customer_id)
    url = f"{GOOGLE_ADS_BASE_URL}/customers/{cid}/googleAds:search"
    rows = []
    page_token = None

    while True:
        headers = get_headers_with_auto_token(auth, manager_id)
        body: Dict[str, Any] = {"query": query}
        if page_token:
            body["pageToken"] = page_token
        resp = _make_request(requests.post, url, headers, body)

        if not resp.ok:
            message = _error_message(resp)
            label = GAQL_ERRORS.get(resp.status_code, "Google Ads API 오류")
            if resp.status_code == 401:
                raise AuthFailed(f"{label}: {message}", "google")
            raise VendorError(f"{label} ({resp.status_code}): {message}", "google", code=resp.status_code)

        data = resp.json()
        rows.extend(data.get("results", []))
        page_token = data.get("nextPageToken")
        if not page_token:
            break

    return {"results": rows, "totalRows": len(rows), "query": query}
