"""Minimal Vultr API client covering the billing endpoints.

Only the read-only billing calls are implemented. Records come back as the
plain dicts returned by the API; pagination metadata is parsed into ``Meta``.
"""

from __future__ import annotations

import sys
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote, urljoin

import requests

from vultr_billing import __version__

API_BASE_URL = "https://api.vultr.com/v2"
PER_PAGE_DEFAULT = 100
RETRY_LIMIT = 3
USER_AGENT = f"vultr-cli/{__version__}"
RETRY_AFTER_DEFAULT = 1


@dataclass
class ListOptions:
    cursor: str = ""
    per_page: int = PER_PAGE_DEFAULT

    def to_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {"per_page": self.per_page}
        if self.cursor:
            params["cursor"] = self.cursor
        return params


@dataclass
class Links:
    next: str = ""
    prev: str = ""


@dataclass
class Meta:
    total: int = 0
    links: Links = field(default_factory=Links)

    @classmethod
    def from_payload(cls, payload: Optional[Dict[str, Any]]) -> "Meta":
        if not isinstance(payload, dict):
            payload = {}
        links = payload.get("links")
        if not isinstance(links, dict):
            links = {}
        return cls(
            total=int(payload.get("total", 0) or 0),
            links=Links(next=links.get("next", "") or "", prev=links.get("prev", "") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"total": self.total, "links": {"next": self.links.next, "prev": self.links.prev}}


def parse_retry_after(value: Optional[str]) -> int:
    """Seconds to wait for a Retry-After header given as delay-seconds or an HTTP-date."""
    if not value:
        return RETRY_AFTER_DEFAULT
    value = value.strip()
    if value.isascii() and value.isdigit():
        return int(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return RETRY_AFTER_DEFAULT
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0, int((when - datetime.now(timezone.utc)).total_seconds() + 0.999))


class APIError(Exception):
    def __init__(self, status_code: int, message: str, path: str = ""):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.path = path

    @classmethod
    def from_response(cls, resp: requests.Response, path: str) -> "APIError":
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("error"):
            message = str(body["error"])
        else:
            message = resp.text or resp.reason or "unknown error"
        return cls(resp.status_code, message, path)


class VultrClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = API_BASE_URL,
        *,
        timeout: float = 30.0,
        debug: bool = False,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.debug = debug
        self.session = session or requests.Session()
        self.billing = BillingService(self)

    def request(self, method: str, path: str, *, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = urljoin(self.base_url.rstrip("/") + "/", path.lstrip("/"))
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }

        attempt = 1
        while True:
            if self.debug:
                print(f"HTTP {method} {url} params={params} timeout={self.timeout}", file=sys.stderr)
            resp = self.session.request(method, url, params=params, headers=headers, timeout=self.timeout)
            if self.debug:
                print(f"HTTP {resp.status_code} {resp.reason} <- {url}", file=sys.stderr)

            if resp.status_code == 429 and attempt < RETRY_LIMIT:
                retry_after = parse_retry_after(resp.headers.get("Retry-After"))
                print(f"Rate limited. Retrying after {retry_after}s...", file=sys.stderr)
                time.sleep(retry_after)
                attempt += 1
                continue
            break

        if resp.status_code >= 400:
            raise APIError.from_response(resp, path)
        if not resp.content:
            return {}
        try:
            payload = resp.json()
        except ValueError as exc:
            raise APIError(resp.status_code, f"invalid JSON in response: {exc}", path) from exc
        if not isinstance(payload, dict):
            raise APIError(resp.status_code, f"unexpected response body of type {type(payload).__name__}", path)
        return payload


class BillingService:
    def __init__(self, client: VultrClient):
        self.client = client

    def _list(self, path: str, key: str, options: ListOptions) -> Tuple[List[Dict[str, Any]], Meta]:
        payload = self.client.request("GET", path, params=options.to_params())
        return payload.get(key, []), Meta.from_payload(payload.get("meta"))

    def list_history(self, options: ListOptions) -> Tuple[List[Dict[str, Any]], Meta]:
        return self._list("/billing/history", "billing_history", options)

    def list_invoices(self, options: ListOptions) -> Tuple[List[Dict[str, Any]], Meta]:
        return self._list("/billing/invoices", "billing_invoices", options)

    def get_invoice(self, invoice_id: str) -> Dict[str, Any]:
        payload = self.client.request("GET", f"/billing/invoices/{quote(str(invoice_id), safe='')}")
        return payload.get("billing_invoice", {})

    def list_invoice_items(self, invoice_id: int, options: ListOptions) -> Tuple[List[Dict[str, Any]], Meta]:
        return self._list(f"/billing/invoices/{invoice_id}/items", "invoice_items", options)
