import base64
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

import requests

from pickups.core.config import settings
from pickups.core.errors import CredentialsUnavailable, UpstreamApiError, UpstreamAuthError

logger = logging.getLogger(__name__)

SEARCH_PATH = "/booking.json/booking-search"


@dataclass
class BokunConfig:
    host: str               # api.bokun.io
    access_key: str         # X-Bokun-AccessKey header
    secret_key: str         # HMAC key, never sent
    timeout: int = 25
    page_size: int = 50
    max_results: int = 1000

    @classmethod
    def from_settings(cls) -> "BokunConfig":
        return cls(
            host=settings.BOKUN_HOST,
            access_key=settings.BOKUN_ACCESS_KEY,
            secret_key=settings.BOKUN_SECRET_KEY,
            timeout=settings.BOKUN_TIMEOUT,
            page_size=settings.BOKUN_PAGE_SIZE,
            max_results=settings.BOKUN_MAX_RESULTS,
        )


def bokun_date(now: datetime) -> str:
    # "YYYY-MM-DD HH:MM:SS" in UTC
    return now.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def sign(secret_key: str, date_str: str, access_key: str, method: str, path: str) -> str:
    msg = date_str + access_key + method.upper() + path
    sig = hmac.new(secret_key.encode("utf-8"), msg.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(sig).decode("utf-8")


def iso_utc(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class BokunClient:
    def __init__(self, cfg: BokunConfig, session: requests.Session | None = None, clock: Callable[[], datetime] | None = None):
        self.cfg = cfg
        self.session = session or requests.Session()
        # Signing always uses wall-clock time, never the date being queried.
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def has_credentials(self) -> bool:
        return bool((self.cfg.access_key or "").strip() and (self.cfg.secret_key or "").strip())

    def _headers(self, method: str, path: str) -> dict:
        if not self.has_credentials:
            raise CredentialsUnavailable("Bokun access key / secret key not configured")
        date_str = bokun_date(self._clock())
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-Bokun-AccessKey": self.cfg.access_key,
            "X-Bokun-Date": date_str,
            "X-Bokun-Signature": sign(self.cfg.secret_key, date_str, self.cfg.access_key, method, path),
        }

    def request(self, method: str, path: str, payload: dict | None = None) -> dict:
        headers = self._headers(method, path)
        body = json.dumps(payload, separators=(",", ":")) if payload is not None else None
        url = f"https://{self.cfg.host}{path}"
        logger.debug("Bokun %s %s %s", method.upper(), path, body or "")
        try:
            r = self.session.request(method=method.upper(), url=url, data=body, headers=headers, timeout=self.cfg.timeout)
        except requests.RequestException as e:
            raise UpstreamApiError(None, f"request failed: {e}") from e
        try:
            data = r.json() if r.text else {}
        except ValueError:
            data = {"raw": r.text}
        if r.status_code in (401, 403):
            raise UpstreamAuthError(r.status_code, str(data)[:500])
        if r.status_code >= 400:
            raise UpstreamApiError(r.status_code, str(data)[:500])
        return data if isinstance(data, dict) else {"items": data if isinstance(data, list) else []}

    def search_bookings(self, criteria: dict) -> list[dict]:
        """POST booking-search, following offset/limit pages up to the safety cap."""
        items: list[dict] = []
        offset = 0
        while True:
            page = self.request("POST", SEARCH_PATH, {**criteria, "offset": offset, "limit": self.cfg.page_size})
            batch = page.get("items") or []
            items.extend(batch)
            total_hits = page.get("totalHits") or len(items)
            offset += self.cfg.page_size
            if len(batch) < self.cfg.page_size or len(items) >= total_hits:
                break
            if offset >= self.cfg.max_results:
                logger.warning("Bokun search stopped at safety cap (%s records)", self.cfg.max_results)
                break
        logger.info("Bokun search returned %s items", len(items))
        return items

    def search_by_start_date(self, start: datetime, end: datetime) -> list[dict]:
        return self.search_bookings({"startDateRange": {"from": iso_utc(start), "to": iso_utc(end)}})

    def search_by_creation_date(self, start: datetime, end: datetime) -> list[dict]:
        return self.search_bookings({"creationDateRange": {"from": iso_utc(start), "to": iso_utc(end)}})
