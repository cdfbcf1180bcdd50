"""
nexus_api.py
Minimal Nexus Mods REST API v1 client.

Only what the nxm install flow needs: validating the key, describing a file,
and resolving a CDN download link.  Free accounts must pass the key/expires
pair carried by the nxm:// link; premium accounts may omit them.

HTTP 429 → rate-limited; back off and retry.

Usage
-----
    from Nexus.nexus_api import NexusAPI

    api  = NexusAPI(api_key="...")
    user = api.validate()
    url  = api.get_download_links("fallout76", 1234, 5678, key, expires)[0].URI
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any

import requests

from Utils.app_log import app_log
from version import __version__

API_BASE = "https://api.nexusmods.com/v1"
APP_NAME = "FusionModManager"
APP_VERSION = __version__

# How long to wait after a 429 before retrying (seconds)
_RATE_LIMIT_BACKOFF = 2.0
_MAX_RETRIES = 3

# Keys to redact when logging API responses (values replaced with [REDACTED])
_SENSITIVE_KEYS = frozenset({"key", "email", "api_key", "token", "authorization", "password"})


def _redact_sensitive_response(text: str) -> str:
    """Return response text with sensitive fields redacted for safe logging."""
    if not text or not text.strip():
        return text
    try:
        data = json.loads(text)
    except ValueError:
        return text
    return json.dumps(_redact_sensitive_dict(data), default=str)


def _redact_sensitive_dict(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {
            k: "[REDACTED]" if k.lower() in _SENSITIVE_KEYS else _redact_sensitive_dict(v)
            for k, v in obj.items()
        }
    if isinstance(obj, list):
        return [_redact_sensitive_dict(item) for item in obj]
    return obj


@dataclass
class NexusUser:
    """Validated user info returned by /users/validate."""
    user_id: int
    name: str
    is_premium: bool
    is_supporter: bool


@dataclass
class NexusModFile:
    """A single file entry for a mod."""
    file_id: int
    name: str
    version: str
    category_name: str       # "MAIN", "UPDATE", "OPTIONAL", "OLD_VERSION", ...
    file_name: str           # actual archive filename
    size_kb: int = 0


@dataclass
class NexusDownloadLink:
    """A CDN download link returned by the API."""
    name: str        # mirror name, e.g. "Nexus CDN"
    short_name: str
    URI: str


@dataclass
class NexusRateLimits:
    hourly_remaining: int = -1
    daily_remaining: int = -1


class NexusAPIError(Exception):
    """Raised for non-recoverable API errors."""
    def __init__(self, message: str, status_code: int = 0, url: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class RateLimitError(NexusAPIError):
    """Raised when the server keeps returning HTTP 429."""
    def __init__(self, url: str = ""):
        super().__init__("Rate limit exceeded, try again later", 429, url)


class NexusAPI:
    """
    Synchronous Nexus Mods v1 REST client.

    Parameters
    ----------
    api_key : str
        Personal API key from nexusmods.com/settings/api-keys.
    timeout : float
        Request timeout in seconds.
    """

    def __init__(self, api_key: str, timeout: float = 30.0):
        self._key = api_key.strip()
        self._timeout = timeout
        self._rate = NexusRateLimits()
        self._session = requests.Session()
        self._session.headers.update({
            "APIKEY": self._key,
            "Application-Name": APP_NAME,
            "Application-Version": APP_VERSION,
            "Accept": "application/json",
        })

    @property
    def rate_limits(self) -> NexusRateLimits:
        return self._rate

    # -- low-level ----------------------------------------------------------

    def _update_rate_limits(self, resp: requests.Response) -> None:
        h = resp.headers
        if "x-rl-hourly-remaining" in h:
            self._rate.hourly_remaining = int(h["x-rl-hourly-remaining"])
        if "x-rl-daily-remaining" in h:
            self._rate.daily_remaining = int(h["x-rl-daily-remaining"])

    def _log_response(self, path: str, resp: requests.Response) -> None:
        app_log(f"Nexus API GET {path} → {resp.status_code}")
        body = _redact_sensitive_response(resp.text or "")
        if len(body) > 600:
            body = body[:600] + "..."
        if body:
            app_log(f"  Response: {body}")

    def _get(self, path: str, params: dict | None = None,
             retries: int = _MAX_RETRIES) -> Any:
        """Issue a GET request against the v1 API, with retry on 429."""
        url = API_BASE + path
        for attempt in range(retries):
            try:
                resp = self._session.get(url, params=params, timeout=self._timeout)
            except requests.Timeout as exc:
                raise NexusAPIError(
                    f"Request timed out after {self._timeout}s", url=url) from exc
            except requests.RequestException as exc:
                raise NexusAPIError(f"Connection failed: {exc}", url=url) from exc

            self._update_rate_limits(resp)
            self._log_response(path, resp)

            if resp.status_code == 429:
                wait = _RATE_LIMIT_BACKOFF * (attempt + 1)
                app_log(f"Nexus 429 rate-limited, backing off {wait:.1f}s "
                        f"(attempt {attempt + 1}/{retries})")
                time.sleep(wait)
                continue

            if resp.status_code == 401:
                raise NexusAPIError("Invalid or expired API key", 401, url)

            if not resp.ok:
                try:
                    msg = resp.json().get("message", resp.reason)
                except ValueError:
                    msg = resp.text[:300] or resp.reason
                raise NexusAPIError(msg, resp.status_code, url)

            return resp.json()

        raise RateLimitError(url)

    # -- endpoints ------------------------------------------------------------

    def validate(self) -> NexusUser:
        """Validate the current API key and return user info."""
        data = self._get("/users/validate")
        return NexusUser(
            user_id=data["user_id"],
            name=data["name"],
            is_premium=data.get("is_premium", False),
            is_supporter=data.get("is_supporter", False),
        )

    def get_file_info(self, game_domain: str, mod_id: int,
                      file_id: int) -> NexusModFile:
        f = self._get(f"/games/{game_domain}/mods/{mod_id}/files/{file_id}")
        return NexusModFile(
            file_id=f["file_id"],
            name=f.get("name", ""),
            version=f.get("version", ""),
            category_name=f.get("category_name", ""),
            file_name=f.get("file_name", ""),
            size_kb=f.get("size_kb", 0),
        )

    def get_download_links(
        self,
        game_domain: str,
        mod_id: int,
        file_id: int,
        key: str | None = None,
        expires: int | None = None,
    ) -> list[NexusDownloadLink]:
        """
        Generate download URLs for a file.

        Free users must provide key + expires from an nxm:// link;
        premium users can omit them.
        """
        path = f"/games/{game_domain}/mods/{mod_id}/files/{file_id}/download_link"
        params: dict[str, Any] = {}
        if key is not None and expires is not None:
            params["key"] = key
            params["expires"] = str(expires)
        data = self._get(path, params=params or None)
        links = [
            NexusDownloadLink(
                name=d.get("name", ""),
                short_name=d.get("short_name", ""),
                URI=d["URI"],
            )
            for d in data
        ]
        if not links:
            raise NexusAPIError("no download links returned", url=API_BASE + path)
        return links
