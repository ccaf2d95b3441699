"""Payment store client.

The store owns payments and enforces optimistic concurrency: an update made
against a stale version is rejected with HTTP 409 and the current version.
"""

import json
import time
from typing import Protocol

import httpx

from pspsync.common.config import CommonSettings
from pspsync.common.errors import ConcurrentModificationError, StoreError
from pspsync.common.logging import logger
from pspsync.services.notification.models import Payment, UpdateAction, serialize_actions


class PaymentStore(Protocol):
    """Functional contract the reconciliation engine relies on."""

    async def fetch_by_keys(self, keys: list[str]) -> Payment | None: ...

    async def fetch_by_id(self, payment_id: str) -> Payment: ...

    async def update(self, payment_id: str, version: int, actions: list[UpdateAction]) -> Payment: ...


def key_predicate(keys: list[str]) -> str:
    """Query predicate matching payments whose key is any of `keys`."""

    return "key in ({})".format(", ".join(json.dumps(key) for key in keys))


class HttpPaymentStore:
    """REST payment store client with lazily fetched client-credentials token."""

    def __init__(
        self,
        api_url: str,
        auth_url: str,
        project_key: str,
        client_id: str,
        client_secret: str,
        scope: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.auth_url = auth_url.rstrip("/")
        self.project_key = project_key
        self.client_id = client_id
        self.client_secret = client_secret
        self.scope = scope
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._token: str | None = None
        self._token_expires_at = 0.0

    @classmethod
    def from_settings(cls, settings: CommonSettings) -> "HttpPaymentStore":
        return cls(
            api_url=settings.store_api_url,
            auth_url=settings.store_auth_url,
            project_key=settings.store_project_key,
            client_id=settings.store_client_id,
            client_secret=settings.store_client_secret,
            scope=settings.store_scope,
            timeout=settings.store_timeout_seconds,
        )

    async def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _access_token(self) -> str:
        if self._token is not None and time.monotonic() < self._token_expires_at:
            return self._token
        client = await self.client()
        data = {"grant_type": "client_credentials"}
        if self.scope:
            data["scope"] = self.scope
        try:
            resp = await client.post(
                f"{self.auth_url}/oauth/token",
                data=data,
                auth=(self.client_id, self.client_secret),
            )
        except httpx.HTTPError as exc:
            raise StoreError(f"token request failed: {exc}") from exc
        if resp.status_code >= 400:
            raise StoreError("token request rejected", status_code=resp.status_code, body=resp.text)
        body = resp.json()
        self._token = body["access_token"]
        # Refresh a minute before the token actually expires.
        self._token_expires_at = time.monotonic() + max(0, int(body.get("expires_in", 3600)) - 60)
        return self._token

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        token = await self._access_token()
        client = await self.client()
        url = f"{self.api_url}/{self.project_key}{path}"
        try:
            resp = await client.request(method, url, headers={"Authorization": f"Bearer {token}"}, **kwargs)
        except httpx.HTTPError as exc:
            raise StoreError(f"payment store request failed: {method} {path}: {exc}") from exc
        if resp.status_code == 401:
            self._token = None
        return resp

    @staticmethod
    def _body(resp: httpx.Response) -> object:
        try:
            return resp.json()
        except ValueError:
            return resp.text

    def _raise_for_status(self, resp: httpx.Response, operation: str) -> None:
        if resp.status_code >= 400:
            raise StoreError(
                f"{operation} failed with status {resp.status_code}",
                status_code=resp.status_code,
                body=self._body(resp),
            )

    async def fetch_by_keys(self, keys: list[str]) -> Payment | None:
        """Return the first payment whose key matches, or None."""

        resp = await self._request("GET", "/payments", params={"where": key_predicate(keys)})
        self._raise_for_status(resp, "payment lookup by keys")
        results = resp.json().get("results", [])
        if not results:
            return None
        return Payment.model_validate(results[0])

    async def fetch_by_id(self, payment_id: str) -> Payment:
        resp = await self._request("GET", f"/payments/{payment_id}")
        self._raise_for_status(resp, f"payment fetch id={payment_id}")
        return Payment.model_validate(resp.json())

    async def update(self, payment_id: str, version: int, actions: list[UpdateAction]) -> Payment:
        """Submit actions at `version`; raises ConcurrentModificationError on 409."""

        resp = await self._request(
            "POST",
            f"/payments/{payment_id}",
            json={"version": version, "actions": serialize_actions(actions)},
        )
        if resp.status_code == 409:
            body = self._body(resp)
            current_version = None
            if isinstance(body, dict) and body.get("errors"):
                current_version = body["errors"][0].get("currentVersion")
            logger.info(
                "payment version conflict payment_id=%s version=%s current_version=%s",
                payment_id,
                version,
                current_version,
            )
            raise ConcurrentModificationError(
                f"concurrent modification of payment {payment_id} at version {version}",
                current_version=current_version,
                body=body,
            )
        self._raise_for_status(resp, f"payment update id={payment_id}")
        return Payment.model_validate(resp.json())
