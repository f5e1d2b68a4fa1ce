"""External invoicing ledger client.

The guarded operations depend only on :class:`InvoicingClient`; the concrete
:class:`OblioClient` talks to the provider's REST API. Storno and collect
calls are never retried: a retried reversal can issue a second storno.
"""
import time
from functools import lru_cache
from datetime import date
from typing import Callable, Optional, Protocol

import httpx
from pydantic import BaseModel

from manifest_guard.core.config import settings
from manifest_guard.core.logging import get_logger
from manifest_guard.models.company import Company

logger = get_logger(__name__)


class StornoResult(BaseModel):
    success: bool
    new_series: Optional[str] = None
    new_number: Optional[str] = None
    error: Optional[str] = None


class CollectResult(BaseModel):
    success: bool
    error: Optional[str] = None


class InvoicingClient(Protocol):
    async def storno(self, series: str, number: str) -> StornoResult: ...

    async def collect(self, series: str, number: str, collect_type: str) -> CollectResult: ...


class InvoicingAuthError(Exception):
    """Ledger credentials were rejected."""


class OblioClient:
    """Ledger client authenticated with OAuth2 client credentials."""

    def __init__(
        self,
        email: str,
        secret_token: str,
        vat_code: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.email = email
        self.secret_token = secret_token
        self.vat_code = vat_code
        self.base_url = (base_url or settings.INVOICING_API_URL).rstrip("/")
        self.timeout = timeout or settings.INVOICING_TIMEOUT_SECONDS
        self._transport = transport
        self._access_token: Optional[str] = None
        self._token_expires_at = 0.0

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _get_access_token(self, client: httpx.AsyncClient) -> str:
        # Refresh a minute before expiry
        if self._access_token and time.monotonic() < self._token_expires_at - 60:
            return self._access_token

        for attempt in range(2):  # The token call is safe to retry once
            try:
                response = await client.post(
                    "/authorize/token",
                    data={
                        "grant_type": "client_credentials",
                        "client_id": self.email,
                        "client_secret": self.secret_token,
                    },
                )
                break
            except httpx.TimeoutException:
                if attempt == 0:
                    logger.warning("Timeout obtaining ledger access token (Attempt 1). Retrying...")
                    continue
                raise

        if response.is_error:
            logger.error(f"Ledger authentication failed with status {response.status_code}")
            raise InvoicingAuthError("Invoicing authentication failed. Check the company's ledger credentials.")

        data = response.json()
        token = data.get("access_token")
        if not token:
            raise InvoicingAuthError("Invoicing provider returned no access token.")

        self._access_token = token
        self._token_expires_at = time.monotonic() + float(data.get("expires_in") or 3600)
        return token

    async def _request(self, method: str, path: str, payload: dict) -> dict:
        async with self._client() as client:
            token = await self._get_access_token(client)
            response = await client.request(
                method,
                path,
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
            )

        try:
            body = response.json()
        except ValueError:
            body = {"statusMessage": response.text[:200]}

        if response.status_code == 401:
            self._access_token = None
        if response.is_error:
            message = body.get("statusMessage") or body.get("error") or body.get("message") or f"HTTP {response.status_code}"
            raise httpx.HTTPStatusError(message, request=response.request, response=response)
        return body

    async def storno(self, series: str, number: str) -> StornoResult:
        """Issue a reversing (storno) document for ``series``+``number``."""
        payload = {
            "cif": self.vat_code,
            "issueDate": date.today().isoformat(),
            "referenceDocument": {
                "type": "Factura",
                "seriesName": series,
                "number": number,
                "refund": 1,
            },
        }
        try:
            body = await self._request("POST", "/docs/invoice", payload)
        except httpx.HTTPStatusError as e:
            logger.error(f"Ledger storno failed for {series}{number}: {e}")
            return StornoResult(success=False, error=str(e))
        except (httpx.HTTPError, InvoicingAuthError) as e:
            logger.error(f"Ledger storno transport error for {series}{number}: {e}")
            return StornoResult(success=False, error=str(e) or type(e).__name__)

        data = body.get("data") or {}
        return StornoResult(
            success=True,
            new_series=data.get("seriesName"),
            new_number=str(data["number"]) if data.get("number") is not None else None,
        )

    async def collect(self, series: str, number: str, collect_type: str) -> CollectResult:
        """Record a full collection for ``series``+``number``."""
        payload = {
            "cif": self.vat_code,
            "seriesName": series,
            "number": number,
            "collect": {
                "type": collect_type,
                "documentDate": date.today().isoformat(),
            },
        }
        try:
            await self._request("PUT", "/docs/invoice/collect", payload)
        except httpx.HTTPStatusError as e:
            logger.error(f"Ledger collect failed for {series}{number}: {e}")
            return CollectResult(success=False, error=str(e))
        except (httpx.HTTPError, InvoicingAuthError) as e:
            logger.error(f"Ledger collect transport error for {series}{number}: {e}")
            return CollectResult(success=False, error=str(e) or type(e).__name__)
        return CollectResult(success=True)


InvoicingClientFactory = Callable[[Company], Optional[InvoicingClient]]


@lru_cache(maxsize=256)
def _client_for(company_id: str, email: str, secret_token: str, vat_code: str) -> OblioClient:
    # One client per company and credential set, so its access token is reused
    return OblioClient(email=email, secret_token=secret_token, vat_code=vat_code)


def create_invoicing_client(company: Company) -> Optional[InvoicingClient]:
    """Ledger client for ``company``, or ``None`` when it has no credentials."""
    if not company.has_invoicing_credentials:
        return None
    return _client_for(
        company.id,
        company.invoicing_email.strip(),
        company.invoicing_token.strip(),
        company.vat_code,
    )


def get_invoicing_client_factory() -> InvoicingClientFactory:
    """Dependency returning the client factory (overridden in tests)."""
    return create_invoicing_client
