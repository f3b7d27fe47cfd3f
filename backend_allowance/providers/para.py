"""
Para wallet provider client (REST, server API key).

Creates pregenerated EVM wallets for children and forwards signing requests.
Para is the enforcement authority at signing time; a policy rejection comes
back as a non-success response and surfaces as ProviderRejectedError.

Error mapping:
- no API key / bad API key (401)  -> ProviderUnavailableError (operator must fix config)
- timeout / transport failure     -> ProviderNetworkError
- 429 / 5xx                       -> ProviderNetworkError (Para unavailable, retry later)
- any other 4xx                   -> ProviderRejectedError (upstream_status set)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from backend_allowance.allowance_logging import get_logger, short_address
from backend_allowance.core.exceptions import (
    InvalidRequestError,
    ProviderNetworkError,
    ProviderRejectedError,
    ProviderUnavailableError,
)
from backend_allowance.policy.models import TransactionRequest

logger = get_logger(__name__)

WALLETS_PATH = "/v1/wallets"
SIGN_TRANSACTION_PATH = "/v1/wallets/{wallet_id}/sign-transaction"
API_KEY_HEADER = "X-API-Key"
WALLET_KIND_EVM = "EVM"


@dataclass(frozen=True)
class CreatedWallet:
    address: str | None
    id: str | None
    type: str | None = None


@dataclass(frozen=True)
class SignedTransaction:
    signature: str
    raw: dict[str, Any]


class WalletProvider(Protocol):
    """What the orchestration layer needs from a wallet provider."""

    def create_wallet(self, kind: str, identity_seed: str) -> CreatedWallet:
        ...

    def sign_transaction(
        self,
        wallet_id: str | None,
        wallet_address: str,
        tx: TransactionRequest,
    ) -> SignedTransaction:
        ...


def _unwrap_wallet(data: dict[str, Any]) -> dict[str, Any]:
    inner = data.get("wallet")
    return inner if isinstance(inner, dict) else data


class ParaWalletProvider:
    """Para REST client. One httpx.Client per provider instance, bounded by `timeout`."""

    def __init__(
        self,
        api_key: str | None,
        base_url: str,
        *,
        timeout: float = 15.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ProviderUnavailableError("Para API key not configured. Set PARA_SECRET_KEY in environment.")
        self.base_url = base_url.rstrip("/")
        try:
            self._client = httpx.Client(
                base_url=self.base_url,
                headers={API_KEY_HEADER: api_key, "Content-Type": "application/json"},
                timeout=timeout,
                transport=transport,
            )
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderUnavailableError(f"Para client failed to initialise: {e}") from e
        logger.info("para_client_initialised", base_url=self.base_url, timeout_sec=timeout)

    def close(self) -> None:
        self._client.close()

    def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        try:
            resp = self._client.post(path, json=body)
        except httpx.TimeoutException as e:
            logger.warning("para_request_timeout", path=path, error=str(e))
            raise ProviderNetworkError(f"Para request timed out: {path}") from e
        except httpx.TransportError as e:
            logger.warning("para_request_transport_error", path=path, error=str(e))
            raise ProviderNetworkError(f"Para request failed: {e}") from e

        if resp.status_code == 401 or (resp.status_code == 403 and path == WALLETS_PATH):
            raise ProviderUnavailableError(f"Para rejected the API key (HTTP {resp.status_code})")
        if resp.status_code == 429 or resp.status_code >= 500:
            detail = _error_detail(resp)
            logger.warning("para_upstream_unavailable", path=path, status=resp.status_code, detail=detail)
            raise ProviderNetworkError(f"Para unavailable (HTTP {resp.status_code}): {detail}")
        if resp.is_error:
            detail = _error_detail(resp)
            logger.warning("para_request_rejected", path=path, status=resp.status_code, detail=detail)
            raise ProviderRejectedError(detail, upstream_status=resp.status_code)
        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderRejectedError("Para returned a non-JSON response", upstream_status=resp.status_code) from e
        if not isinstance(data, dict):
            raise ProviderRejectedError("Para returned an unexpected response", upstream_status=resp.status_code)
        return data

    def create_wallet(self, kind: str, identity_seed: str) -> CreatedWallet:
        """Create a pregenerated wallet identified by a custom ID the child can later claim."""
        data = self._post(
            WALLETS_PATH,
            {"type": kind, "userIdentifier": identity_seed, "userIdentifierType": "CUSTOM_ID"},
        )
        wallet = _unwrap_wallet(data)
        created = CreatedWallet(
            address=wallet.get("address"),
            id=wallet.get("id"),
            type=wallet.get("type"),
        )
        logger.info("para_wallet_created", wallet=short_address(created.address), wallet_id=created.id)
        return created

    def sign_transaction(
        self,
        wallet_id: str | None,
        wallet_address: str,
        tx: TransactionRequest,
    ) -> SignedTransaction:
        if not wallet_id:
            raise InvalidRequestError("walletId required")
        body: dict[str, Any] = {
            "chainId": tx.chain_id,
            "transaction": {"to": tx.to, "value": tx.value_wei, "data": tx.data},
        }
        data = self._post(SIGN_TRANSACTION_PATH.format(wallet_id=wallet_id), body)
        signature = data.get("signature")
        if not signature:
            raise ProviderRejectedError("Para returned no signature")
        logger.info("para_transaction_signed", wallet=short_address(wallet_address), chain_id=tx.chain_id)
        return SignedTransaction(signature=str(signature), raw=data)


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            if body.get(key):
                return str(body[key])
    return f"HTTP {resp.status_code}"
