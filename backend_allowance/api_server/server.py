"""
FastAPI server — child wallet provisioning and transaction validation.

Every exit path returns JSON: AllowanceError subclasses map to their status
code, request validation errors to 400, and anything unexpected to a 500
JSON body (stack trace only outside production).

Collaborators (policy store, Para client, payment verifier) are built once in
create_app() and injected into handlers through app.state; tests pass their
own instances.
"""

from __future__ import annotations

import traceback
from datetime import datetime, timezone
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from backend_allowance import __version__
from backend_allowance.allowance_logging import get_logger, short_address
from backend_allowance.config import Settings, get_settings
from backend_allowance.core.exceptions import AllowanceError
from backend_allowance.payments.verifier import PaymentVerifier, StripePaymentVerifier
from backend_allowance.policy.storage import PolicyStore, redact_record
from backend_allowance.providers.para import ParaWalletProvider, WalletProvider
from backend_allowance.services.enforcement import run_enforcement_scenario
from backend_allowance.services.provisioning import CreateChildWalletRequest, ProvisioningService
from backend_allowance.services.signing import SignTransactionRequest, SigningService, SigningStatus
from backend_allowance.utils.wallet_utils import require_wallet

logger = get_logger(__name__)

_UNSET: Any = object()


# -----------------------------------------------------------------------------
# Request models
# -----------------------------------------------------------------------------


class _CamelBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CreateChildWalletBody(_CamelBody):
    """POST /api/child/create-wallet body."""

    parent_wallet_address: str | None = Field(None, alias="parentWalletAddress")
    restrict_to_base: bool = Field(False, alias="restrictToBase")
    max_usd: float | None = Field(None, alias="maxUsd", description="Per-transaction USD limit; absent = no limit")
    policy_name: str | None = Field(None, alias="policyName", max_length=128)
    payment_token: str | None = Field(None, alias="paymentToken")
    dev_mode: bool = Field(False, alias="devMode")


class SignTransactionBody(_CamelBody):
    """POST /api/child/sign-transaction body."""

    wallet_address: str | None = Field(None, alias="walletAddress")
    wallet_id: str | None = Field(None, alias="walletId")
    chain_id: str | int | None = Field(None, alias="chainId")
    to: str | None = None
    value_wei: str | None = Field(None, alias="valueWei")
    value_usd: float | None = Field(None, alias="valueUsd")
    data: str | None = None
    transaction_type: str = Field("transfer", alias="transactionType")


class UpdatePolicyBody(_CamelBody):
    """PUT /api/child/{wallet}/policy body."""

    parent_wallet_address: str | None = Field(None, alias="parentWalletAddress")
    restrict_to_base: bool = Field(False, alias="restrictToBase")
    max_usd: float | None = Field(None, alias="maxUsd")
    policy_name: str | None = Field(None, alias="policyName", max_length=128)


# -----------------------------------------------------------------------------
# Dependencies
# -----------------------------------------------------------------------------


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> PolicyStore:
    return request.app.state.store


def get_provisioning(request: Request) -> ProvisioningService:
    return request.app.state.provisioning


def get_signing(request: Request) -> SigningService:
    return request.app.state.signing


def require_debug_access(
    settings: Settings = Depends(get_app_settings),
    x_debug_token: str | None = Header(None, alias="X-Debug-Token"),
) -> None:
    """Debug/test endpoints: hidden (404) unless enabled outside production; token-checked when DEBUG_TOKEN is set."""
    if not settings.debug_endpoints_enabled or settings.is_production:
        raise HTTPException(status_code=404, detail="Not found")
    if settings.debug_token and x_debug_token != settings.debug_token:
        raise HTTPException(status_code=401, detail="Invalid debug token")


# -----------------------------------------------------------------------------
# App factory
# -----------------------------------------------------------------------------


def _error_body(message: str, **extra: Any) -> dict[str, Any]:
    return {"success": False, "error": message, **extra}


def create_app(
    settings: Settings | None = None,
    *,
    store: PolicyStore | None = None,
    provider: WalletProvider | None = _UNSET,
    payment_verifier: PaymentVerifier | None = _UNSET,
) -> FastAPI:
    """
    Build the ASGI app.

    provider / payment_verifier default to clients built from settings (None
    when their secret key is not configured). Pass None explicitly to force
    simulated signing or the no-payment-backend path.
    """
    settings = settings or get_settings()
    if store is None:
        store = PolicyStore(settings.policy_store_path, strict=settings.policy_store_strict)
    if provider is _UNSET:
        provider = (
            ParaWalletProvider(
                settings.para_secret_key,
                settings.para_api_url,
                timeout=settings.provider_timeout_sec,
            )
            if settings.provider_configured
            else None
        )
    if payment_verifier is _UNSET:
        payment_verifier = (
            StripePaymentVerifier(
                settings.stripe_secret_key,
                settings.stripe_api_url,
                timeout=settings.provider_timeout_sec,
            )
            if settings.payments_configured
            else None
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "api_started",
            app_env=settings.app_env,
            para_mode="live" if provider is not None else "simulated",
            payments="stripe" if payment_verifier is not None else "none",
            store_path=str(store.path),
        )
        yield
        for client in (provider, payment_verifier):
            close = getattr(client, "close", None)
            if callable(close):
                close()
        logger.info("api_stopped")

    app = FastAPI(
        title="Backend Allowance API",
        description="Parent/child allowance wallets: provisioning and policy-checked signing.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.provisioning = ProvisioningService(store, provider, payment_verifier)
    app.state.signing = SigningService(store, provider)

    _register_error_handlers(app, settings)
    # Outermost: preflight requests are answered before routing
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-Debug-Token"],
    )
    _register_routes(app)
    return app


def _register_error_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(AllowanceError)
    def allowance_error_handler(request: Request, exc: AllowanceError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("request_failed", path=request.url.path, error=exc.message, error_type=type(exc).__name__)
        else:
            logger.info("request_rejected", path=request.url.path, status=exc.status_code, error=exc.message)
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message))

    @app.exception_handler(StarletteHTTPException)
    def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Consistent JSON error response for HTTPException."""
        return JSONResponse(status_code=exc.status_code, content=_error_body(str(exc.detail)))

    @app.exception_handler(RequestValidationError)
    def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"Invalid request: {field} {first.get('msg', '')}".strip() if field else "Invalid request body"
        return JSONResponse(status_code=400, content=_error_body(message))

    @app.middleware("http")
    async def json_catch_all(request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.exception("request_unhandled_error", path=request.url.path, error=str(e))
            body = _error_body(str(e) or "Internal server error")
            if not settings.is_production:
                body["stack"] = traceback.format_exc()
            return JSONResponse(status_code=500, content=body)


def _register_routes(app: FastAPI) -> None:
    @app.get("/health")
    def health() -> dict[str, str]:
        """Liveness check: API is up."""
        return {"status": "ok"}

    @app.get("/api/_checks/wallet-flow")
    def wallet_flow_check(settings: Settings = Depends(get_app_settings)) -> JSONResponse:
        """Readiness for deploy checks: 503 until a Para key is configured."""
        ready = settings.provider_configured
        checks = {
            "paraApiKeyConfigured": ready,
            "paraEnv": settings.para_env,
            "stripeConfigured": settings.payments_configured,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if not ready:
            logger.warning("wallet_flow_check_unhealthy", para_env=settings.para_env)
        return JSONResponse(
            status_code=200 if ready else 503,
            content={
                "status": "healthy" if ready else "unhealthy",
                "checks": checks,
                "message": (
                    "Wallet creation flow is ready"
                    if ready
                    else "Missing PARA_SECRET_KEY - wallet creation will fail"
                ),
            },
        )

    @app.post("/api/child/create-wallet")
    def create_child_wallet(
        body: CreateChildWalletBody,
        provisioning: ProvisioningService = Depends(get_provisioning),
    ) -> JSONResponse:
        """
        Verify payment, build the policy, create the wallet via Para and store
        the policy under the returned address.
        """
        result = provisioning.create_child_wallet(
            CreateChildWalletRequest(
                parent_wallet_address=body.parent_wallet_address,
                restrict_to_base=body.restrict_to_base,
                max_usd=body.max_usd,
                policy_name=body.policy_name,
                payment_token=body.payment_token,
                dev_mode=body.dev_mode,
            )
        )
        return JSONResponse(
            status_code=200,
            content={
                "success": True,
                "walletAddress": result.wallet_address,
                "walletId": result.wallet_id,
                "policy": result.policy_summary(),
            },
        )

    @app.post("/api/child/sign-transaction")
    @app.post("/api/child/validate-transaction")
    def sign_transaction(
        body: SignTransactionBody,
        signing: SigningService = Depends(get_signing),
    ) -> JSONResponse:
        """
        Check a child's transaction against the wallet policy. Simulated locally
        when PARA_SECRET_KEY is not configured, otherwise Para signs or rejects.
        """
        outcome = signing.sign_transaction(
            SignTransactionRequest(
                wallet_address=body.wallet_address,
                chain_id=None if body.chain_id is None else str(body.chain_id),
                transaction_type=body.transaction_type,
                to=body.to,
                value_usd=body.value_usd,
                value_wei=body.value_wei,
                data=body.data,
                wallet_id=body.wallet_id,
            )
        )
        if outcome.status is SigningStatus.NO_POLICY:
            return JSONResponse(
                status_code=404,
                content=_error_body(
                    "Wallet not found in policy store. Create wallet through parent dashboard first.",
                    paraEnforced=True,
                    condition="no_policy",
                ),
            )
        result = outcome.result
        policy = result.policy.to_dict() if result and result.policy else None
        if outcome.status is SigningStatus.DENIED:
            return JSONResponse(
                status_code=403,
                content=_error_body(
                    result.error if result else "Transaction rejected",
                    allowed=False,
                    paraEnforced=True,
                    rejectedBy="para_policy",
                    condition=result.code.value if result and result.code else None,
                    simulated=outcome.simulated,
                    policy=policy,
                ),
            )
        content: dict[str, Any] = {
            "success": True,
            "allowed": True,
            "paraEnforced": True,
            "simulated": outcome.simulated,
            "message": (
                "Transaction approved by policy (simulated: PARA_SECRET_KEY not set)"
                if outcome.simulated
                else "Transaction signed by Para"
            ),
            "policy": policy,
            "policySummary": outcome.policy_summary(),
        }
        if outcome.signature:
            content["signature"] = outcome.signature
        return JSONResponse(status_code=200, content=content)

    @app.get("/api/child/{wallet_address}/policy")
    def get_child_policy(wallet_address: str, store: PolicyStore = Depends(get_store)) -> dict[str, Any]:
        """Read-only policy view for the child."""
        wallet = require_wallet(wallet_address)
        record = store.get(wallet)
        if record is None:
            raise HTTPException(status_code=404, detail="No policy found for this wallet")
        return {"success": True, **record.to_dict()}

    @app.put("/api/child/{wallet_address}/policy")
    def update_child_policy(
        wallet_address: str,
        body: UpdatePolicyBody,
        provisioning: ProvisioningService = Depends(get_provisioning),
    ) -> dict[str, Any]:
        """Owning parent replaces the policy. 404 for unknown wallet and for non-owner alike."""
        record = provisioning.update_child_policy(
            wallet_address,
            body.parent_wallet_address,
            body.restrict_to_base,
            body.max_usd,
            body.policy_name,
        )
        if record is None:
            raise HTTPException(status_code=404, detail="No policy found for this wallet")
        return {"success": True, **record.to_dict()}

    @app.delete("/api/child/{wallet_address}/policy")
    def revoke_child_wallet(
        wallet_address: str,
        parent_wallet_address: str | None = Query(None, alias="parentWalletAddress"),
        provisioning: ProvisioningService = Depends(get_provisioning),
    ) -> dict[str, Any]:
        """Owning parent revokes the wallet's policy. 404 for unknown wallet and for non-owner alike."""
        if not provisioning.revoke_child_wallet(wallet_address, parent_wallet_address):
            raise HTTPException(status_code=404, detail="No policy found for this wallet")
        return {"success": True, "walletAddress": wallet_address.lower(), "deleted": True}

    @app.get("/api/parent/{parent_address}/wallets")
    def list_parent_wallets(parent_address: str, store: PolicyStore = Depends(get_store)) -> dict[str, Any]:
        parent = require_wallet(parent_address, "Parent wallet address")
        records = store.list_by_parent(parent)
        logger.info("parent_wallets_listed", parent=short_address(parent), count=len(records))
        return {"success": True, "count": len(records), "wallets": [r.to_dict() for r in records]}

    @app.get("/api/debug/policies", dependencies=[Depends(require_debug_access)])
    def debug_list_policies(store: PolicyStore = Depends(get_store)) -> dict[str, Any]:
        """Debug: every stored policy, addresses truncated."""
        records = store.list_all()
        return {"success": True, "count": len(records), "policies": [redact_record(r) for r in records]}

    @app.post("/api/test/enforcement", dependencies=[Depends(require_debug_access)])
    @app.get("/api/test/enforcement", dependencies=[Depends(require_debug_access)])
    def enforcement_check() -> dict[str, Any]:
        """Debug: run the two-wallet enforcement scenario in an isolated store."""
        return run_enforcement_scenario().to_dict()


__all__ = ["create_app"]
