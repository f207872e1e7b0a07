"""Lazily initialized processor clients.

Each processor gets one wrapper with a single ``get()`` accessor that either
returns an authenticated client or raises. Initialization runs at most once
at a time (single-flight under a lock); a failed initialization leaves the
wrapper in FAILED and the next ``get()`` tries again.
"""
from __future__ import annotations

import enum
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Generic, TypeVar

import requests
import stripe

from app import metrics
from app.core.config import settings
from app.core.exceptions import ConfigurationError, GymStackException, RemoteUnavailableError

logger = logging.getLogger(__name__)

ClientT = TypeVar("ClientT")


class ClientState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    FAILED = "failed"


class LazyProcessorClient(ABC, Generic[ClientT]):
    """
    Base wrapper holding one processor client.

    Subclasses implement ``_build`` which returns the ready-to-use client or
    raises. ``GymStackException`` subclasses (e.g. ConfigurationError) pass
    through unchanged; anything else is reported as RemoteUnavailableError.
    """

    provider = "processor"

    def __init__(self):
        self._lock = threading.Lock()
        self._state = ClientState.UNINITIALIZED
        self._client: ClientT | None = None
        self._last_error: Exception | None = None

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def last_error(self) -> Exception | None:
        return self._last_error

    @abstractmethod
    def _build(self) -> ClientT:
        """Create and authenticate the underlying client."""
        pass

    def get(self) -> ClientT:
        """Return the initialized client, initializing it on first use."""
        if self._state is ClientState.READY:
            return self._client  # type: ignore[return-value]

        with self._lock:
            # Another thread may have finished while we waited
            if self._state is ClientState.READY:
                return self._client  # type: ignore[return-value]
            try:
                client = self._build()
            except GymStackException as exc:
                self._state = ClientState.FAILED
                self._last_error = exc
                logger.error("%s client initialization failed: %s", self.provider, exc.message)
                raise
            except Exception as exc:  # noqa: BLE001
                self._state = ClientState.FAILED
                self._last_error = exc
                logger.error("%s client initialization failed: %s", self.provider, exc)
                raise RemoteUnavailableError(
                    f"initialize {self.provider} client", str(exc), provider=self.provider
                ) from exc

            self._client = client
            self._state = ClientState.READY
            self._last_error = None
            logger.info("%s client initialized", self.provider)
            return client

    def reset(self) -> None:
        """Drop the cached client; the next get() initializes again."""
        with self._lock:
            self._client = None
            self._state = ClientState.UNINITIALIZED
            self._last_error = None


class StripeProcessorClient(LazyProcessorClient[Any]):
    """
    Wrapper around the ``stripe`` SDK module.

    The SDK is module-global, so "building" the client means configuring the
    module (API key, request timeout, no automatic retries) and handing it
    back. ``factory`` replaces that step, e.g. with an in-memory fake.
    """

    provider = "stripe"

    def __init__(self, factory: Callable[[str], Any] | None = None):
        super().__init__()
        self.factory = factory

    def _build(self) -> Any:
        api_key = settings.STRIPE_SECRET_KEY
        if not api_key:
            raise ConfigurationError("STRIPE_SECRET_KEY")
        if self.factory is not None:
            return self.factory(api_key)

        stripe.api_key = api_key
        stripe.default_http_client = stripe.RequestsClient(timeout=settings.STRIPE_TIMEOUT_SECONDS)
        stripe.max_network_retries = 0
        return stripe


class PaysafeApiError(Exception):
    """Error answer from the Paysafe API (non-2xx status or an ``error`` body)."""

    def __init__(self, message: str, status_code: int | None = None, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


class PaysafeApi:
    """Minimal Paysafe Payments API client (HTTP Basic auth over requests)."""

    PAYMENTS_PATH = "/paymenthub/v1/payments"
    CUSTOMERS_PATH = "/paymenthub/v1/customers"

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        timeout: int = 10,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.auth = (username, password)
        self.session.headers.update({"Content-Type": "application/json", "Accept": "application/json"})

    def process_payment(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Charge a single-use payment handle token."""
        return self._request("POST", self.PAYMENTS_PATH, payload)

    # ---------------------------------------------------------- customer vault
    def create_customer(self, payload: dict[str, Any]) -> dict[str, Any]:
        return self._request("POST", self.CUSTOMERS_PATH, payload)

    def create_payment_handle(self, customer_id: str, single_use_token: str) -> dict[str, Any]:
        """Turn a single-use token into a multi-use handle saved on the customer."""
        return self._request(
            "POST",
            f"{self.CUSTOMERS_PATH}/{customer_id}/paymenthandles",
            {"paymentHandleTokenFrom": single_use_token},
        )

    def list_payment_handles(self, customer_id: str) -> list[dict[str, Any]]:
        body = self._request("GET", f"{self.CUSTOMERS_PATH}/{customer_id}/paymenthandles")
        if isinstance(body, list):
            return body
        handles = body.get("paymentHandles")
        return handles if isinstance(handles, list) else []

    def delete_payment_handle(self, customer_id: str, payment_handle_token: str) -> None:
        self._request("DELETE", f"{self.CUSTOMERS_PATH}/{customer_id}/paymenthandles/{payment_handle_token}")

    # ----------------------------------------------------------------- transport
    def _request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> Any:
        started = time.monotonic()
        try:
            response = self.session.request(method, f"{self.base_url}{path}", json=payload, timeout=self.timeout)
        finally:
            elapsed = time.monotonic() - started
            metrics.observe_remote_latency("paysafe", elapsed)
            logger.debug("Paysafe %s %s took %.3fs", method, path, elapsed)

        if response.status_code >= 400:
            message, code = self._error_details(response)
            raise PaysafeApiError(message, status_code=response.status_code, code=code)
        if not response.content:
            return {}

        body = response.json()
        # Paysafe can report a declined or failed call inside a 2xx answer
        if isinstance(body, dict) and body.get("error"):
            message, code = self._error_fields(body, response.status_code)
            raise PaysafeApiError(message, status_code=response.status_code, code=code)
        return body

    @classmethod
    def _error_details(cls, response: requests.Response) -> tuple[str, str | None]:
        try:
            body = response.json()
        except ValueError:
            return f"HTTP {response.status_code}", None
        if not isinstance(body, dict):
            return f"HTTP {response.status_code}", None
        return cls._error_fields(body, response.status_code)

    @staticmethod
    def _error_fields(body: dict[str, Any], status_code: int) -> tuple[str, str | None]:
        error = body.get("error") or {}
        if not isinstance(error, dict):
            return str(error), None
        return error.get("message") or f"HTTP {status_code}", error.get("code")


class PaysafeProcessorClient(LazyProcessorClient[PaysafeApi]):
    provider = "paysafe"

    def __init__(self, session_factory: Callable[[], requests.Session] = requests.Session):
        super().__init__()
        self.session_factory = session_factory

    def _build(self) -> PaysafeApi:
        if not settings.PAYSAFE_API_USERNAME:
            raise ConfigurationError("PAYSAFE_API_USERNAME")
        if not settings.PAYSAFE_API_PASSWORD:
            raise ConfigurationError("PAYSAFE_API_PASSWORD")
        return PaysafeApi(
            base_url=settings.paysafe_base_url,
            username=settings.PAYSAFE_API_USERNAME,
            password=settings.PAYSAFE_API_PASSWORD,
            timeout=settings.PAYSAFE_TIMEOUT_SECONDS,
            session=self.session_factory(),
        )
