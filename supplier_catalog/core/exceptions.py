"""
Exception types raised by the supplier integration layer.

Network failures are not wrapped: httpx exceptions reach the caller as-is
once retries are exhausted, so the root cause stays visible.
"""

from typing import Optional


class SupplierError(Exception):
    """Base class for supplier integration errors."""


class RateLimitedError(SupplierError):
    """
    Upstream answered 429. Carries the wait (seconds) the supplier asked for.
    """

    def __init__(self, retry_after: float, url: str = ""):
        self.retry_after = retry_after
        self.url = url
        super().__init__(f"rate_limited:{int(retry_after * 1000)}")


class UpstreamStatusError(SupplierError):
    """Upstream answered with a non-2xx status (other than 429)."""

    def __init__(self, status_code: int, url: str, body: str = ""):
        self.status_code = status_code
        self.url = url
        self.body = body
        super().__init__(f"status_{status_code}:{body[:200]}")

    @property
    def is_server_error(self) -> bool:
        return self.status_code >= 500


class SoapFaultError(SupplierError):
    """A SOAP response carried a Fault element."""

    def __init__(self, code: str, message: str, details: Optional[str] = None):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(f"SOAP Fault {code}: {message}")


class SupplierConfigError(SupplierError):
    """Supplier is missing credentials or endpoints."""


class CapabilityNotSupported(SupplierError):
    """The adapter does not implement the requested capability."""

    def __init__(self, adapter_id: str, capability: str):
        self.adapter_id = adapter_id
        self.capability = capability
        super().__init__(f"Adapter '{adapter_id}' does not support {capability}")


class UnknownSupplierError(SupplierError):
    """No adapter is registered under the requested id."""
