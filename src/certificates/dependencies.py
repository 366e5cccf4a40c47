"""Dependencies for certificate routes.

Provides:
- CertificateService dependency injection
"""

from collections.abc import Callable
from typing import Annotated

from fastapi import Depends, Request

from src.certificates.service import CertificateService


# Service getter function (set by main.py)
_certificate_service_getter: Callable[[], CertificateService] | None = None


def set_certificate_service_getter(
    getter: Callable[[], CertificateService],
) -> None:
    """Set the certificate service getter function."""
    global _certificate_service_getter  # noqa: PLW0603 - Required for DI pattern
    _certificate_service_getter = getter


def get_certificate_service(request: Request) -> CertificateService:
    """Get CertificateService instance.

    Tries request.app.state first, then falls back to getter function.
    """
    if hasattr(request.app.state, "certificate_service"):
        return request.app.state.certificate_service

    if _certificate_service_getter is not None:
        return _certificate_service_getter()

    msg = "CertificateService not configured"
    raise RuntimeError(msg)


CertificateServiceDep = Annotated[CertificateService, Depends(get_certificate_service)]
