"""Certificates module: issuance, append-only history, signed downloads.

Note: Routers are imported directly in main.py to avoid circular imports.
"""

from src.certificates.models import CERTIFICATES_TABLES_CQL, Certificate
from src.certificates.store import CertificateStore


__all__ = [
    "CERTIFICATES_TABLES_CQL",
    "Certificate",
    "CertificateStore",
]
