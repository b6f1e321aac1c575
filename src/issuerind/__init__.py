from __future__ import annotations

from .core.config import IndexerConfig
from .core.models import IssuerRecord, IssuerStatus
from .decoding.registries import (
    APPLICATION_SUBMITTED,
    ISSUER_APPROVED,
    ISSUER_REJECTED,
    make_issuer_registry,
)

__version__ = "0.1.0"

__all__ = [
    "IndexerConfig",
    "IssuerRecord",
    "IssuerStatus",
    "make_issuer_registry",
    "APPLICATION_SUBMITTED",
    "ISSUER_APPROVED",
    "ISSUER_REJECTED",
]
