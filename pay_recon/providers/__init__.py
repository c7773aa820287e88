"""Provider adapters and callback field mappings."""

from pay_recon.providers.base import ProviderAdapter
from pay_recon.providers.mappings import MAPPINGS, FieldMapping, ResultMapping, normalize, resolve_status
from pay_recon.providers.pool import IdPool
from pay_recon.providers.sandbox import SandboxProviderAdapter

__all__ = [
    "MAPPINGS",
    "FieldMapping",
    "IdPool",
    "ProviderAdapter",
    "ResultMapping",
    "SandboxProviderAdapter",
    "normalize",
    "resolve_status",
]
