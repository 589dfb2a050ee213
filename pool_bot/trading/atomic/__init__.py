from .atomic_builder import BundleBuilder, decompile_legacy_message
from .atomic_executor import JitoBlockEngineClient, RelayTransportError
from .atomic_types import JITO_MAX_BUNDLE_TRANSACTIONS, SignedBundle

__all__ = [
    "BundleBuilder",
    "JITO_MAX_BUNDLE_TRANSACTIONS",
    "JitoBlockEngineClient",
    "RelayTransportError",
    "SignedBundle",
    "decompile_legacy_message",
]
