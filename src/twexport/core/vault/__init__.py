"""
Vault transport: authenticated GET/PUT against a path-addressed file tree.
"""

from twexport.core.vault.client import VaultClient, VaultResponse, encode_vault_path
from twexport.core.vault.retry import RetryConfig, is_retryable_error, with_retry

__all__ = [
    "RetryConfig",
    "VaultClient",
    "VaultResponse",
    "encode_vault_path",
    "is_retryable_error",
    "with_retry",
]
