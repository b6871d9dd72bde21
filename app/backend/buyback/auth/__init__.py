"""
Signing key loading and route authentication.
"""

from .signing_key import load_signing_keypair
from .cron_auth import require_cron_secret, is_valid_secret

__all__ = [
    "load_signing_keypair",
    "require_cron_secret",
    "is_valid_secret",
]
