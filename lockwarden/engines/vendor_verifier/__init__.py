"""Vendor integrity verifier engine — offline vendoring with all-or-nothing validity."""

from lockwarden.engines.vendor_verifier.checksum import tree_digest
from lockwarden.engines.vendor_verifier.models import VendorEntry, VendorManifest
from lockwarden.engines.vendor_verifier.verifier import materialize, verify, verify_async

__all__ = [
    "VendorEntry",
    "VendorManifest",
    "materialize",
    "tree_digest",
    "verify",
    "verify_async",
]
