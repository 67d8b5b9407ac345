"""Identifier caching for incremental reports.

Submodules:
    identifiers -- uid -> (fingerprint, cid) cache with pure diff/sweep rules.
"""

from kubesync.cache.identifiers import IdentifierCache, ResourceIdentifier

__all__ = ["IdentifierCache", "ResourceIdentifier"]
