"""Local REST API for kubesync.

Submodules:
    app     -- FastAPI application factory.
    routes  -- /api/v1 route handlers.
    schemas -- pydantic response models.
"""

from kubesync.api.app import create_app

__all__ = ["create_app"]
