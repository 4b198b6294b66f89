"""
Alembic model import hook.

Importing this module ensures all SQLAlchemy models are registered on Base.metadata.
"""

from __future__ import annotations

# Import User first - other models have relationships to User
from tripdochub.modules.identity.models import User  # noqa: F401

from tripdochub.modules.credits.models import PromoCode, PromoRedemption  # noqa: F401
from tripdochub.modules.documents.models import Document  # noqa: F401
from tripdochub.modules.trips.models import Trip  # noqa: F401
