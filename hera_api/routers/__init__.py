"""
HERA Universal API - Routers
"""

from .dynamic_data import router as dynamic_data_router
from .entities import router as entities_router
from .entities_v2 import router as entities_v2_router
from .guardrails import router as guardrails_router
from .health import router as health_router
from .navigation import router as navigation_router
from .pos import router as pos_router
from .presets import router as presets_router
from .relationships import router as relationships_router
from .transactions import router as transactions_router
from .transactions_v2 import router as transactions_v2_router

__all__ = [
    "dynamic_data_router",
    "entities_router",
    "entities_v2_router",
    "guardrails_router",
    "health_router",
    "navigation_router",
    "pos_router",
    "presets_router",
    "relationships_router",
    "transactions_router",
    "transactions_v2_router",
]
