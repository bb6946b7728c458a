# =============================================================================
# pos_core/services/__init__.py
# Service Layer for the POS offline core
# =============================================================================
"""
Service Layer

Services wrap core operations and return ServiceResult instead of raising,
for callers that only need a message to display.

Usage Example:
-------------
    from pos_core.services import UserAdminService

    service = UserAdminService(ctx.store, lambda: ctx.broker.current_session)
    result = service.set_active("demo-cashier-1", False)
    if not result:
        print(result.error)
"""

from .base_service import BaseService, ServiceResult
from .user_service import UserAdminService

__all__ = [
    "BaseService",
    "ServiceResult",
    "UserAdminService",
]
