"""
API routes - combined router from all domain modules.

Shared infrastructure (limiter) lives here; every sub-router imports what it
needs from this package.
"""

import os

from fastapi import APIRouter
from slowapi import Limiter
from slowapi.util import get_remote_address

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
if IS_TEST_ENV:
    limiter = Limiter(key_func=get_remote_address)

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = lambda *args, **kwargs: no_op_limit()
else:
    limiter = Limiter(key_func=get_remote_address)

CHAT_RATE_LIMIT = os.getenv("CHAT_RATE_LIMIT", "20/minute")
SMS_RATE_LIMIT = os.getenv("SMS_RATE_LIMIT", "60/minute")

# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from localdink.api.routes.auth import router as auth_router  # noqa: E402
from localdink.api.routes.players import router as players_router  # noqa: E402
from localdink.api.routes.courts import router as courts_router  # noqa: E402
from localdink.api.routes.groups import router as groups_router  # noqa: E402
from localdink.api.routes.sessions import router as sessions_router  # noqa: E402
from localdink.api.routes.notifications import router as notifications_router  # noqa: E402
from localdink.api.routes.chat import router as chat_router  # noqa: E402
from localdink.api.routes.sms import router as sms_router  # noqa: E402
from localdink.api.routes.maintenance import router as maintenance_router  # noqa: E402

router = APIRouter()
router.include_router(auth_router)
router.include_router(players_router)
router.include_router(courts_router)
router.include_router(groups_router)
router.include_router(sessions_router)
router.include_router(notifications_router)
router.include_router(chat_router)
router.include_router(sms_router)
router.include_router(maintenance_router)
