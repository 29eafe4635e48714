from .schedule import router as schedule_router
from .execute import router as execute_router

__all__ = [
    "schedule_router",
    "execute_router",
]
