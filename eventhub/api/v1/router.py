from fastapi import APIRouter

from eventhub.api.v1.events import router as events_router
from eventhub.api.v1.realtime import router as realtime_router

router = APIRouter()
router.include_router(events_router)

socket_router = APIRouter()
socket_router.include_router(realtime_router)
