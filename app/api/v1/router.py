from fastapi import APIRouter

from app.api.v1.endpoints.health import router as health_router
from app.api.v1.endpoints.me import router as me_router
from app.api.v1.endpoints.geo_admin import router as geo_router
from app.api.v1.endpoints.listings import router as listings_router
from app.api.v1.endpoints.images import router as images_router
from app.api.v1.endpoints.search import router as search_router
from app.api.v1.endpoints.favorites import router as favorites_router
from app.api.v1.endpoints.conversations import router as conversations_router
from app.api.v1.endpoints.valuations import router as valuations_router
from app.api.v1.endpoints.payments import router as payments_router


router = APIRouter(prefix="/v1")
router.include_router(health_router, tags=["health"])
router.include_router(me_router, tags=["me"])
router.include_router(geo_router, tags=["reference"])
router.include_router(listings_router, tags=["listings"])
router.include_router(images_router, tags=["images"])
router.include_router(search_router, tags=["search"])
router.include_router(favorites_router, tags=["favorites"])
router.include_router(conversations_router, tags=["conversations"])
router.include_router(valuations_router, tags=["valuations"])
router.include_router(payments_router, tags=["payments"])
