from fastapi import APIRouter

from plantcare.api.detection import router as detection_router

router = APIRouter()

# All detection endpoints live under /api/detection/...
router.include_router(detection_router)
