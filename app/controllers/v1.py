from fastapi import APIRouter

from . import feedback, upload, usage

router = APIRouter(prefix="/v1")
router.include_router(upload.router)
router.include_router(usage.router)
# likes, feedback and the admin dashboard numbers
router.include_router(feedback.router)
