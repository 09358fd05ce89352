"""CSPP HTTP API router."""

from fastapi import APIRouter

from cspp.api.keys import router as keys_router
from cspp.api.upload import router as upload_router
from cspp.api.usage import router as usage_router

router = APIRouter()

router.include_router(upload_router, tags=["upload"])
router.include_router(keys_router, tags=["api-keys"])
router.include_router(usage_router, tags=["usage"])
