# API routes
from fastapi import APIRouter
from bloodlink.api.requests import router as requests_router
from bloodlink.api.donors import router as donors_router
from bloodlink.api.chatbot import router as chatbot_router

# Combine all routers
router = APIRouter()
router.include_router(requests_router)
router.include_router(donors_router)
router.include_router(chatbot_router)

__all__ = ["router"]
