"""
API v1 routes aggregation
"""
from fastapi import APIRouter
from app.api.v1 import webhooks, scheduler

api_router = APIRouter()

# Stripe webhooks
api_router.include_router(webhooks.router)

# Scheduler administration
api_router.include_router(scheduler.router)
