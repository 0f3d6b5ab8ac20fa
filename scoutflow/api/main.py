"""
API router aggregation

- subscription: status / access, checkout, portal, management
- webhooks: Paddle and LemonSqueezy notifications
- utils: health check
"""
from fastapi import APIRouter

from scoutflow.api.routes import (
    subscription,
    utils,
    webhooks,
)

api_router = APIRouter()

api_router.include_router(subscription.router)  # /subscription/*
api_router.include_router(webhooks.router)  # /webhooks/*
api_router.include_router(utils.router)  # /utils/*
