"""Dependency injection for FastAPI endpoints"""

from datetime import datetime
from fastapi import Request
from payout_gateway.infrastructure.clients.webhook import PayoutWebhookClient
from payout_gateway.utils.date_utils import utc_now


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_now() -> datetime:
    """Reference time for eligibility checks and paid_at stamps"""
    return utc_now()


def get_webhook_client() -> PayoutWebhookClient:
    """Provide payout webhook client instance"""
    return PayoutWebhookClient()
