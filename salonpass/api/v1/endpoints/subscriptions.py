from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, status
from loguru import logger

from salonpass.api.deps import get_subscription_orchestrator
from salonpass.models.subscription import SubscriptionStatus
from salonpass.schemas.subscription import (
    CancelRequest,
    PurchaseRequest,
    RedeemRequest,
    RedemptionRead,
    RenewRequest,
    SubscriptionRead,
    SweepResult,
    VisitRead,
)
from salonpass.services.subscription import SubscriptionOrchestrator

router = APIRouter()


@router.post("", response_model=SubscriptionRead, status_code=status.HTTP_201_CREATED)
async def purchase_package(
    request: PurchaseRequest,
    orchestrator: SubscriptionOrchestrator = Depends(get_subscription_orchestrator)
):
    """Buy a package and activate the subscription"""
    return await orchestrator.purchase(
        request.customer_id, request.package_id, request.payment_auth, auto_renewal=request.auto_renewal
    )


@router.post("/redeem", response_model=RedemptionRead)
async def redeem_visit(
    request: RedeemRequest,
    orchestrator: SubscriptionOrchestrator = Depends(get_subscription_orchestrator)
):
    """Redeem one visit with the customer's token"""
    return await orchestrator.redeem(request.token, request.salon_id, request.service_name)


@router.post("/sweep", response_model=SweepResult)
async def run_sweep(
    orchestrator: SubscriptionOrchestrator = Depends(get_subscription_orchestrator)
):
    """Run the expiry sweep now (the scheduler runs it periodically)"""
    logger.info("Manual expiry sweep requested")
    return await orchestrator.sweep_expired()


@router.get("/by-token/{token}", response_model=SubscriptionRead)
async def get_subscription_by_token(
    token: str,
    orchestrator: SubscriptionOrchestrator = Depends(get_subscription_orchestrator)
):
    return await orchestrator.get_subscription_by_token(token)


@router.get("/customers/{customer_id}", response_model=List[SubscriptionRead])
async def list_customer_subscriptions(
    customer_id: int,
    status: Optional[SubscriptionStatus] = None,
    orchestrator: SubscriptionOrchestrator = Depends(get_subscription_orchestrator)
):
    return await orchestrator.list_customer_subscriptions(customer_id, status)


@router.get("/salons/{salon_id}", response_model=List[SubscriptionRead])
async def list_salon_subscriptions(
    salon_id: int,
    status: Optional[SubscriptionStatus] = None,
    orchestrator: SubscriptionOrchestrator = Depends(get_subscription_orchestrator)
):
    return await orchestrator.list_salon_subscriptions(salon_id, status)


@router.get("/salons/{salon_id}/visits", response_model=List[VisitRead])
async def list_salon_visits(
    salon_id: int,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    orchestrator: SubscriptionOrchestrator = Depends(get_subscription_orchestrator)
):
    """Visits redeemed at a salon; `since`/`until` bound the redemption time"""
    return await orchestrator.list_salon_visits(salon_id, since, until)


@router.get("/{subscription_id}", response_model=SubscriptionRead)
async def get_subscription(
    subscription_id: int,
    orchestrator: SubscriptionOrchestrator = Depends(get_subscription_orchestrator)
):
    return await orchestrator.get_subscription(subscription_id)


@router.get("/{subscription_id}/visits", response_model=List[VisitRead])
async def list_visits(
    subscription_id: int,
    orchestrator: SubscriptionOrchestrator = Depends(get_subscription_orchestrator)
):
    return await orchestrator.list_visits(subscription_id)


@router.post("/{subscription_id}/cancel", response_model=SubscriptionRead)
async def cancel_subscription(
    subscription_id: int,
    request: CancelRequest,
    orchestrator: SubscriptionOrchestrator = Depends(get_subscription_orchestrator)
):
    return await orchestrator.cancel(subscription_id, request.actor)


@router.post("/{subscription_id}/renew", response_model=SubscriptionRead)
async def renew_subscription(
    subscription_id: int,
    request: RenewRequest,
    orchestrator: SubscriptionOrchestrator = Depends(get_subscription_orchestrator)
):
    """Charge a renewal; a declined charge suspends the subscription"""
    return await orchestrator.renew(subscription_id, request.payment_auth)
