from fastapi import APIRouter, BackgroundTasks, Depends

from app.api.deps import get_loyalty_service, get_notifier
from app.core.config import settings
from app.core.permissions import EmployeeContext, require_employee
from app.domain.schemas import (
    PurchaseRequest,
    PurchaseResponse,
    RedeemRequest,
    RedeemResponse,
    ScanResponse,
)
from app.services import rewards
from app.services.loyalty import LoyaltyService, summarize
from app.services.notifier import UpdateNotifier

router = APIRouter()


@router.get("/scan/{customer_id}", response_model=ScanResponse)
def scan_customer(
    customer_id: str,
    ctx: EmployeeContext = Depends(require_employee),
    service: LoyaltyService = Depends(get_loyalty_service),
):
    """Look up a scanned card: balance, unredeemed tiers and reward status."""
    state = service.lookup_customer(customer_id)
    return ScanResponse(
        customer=summarize(state),
        available_rewards=rewards.available_tiers(state.points_balance, state.redeemed_rewards),
        reward_status=rewards.evaluate(state.points_balance, state.redeemed_rewards),
    )


@router.post("/purchase", response_model=PurchaseResponse)
def record_purchase(
    request: PurchaseRequest,
    background_tasks: BackgroundTasks,
    ctx: EmployeeContext = Depends(require_employee),
    service: LoyaltyService = Depends(get_loyalty_service),
    notifier: UpdateNotifier = Depends(get_notifier),
):
    """Record a purchase and push the updated pass to the customer's devices.

    The push runs after the response is sent; its outcome never affects
    the purchase.
    """
    result = service.record_purchase(request.customer_id, employee_id=ctx.id)

    background_tasks.add_task(
        notifier.notify_safely,
        result.state.serial_number,
        settings.pass_type_id,
        result.status.reward_type,
    )

    return PurchaseResponse(
        customer=summarize(result.state),
        points_earned=result.points_earned,
        reward_earned=result.status.reward_earned,
        reward_type=result.status.reward_type,
        earned_coffee=result.status.earned_coffee,
        earned_meal=result.status.earned_meal,
        message=result.message,
    )


@router.post("/redeem", response_model=RedeemResponse)
def redeem_reward(
    request: RedeemRequest,
    background_tasks: BackgroundTasks,
    ctx: EmployeeContext = Depends(require_employee),
    service: LoyaltyService = Depends(get_loyalty_service),
    notifier: UpdateNotifier = Depends(get_notifier),
):
    """Redeem a coffee or meal at a reached points threshold."""
    result = service.redeem_reward(
        request.customer_id,
        request.type,
        request.points,
        employee_id=ctx.id,
    )

    background_tasks.add_task(
        notifier.notify_safely,
        result.state.serial_number,
        settings.pass_type_id,
    )

    return RedeemResponse(customer=summarize(result.state), message=result.message)
