import hmac

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from app.core.errors import NotFound
from app.core.security import require_auth
from app.domain.schemas import GiftCardPassState
from app.repositories.customer import CustomerRepository
from app.repositories.gift_card import GiftCardRepository
from app.services.pass_generator import PKPASS_MEDIA_TYPE, create_pass_generator

router = APIRouter()


def _pkpass_response(pass_data: bytes, filename: str) -> Response:
    return Response(
        content=pass_data,
        media_type=PKPASS_MEDIA_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
        },
    )


@router.get("/giftcard/{serial_number}")
def download_gift_card_pass(serial_number: str, share_token: str = Query(..., alias="shareToken")):
    """Download a gift card pass with the share token sent to the recipient."""
    gift_card = GiftCardRepository.get_by_serial(serial_number)
    expected = (gift_card or {}).get("share_token") or ""
    # Unknown card and wrong token look the same
    if not expected or not hmac.compare_digest(expected.encode(), share_token.encode()):
        raise NotFound("Gift card not found")

    state = GiftCardPassState.from_record(gift_card)
    if not state.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Gift card is inactive",
        )

    pass_data = create_pass_generator("giftcard").generate_pass(state)
    return _pkpass_response(pass_data, "vigo-gift-card.pkpass")


@router.get("/{customer_id}")
def download_pass(customer_id: str, auth_payload: dict = Depends(require_auth)):
    """Download the .pkpass file for the signed-in customer."""
    if auth_payload.get("sub") != customer_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot download another customer's pass",
        )

    state = CustomerRepository.get_pass_state(customer_id)
    if not state:
        raise NotFound("Customer not found")

    pass_data = create_pass_generator("loyalty").generate_pass(state)

    safe_name = state.display_name.encode("ascii", "ignore").decode("ascii").replace('"', "").strip()
    if not safe_name:
        safe_name = "loyalty-card"

    return _pkpass_response(pass_data, f"{safe_name}-loyalty.pkpass")
