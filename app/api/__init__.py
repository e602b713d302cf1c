from fastapi import APIRouter

from .routes import health, loyalty, passes, wallet

api_router = APIRouter()

# Health check
api_router.include_router(health.router, tags=["health"])

# Employee-facing endpoints
api_router.include_router(loyalty.router, tags=["loyalty"])

# Customer-facing endpoints
api_router.include_router(passes.router, prefix="/passes", tags=["passes"])

# Apple Wallet web service, one surface per pass type
api_router.include_router(wallet.router, prefix="/pass", tags=["wallet"])
api_router.include_router(wallet.gift_card_router, prefix="/pass/giftcard", tags=["wallet-giftcard"])
