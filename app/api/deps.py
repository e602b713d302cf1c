from functools import lru_cache

from app.core.config import settings
from app.repositories.customer import CustomerRepository
from app.repositories.gift_card import GiftCardRepository
from app.services.device_registry import DeviceRegistry
from app.services.loyalty import LoyaltyService
from app.services.notifier import UpdateNotifier
from app.services.pass_generator import create_pass_generator
from app.services.protocol import PassProtocolHandler


@lru_cache
def get_device_registry() -> DeviceRegistry:
    return DeviceRegistry()


@lru_cache
def get_notifier() -> UpdateNotifier:
    return UpdateNotifier(registry=get_device_registry())


@lru_cache
def get_loyalty_service() -> LoyaltyService:
    return LoyaltyService()


@lru_cache
def get_loyalty_handler() -> PassProtocolHandler:
    return PassProtocolHandler(
        pass_type_id=settings.pass_type_id,
        load_state=CustomerRepository.get_pass_state,
        create_generator=lambda: create_pass_generator("loyalty"),
        registry=get_device_registry(),
        name="loyalty",
    )


@lru_cache
def get_gift_card_handler() -> PassProtocolHandler:
    return PassProtocolHandler(
        pass_type_id=settings.gift_card_pass_type_id,
        load_state=GiftCardRepository.get_pass_state,
        create_generator=lambda: create_pass_generator("giftcard"),
        registry=get_device_registry(),
        name="giftcard",
    )


def reset_dependencies() -> None:
    """Drop cached services so the next request rebuilds them from settings."""
    for factory in (
        get_device_registry,
        get_notifier,
        get_loyalty_service,
        get_loyalty_handler,
        get_gift_card_handler,
    ):
        factory.cache_clear()
