"""
Apple Wallet web service endpoints.

The same routes are mounted once per pass type: ``/pass`` for loyalty
cards and ``/pass/giftcard`` for gift cards. Wallet appends ``/v1/...`` to
the ``webServiceURL`` embedded in each pass.
"""

from typing import Callable

from fastapi import APIRouter, Depends, Header, Request
from starlette.concurrency import run_in_threadpool

from app.api.deps import get_gift_card_handler, get_loyalty_handler
from app.services.protocol import PassProtocolHandler


def create_wallet_router(get_handler: Callable[[], PassProtocolHandler]) -> APIRouter:
    router = APIRouter()

    @router.post("/v1/devices/{device_library_id}/registrations/{pass_type_id}/{serial_number}")
    async def register_device(
        device_library_id: str,
        pass_type_id: str,
        serial_number: str,
        request: Request,
        authorization: str | None = Header(None),
        handler: PassProtocolHandler = Depends(get_handler),
    ):
        """Register a device for push notifications."""
        # Raw body: Wallet sends JSON, other clients send the bare token
        body = await request.body()
        return await run_in_threadpool(
            handler.register, device_library_id, pass_type_id, serial_number, authorization, body
        )

    @router.delete("/v1/devices/{device_library_id}/registrations/{pass_type_id}/{serial_number}")
    def unregister_device(
        device_library_id: str,
        pass_type_id: str,
        serial_number: str,
        authorization: str | None = Header(None),
        handler: PassProtocolHandler = Depends(get_handler),
    ):
        """Unregister a device from push notifications."""
        return handler.unregister(device_library_id, pass_type_id, serial_number, authorization)

    @router.get("/v1/devices/{device_library_id}/registrations/{pass_type_id}")
    def get_serial_numbers(
        device_library_id: str,
        pass_type_id: str,
        passesUpdatedSince: str | None = None,  # noqa: N803 - Apple Wallet API requirement
        handler: PassProtocolHandler = Depends(get_handler),
    ):
        """Get list of passes registered to this device."""
        return handler.list_serials(device_library_id, pass_type_id, passesUpdatedSince)

    @router.get("/v1/passes/{pass_type_id}/{serial_number}")
    def get_latest_pass(
        pass_type_id: str,
        serial_number: str,
        authorization: str | None = Header(None),
        if_modified_since: str | None = Header(None, alias="If-Modified-Since"),
        handler: PassProtocolHandler = Depends(get_handler),
    ):
        """Download the latest version of a pass."""
        return handler.fetch_pass(pass_type_id, serial_number, authorization, if_modified_since)

    @router.post("/v1/log")
    async def receive_logs(
        request: Request,
        handler: PassProtocolHandler = Depends(get_handler),
    ):
        """Receive error logs from Apple Wallet."""
        return handler.receive_log(await request.body())

    return router


router = create_wallet_router(get_loyalty_handler)
gift_card_router = create_wallet_router(get_gift_card_handler)
