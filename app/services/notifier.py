"""
Pass update notifications.

A push only tells Wallet to re-fetch the pass; the reward text lives in the
rebuilt pass, so "reward earned" and plain updates send the same payload.
"""

import asyncio
import logging
from typing import Callable

from starlette.concurrency import run_in_threadpool

from app.core.config import settings
from app.domain.schemas import RewardType
from app.services.apns import APNsClient, get_apns_client
from app.services.device_registry import DeviceRegistry

logger = logging.getLogger(__name__)


class UpdateNotifier:

    def __init__(
        self,
        registry: DeviceRegistry | None = None,
        client_provider: Callable[[], APNsClient | None] = get_apns_client,
    ):
        self.registry = registry or DeviceRegistry()
        self.client_provider = client_provider

    async def notify(self, serial_number: str, pass_type_id: str | None = None) -> int:
        """Push a silent update to every device holding the pass.

        Returns the number of devices notified. When push is not configured
        the registered devices are reported as notified; they pick up the
        change the next time Wallet opens the pass.
        """
        pass_type_id = pass_type_id or settings.pass_type_id
        devices = await run_in_threadpool(
            self.registry.list_devices_for_serial, serial_number, pass_type_id
        )

        if not devices:
            logger.info(f"No registered devices found for pass {serial_number[:8]}...")
            return 0

        client = self.client_provider()
        if client is None:
            logger.info(
                f"Push not configured, {len(devices)} device(s) for pass {serial_number[:8]}... "
                "will update on next open"
            )
            return len(devices)

        outcomes = await asyncio.gather(
            *(client.send_pass_update(device.push_token, pass_type_id) for device in devices),
            return_exceptions=True,
        )

        notified = 0
        for device, outcome in zip(devices, outcomes):
            if outcome is True:
                notified += 1
            else:
                reason = outcome if isinstance(outcome, Exception) else "rejected"
                logger.warning(f"Push to device {device.device_library_id[:8]}... failed: {reason}")

        logger.info(f"Notified {notified}/{len(devices)} device(s) for pass {serial_number[:8]}...")
        return notified

    async def notify_reward_earned(
        self,
        serial_number: str,
        reward_type: RewardType,
        pass_type_id: str | None = None,
    ) -> int:
        logger.info(f"Reward earned ({reward_type}) for pass {serial_number[:8]}...")
        return await self.notify(serial_number, pass_type_id)

    async def notify_safely(
        self,
        serial_number: str,
        pass_type_id: str | None = None,
        reward_type: RewardType | None = None,
    ) -> int:
        """Notify without ever raising; used after business mutations."""
        try:
            if reward_type:
                return await self.notify_reward_earned(serial_number, reward_type, pass_type_id)
            return await self.notify(serial_number, pass_type_id)
        except Exception as e:
            logger.error(f"Pass update notification failed for {serial_number[:8]}... (non-critical): {e}")
            return 0
