"""
SERVIÇO Z-API (WhatsApp)
=========================

Cliente Z-API usado para avisar atendentes sobre a cascata.

Usado por:
- WhatsAppNotifier (notification_service)
"""

from typing import Optional

import httpx
import logging

logger = logging.getLogger(__name__)


class ZAPIService:
    """Cliente Z-API de uma instância."""

    def __init__(
        self,
        instance_id: str,
        token: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not instance_id or not token:
            raise ValueError("Z-API instance_id e token são obrigatórios")

        self.instance_id = instance_id
        self.token = token
        self.base_url = (
            f"https://api.z-api.io/instances/{instance_id}/token/{token}"
        )
        self._transport = transport

    # ==========================
    # HTTP HELPERS
    # ==========================
    async def _post(self, endpoint: str, payload: dict) -> dict:
        url = f"{self.base_url}/{endpoint}"

        try:
            async with httpx.AsyncClient(timeout=30, transport=self._transport) as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()
                return response.json()

        except httpx.HTTPStatusError as e:
            logger.error(
                f"Z-API HTTP error [{self.instance_id}] {e.response.status_code}: {e.response.text}"
            )
            return {
                "success": False,
                "error": e.response.text,
                "status_code": e.response.status_code,
            }

        except httpx.HTTPError as e:
            logger.exception(
                f"Z-API POST error [{self.instance_id}] endpoint={endpoint}"
            )
            return {
                "success": False,
                "error": str(e),
            }

    # ==========================
    # SENDERS
    # ==========================
    async def send_text(self, phone: str, message: str) -> dict:
        return await self._post(
            "send-text",
            {
                "phone": self._format_phone(phone),
                "message": message,
            },
        )

    # ==========================
    # UTILS
    # ==========================
    @staticmethod
    def _format_phone(phone: str) -> str:
        digits = "".join(filter(str.isdigit, phone))
        if len(digits) in (10, 11):
            digits = "55" + digits
        return digits
