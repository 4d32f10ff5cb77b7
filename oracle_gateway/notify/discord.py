"""Discord webhook notification sink."""

import json
import logging
import traceback
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import httpx

from oracle_gateway.infrastructure import http_client
from oracle_gateway.settings import DiscordSettings

logger = logging.getLogger(__name__)

RED = 0xFF0000
GREEN = 0x00FF00
BLUE = 0x0099FF
ORANGE = 0xFFA500


class AlertKind(str, Enum):
    ERROR = "error"
    CRON_JOB = "cron_job"
    SERVICE_STATUS = "service_status"
    PRICE_UPDATE = "price_update"
    TRANSACTION = "transaction"
    SYSTEM_HEALTH = "system_health"


def _field(name: str, value: Any, inline: bool = False) -> dict[str, Any]:
    # Discord rejects field values longer than 1024 characters
    text = str(value)
    if len(text) > 1024:
        text = text[:1021] + "..."
    return {"name": name, "value": text, "inline": inline}


def _code(text: str) -> str:
    return f"```{text[:1000]}```"


def _embed(title: str, color: int, footer: str, fields: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "title": title,
        "color": color,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "fields": fields,
        "footer": {"text": footer},
    }


class DiscordNotifier:
    """Sends alert embeds to a Discord webhook.

    ``notify(kind, payload)`` is the single entry point; each kind can be
    switched off independently. Delivery is best-effort: failures are logged
    and reported as ``False``, never raised.
    """

    def __init__(self, settings: DiscordSettings, client: httpx.AsyncClient | None = None):
        self._settings = settings
        self._client = client
        self._builders = {
            AlertKind.ERROR: (settings.enable_error_alert, self._error_embed),
            AlertKind.CRON_JOB: (settings.enable_cron_job_alert, self._cron_job_embed),
            AlertKind.SERVICE_STATUS: (
                settings.enable_service_status_alert,
                self._service_status_embed,
            ),
            AlertKind.PRICE_UPDATE: (settings.enable_price_update_alert, self._price_update_embed),
            AlertKind.TRANSACTION: (settings.enable_transaction_alert, self._transaction_embed),
            AlertKind.SYSTEM_HEALTH: (
                settings.enable_system_health_alert,
                self._system_health_embed,
            ),
        }

    @property
    def configured(self) -> bool:
        return bool(self._settings.webhook_url)

    def enabled(self, kind: AlertKind | str) -> bool:
        enabled, _ = self._builders[AlertKind(kind)]
        return enabled

    async def notify(self, kind: AlertKind | str, payload: dict[str, Any]) -> bool:
        kind = AlertKind(kind)
        enabled, builder = self._builders[kind]
        if not enabled or not self.configured:
            return False
        try:
            embed = builder(payload)
        except Exception as e:
            logger.error(f"Failed to build {kind.value} notification: {e}", exc_info=True)
            return False
        return await self.send_embed(embed)

    async def send_embed(self, embed: dict[str, Any]) -> bool:
        if not self._settings.webhook_url:
            return False
        try:
            response = await http_client.request(
                "POST",
                self._settings.webhook_url,
                json={"embeds": [embed]},
                headers={"Content-Type": "application/json"},
                timeout=10.0,
                client=self._get_client(),
                attempts=1,
            )
        except Exception as e:
            logger.error(f"Failed to send Discord notification: {e}")
            return False

        if response.status_code == 204 or response.is_success:
            logger.debug("Discord notification sent")
            return True
        logger.error(f"Discord notification failed: HTTP {response.status_code}")
        return False

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=10.0)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _error_embed(self, payload: dict[str, Any]) -> dict[str, Any]:
        error = payload.get("error")
        message = str(error) if error else "Unknown error"
        if isinstance(error, BaseException) and error.__traceback__ is not None:
            stack = "".join(traceback.format_exception(error)[-5:])
        else:
            stack = "No stack trace"

        fields = [_field("Error", _code(message)), _field("Stack Trace", _code(stack))]
        context = payload.get("context")
        if context:
            fields.append(_field("Context", _code(json.dumps(context, indent=2, default=str))))
        return _embed("Aleo Oracle Error Alert", RED, "Aleo Oracle System", fields)

    def _cron_job_embed(self, payload: dict[str, Any]) -> dict[str, Any]:
        status = str(payload.get("status", "unknown"))
        titles = {
            "success": (GREEN, "Cron Job Completed Successfully"),
            "failed": (RED, "Cron Job Failed"),
            "started": (BLUE, "Cron Job Started"),
        }
        color, title = titles.get(status, (ORANGE, "Cron Job Alert"))

        fields = [_field("Status", status.upper(), inline=True)]
        if payload.get("duration_ms") is not None:
            fields.append(_field("Duration", f"{payload['duration_ms']}ms", inline=True))
        if payload.get("error"):
            fields.append(_field("Error Details", _code(str(payload["error"]))))
        return _embed(f"{title}: {payload.get('job', '')}", color, "Aleo Oracle Cron System", fields)

    def _service_status_embed(self, payload: dict[str, Any]) -> dict[str, Any]:
        status = str(payload.get("status", "unknown"))
        color = {"online": GREEN, "offline": RED}.get(status, ORANGE)

        fields = [
            _field("Service", payload.get("service", "oracle-gateway"), inline=True),
            _field("Status", status.upper(), inline=True),
        ]
        details = payload.get("details") or {}
        if details:
            fields.append(
                _field("Details", "\n".join(f"**{key}:** {value}" for key, value in details.items()))
            )
        return _embed("Service Status Alert", color, "Aleo Oracle Monitoring", fields)

    def _price_update_embed(self, payload: dict[str, Any]) -> dict[str, Any]:
        coin = payload.get("coin", "")
        status = str(payload.get("status", "unknown"))
        color, title = {
            "success": (GREEN, "Price Update Successful"),
            "failed": (RED, "Price Update Failed"),
        }.get(status, (ORANGE, "Price Update Alert"))

        fields = [_field("Coin", coin, inline=True), _field("Status", status.upper(), inline=True)]
        if payload.get("price"):
            fields.append(_field("Price", payload["price"], inline=True))
        if payload.get("error"):
            fields.append(_field("Error", _code(str(payload["error"]))))
        return _embed(f"{title}: {coin}", color, "Aleo Oracle Price System", fields)

    def _transaction_embed(self, payload: dict[str, Any]) -> dict[str, Any]:
        status = str(payload.get("status", "unknown"))
        color = {"success": GREEN, "failed": RED}.get(status, ORANGE)

        fields = [
            _field("Coin", payload.get("coin", ""), inline=True),
            _field("Function", payload.get("function", ""), inline=True),
            _field("Status", status.upper(), inline=True),
        ]
        if payload.get("transaction_id"):
            fields.append(_field("Transaction ID", f"`{payload['transaction_id']}`"))
        if payload.get("error"):
            fields.append(_field("Error", _code(str(payload["error"]))))
        return _embed("Transaction Alert", color, "Aleo Oracle Transactions", fields)

    def _system_health_embed(self, payload: dict[str, Any]) -> dict[str, Any]:
        healthy = bool(payload.get("healthy", True))
        fields = [_field(str(key), value, inline=True) for key, value in payload.items()]
        return _embed(
            "System Health Report" if healthy else "System Health Warning",
            GREEN if healthy else ORANGE,
            "Aleo Oracle Monitoring",
            fields,
        )
