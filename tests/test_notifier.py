"""Tests for Discord notifications and the fire-and-forget dispatcher."""

import json

import httpx
import pytest

from oracle_gateway.bootstrap import build_backend
from oracle_gateway.notify.discord import AlertKind, DiscordNotifier
from oracle_gateway.notify.dispatch import NotificationDispatcher
from oracle_gateway.settings import DiscordSettings, Settings
from tests.conftest import RecordingSink

WEBHOOK = "https://discord.example/api/webhooks/1/token"


def _notifier(status_code: int = 204, **settings):
    sent: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(json.loads(request.content))
        return httpx.Response(status_code)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    config = DiscordSettings(webhook_url=settings.pop("webhook_url", WEBHOOK), **settings)
    return DiscordNotifier(config, client=client), sent


# ---------------------------------------------------------------------------
# DiscordNotifier
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_transaction_alert_is_delivered():
    notifier, sent = _notifier()

    delivered = await notifier.notify(
        AlertKind.TRANSACTION,
        {"coin": "BTC", "function": "set_sgx_data", "status": "success", "transaction_id": "at1abc"},
    )
    await notifier.close()

    assert delivered is True
    (embed,) = sent[0]["embeds"]
    assert embed["title"] == "Transaction Alert"
    assert {"name": "Transaction ID", "value": "`at1abc`", "inline": False} in embed["fields"]


@pytest.mark.asyncio
async def test_error_alert_includes_context():
    notifier, sent = _notifier()
    try:
        raise RuntimeError("boom")
    except RuntimeError as e:
        error = e

    assert await notifier.notify("error", {"error": error, "context": {"coin": "ETH"}})
    await notifier.close()

    fields = {field["name"]: field["value"] for field in sent[0]["embeds"][0]["fields"]}
    assert "boom" in fields["Error"]
    assert "RuntimeError" in fields["Stack Trace"]
    assert '"coin": "ETH"' in fields["Context"]


@pytest.mark.asyncio
async def test_system_health_warning_lists_process_usage():
    notifier, sent = _notifier(enable_system_health_alert=True)

    delivered = await notifier.notify(
        AlertKind.SYSTEM_HEALTH,
        {"healthy": False, "process": "SET_SGX_DATA:BTC", "memory_mb": 2048.5},
    )
    await notifier.close()

    assert delivered is True
    (embed,) = sent[0]["embeds"]
    assert embed["title"] == "System Health Warning"
    assert {"name": "memory_mb", "value": "2048.5", "inline": True} in embed["fields"]


@pytest.mark.asyncio
async def test_disabled_kind_is_not_sent():
    notifier, sent = _notifier()

    assert notifier.enabled(AlertKind.CRON_JOB) is False
    assert await notifier.notify(AlertKind.CRON_JOB, {"job": "periodic:BTC", "status": "started"}) is False
    await notifier.close()

    assert sent == []


@pytest.mark.asyncio
async def test_missing_webhook_is_not_sent():
    notifier, sent = _notifier(webhook_url=None)

    assert notifier.configured is False
    assert await notifier.notify(AlertKind.ERROR, {"error": "x"}) is False
    await notifier.close()

    assert sent == []


@pytest.mark.asyncio
async def test_http_failure_returns_false():
    notifier, sent = _notifier(status_code=500)

    assert await notifier.notify(AlertKind.SERVICE_STATUS, {"status": "online"}) is False
    await notifier.close()

    assert len(sent) == 1


def test_long_field_values_are_truncated():
    notifier = DiscordNotifier(DiscordSettings(webhook_url=WEBHOOK))

    embed = notifier._price_update_embed({"coin": "BTC", "status": "success", "price": "9" * 2000})

    price = next(field for field in embed["fields"] if field["name"] == "Price")
    assert len(price["value"]) == 1024
    assert price["value"].endswith("...")


# ---------------------------------------------------------------------------
# NotificationDispatcher
# ---------------------------------------------------------------------------


class FlakySink:
    def __init__(self):
        self.received: list[str] = []

    async def notify(self, kind, payload) -> bool:
        if payload.get("fail"):
            raise RuntimeError("sink down")
        self.received.append(kind)
        return True


@pytest.mark.asyncio
async def test_dispatcher_delivers_in_background():
    sink = FlakySink()
    dispatcher = NotificationDispatcher(sink)

    dispatcher.emit(AlertKind.ERROR, {"fail": True})
    dispatcher.emit(AlertKind.TRANSACTION, {})
    assert sink.received == []

    await dispatcher.drain()

    assert sink.received == [AlertKind.TRANSACTION]


def test_dispatcher_without_loop_drops_silently():
    sink = FlakySink()

    NotificationDispatcher(sink).emit(AlertKind.ERROR, {})

    assert sink.received == []


@pytest.mark.asyncio
async def test_dispatcher_without_sink_is_a_noop():
    dispatcher = NotificationDispatcher(None)

    dispatcher.emit(AlertKind.ERROR, {})
    await dispatcher.drain()


@pytest.mark.asyncio
async def test_cli_memory_alert_is_dispatched_as_system_health(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    sink = RecordingSink()
    dispatcher = NotificationDispatcher(sink)
    settings = Settings(_env_file=None, leo_cli={"memory_alert_mb": 512})
    backend = build_backend(settings, "cli", dispatcher)

    backend._on_resource_alert({"healthy": False, "memory_mb": 600.0})
    await dispatcher.drain()

    assert backend._memory_alert_mb == 512
    assert sink.sent == [(AlertKind.SYSTEM_HEALTH, {"healthy": False, "memory_mb": 600.0})]
