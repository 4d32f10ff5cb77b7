"""Tests for the notarizer verification tool."""

import pytest

from oracle_gateway.settings import NotarizerSettings, Settings
from oracle_gateway.tools import verify_notarizers as tool
from tests.conftest import notarize_payload


class StubClient:
    def __init__(self, endpoint, timeout=30.0):
        self.endpoint = endpoint
        self.closed = False

    async def notarize(self, request):
        if self.endpoint.address == "down.example":
            raise ConnectionError("refused")
        assert request.url == "price_feed: eth"
        return [notarize_payload("3000.5")]

    async def enclaves_info(self):
        return [{"info": {"aleo": {"uniqueId": "99field"}}}]

    async def close(self):
        self.closed = True


def _settings(*addresses: str) -> Settings:
    return Settings(
        _env_file=None,
        notarizers=[NotarizerSettings(address=address) for address in addresses],
    )


@pytest.mark.asyncio
async def test_reports_healthy_when_any_notarizer_answers(monkeypatch):
    monkeypatch.setattr(tool, "NotarizerClient", StubClient)

    ok = await tool.verify_notarizers(
        _settings("up.example", "down.example"), "ETH", info=True, timeout=5
    )

    assert ok is True


@pytest.mark.asyncio
async def test_reports_failure_when_none_answer(monkeypatch):
    monkeypatch.setattr(tool, "NotarizerClient", StubClient)

    ok = await tool.verify_notarizers(_settings("down.example"), "ETH", info=False, timeout=5)

    assert ok is False


@pytest.mark.asyncio
async def test_rejects_non_positive_timeout(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)

    assert await tool.amain(["BTC", "--timeout", "0"]) == 1
