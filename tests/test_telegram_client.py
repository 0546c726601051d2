import asyncio
import json

import httpx
import pytest

from tardy_pulse.models import NewLateReport, ReportStatus
from tardy_pulse.telegram_client import TelegramApiError, TelegramClient
from tardy_pulse.workflow import LateReportWorkflow

from conftest import NOW


def _client(handler):
    return TelegramClient("test-token", transport=httpx.MockTransport(handler))


def test_ok_response_returns_result():
    def handler(request):
        assert request.url.path == "/bottest-token/sendMessage"
        return httpx.Response(200, json={"ok": True, "result": {"message_id": 5}})

    client = _client(handler)

    assert asyncio.run(client.send_message(1001, "hi")) == {"message_id": 5}


def test_api_error_carries_description():
    def handler(request):
        return httpx.Response(400, json={"ok": False, "description": "Bad Request: chat not found"})

    client = _client(handler)

    with pytest.raises(TelegramApiError, match="chat not found"):
        asyncio.run(client.send_message(1001, "hi"))


def test_html_gateway_error_becomes_api_error():
    def handler(request):
        return httpx.Response(502, text="<html><body>Bad Gateway</body></html>")

    client = _client(handler)

    with pytest.raises(TelegramApiError, match="HTTP 502") as excinfo:
        asyncio.run(client.send_message(1001, "hi"))
    assert excinfo.value.method == "sendMessage"


def test_confirm_survives_gateway_error_for_one_admin(settings, database, repository, sessions, make_user, make_group):
    def handler(request):
        payload = json.loads(request.content)
        if str(payload["chat_id"]) == "9001":
            return httpx.Response(502, text="<html>Bad Gateway</html>")
        return httpx.Response(200, json={"ok": True, "result": {"message_id": 1}})

    workflow = LateReportWorkflow(settings, database, repository, sessions, _client(handler), now=lambda: NOW)
    make_user("9001", "Boss", user_type="admin")
    make_user("9002", "Chief", user_type="superadmin")
    alice = make_user("1001", "Alice")
    group = make_group()
    report = repository.create(
        NewLateReport(
            user_id=alice.id,
            group_id=group.id,
            employee_name="Alice",
            is_before_nine=True,
            report_time="2026-10-19T08:30:00.000",
            reason="Train stuck outside the station",
        )
    )

    result = asyncio.run(workflow.confirm(report.id, alice))

    assert result.outcome == "confirmed"
    assert result.notified == 1
    assert repository.get(report.id).status is ReportStatus.PROCESSED
