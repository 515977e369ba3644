"""
Tests for the Zoho Desk API client against a mocked transport.
"""

import json

import httpx
import pytest

from bulkdesk.services.errors import (
    NETWORK_ERROR_MESSAGE,
    ProfileValidationError,
    ZohoHttpError,
    ZohoMalformedResponseError,
    ZohoNetworkError,
)
from bulkdesk.services.zoho_desk_service import NOTIFICATION_RULE_HISTORY


@pytest.mark.asyncio
async def test_create_ticket_sends_auth_headers_and_body(make_desk_service, profile):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["request"] = request
        return httpx.Response(200, json={"id": "9001", "ticketNumber": "101"})

    desk = make_desk_service(handler)
    ticket = await desk.create_ticket(profile, "a@x.com", "Hello", "<p>Body</p>")

    request = seen["request"]
    assert ticket == {"id": "9001", "ticketNumber": "101"}
    assert request.method == "POST"
    assert str(request.url) == "https://desk.test/api/v1/tickets"
    assert request.headers["Authorization"] == "Zoho-oauthtoken access-1"
    assert request.headers["orgId"] == "111"
    assert json.loads(request.content) == {
        "subject": "Hello",
        "description": "<p>Body</p>",
        "departmentId": "222",
        "contact": {"email": "a@x.com"},
        "channel": "Email",
    }


@pytest.mark.asyncio
async def test_send_reply_body(make_desk_service, profile):
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"status": "SUCCESS"})

    await make_desk_service(handler).send_reply(profile, "9001", "a@x.com", "<p>Hi</p>")

    assert seen["path"] == "/api/v1/tickets/9001/sendReply"
    assert seen["body"] == {
        "fromEmailAddress": "support@acme.test",
        "to": "a@x.com",
        "content": "<p>Hi</p>",
        "contentType": "html",
        "channel": "EMAIL",
    }


@pytest.mark.asyncio
async def test_send_reply_requires_from_address(make_desk_service, bare_profile):
    def handler(request):
        raise AssertionError("no request expected")

    with pytest.raises(ProfileValidationError, match="fromEmailAddress"):
        await make_desk_service(handler).send_reply(bare_profile, "1", "a@x.com", "hi")


@pytest.mark.asyncio
async def test_history_uses_event_filter(make_desk_service, profile):
    seen = {}

    def handler(request):
        seen["url"] = request.url
        return httpx.Response(200, json={"data": [{"event": "sent"}]})

    result = await make_desk_service(handler).get_ticket_history(
        profile, "9001", NOTIFICATION_RULE_HISTORY
    )

    assert result == {"data": [{"event": "sent"}]}
    assert seen["url"].path == "/api/v1/tickets/9001/History"
    assert seen["url"].params["eventFilter"] == "NotificationRuleHistory"


@pytest.mark.asyncio
async def test_failure_alerts_filtered_by_department(make_desk_service, profile):
    seen = {}

    def handler(request):
        seen["request"] = request
        return httpx.Response(200, json={"data": []})

    await make_desk_service(handler).get_email_failure_alerts(profile, limit=50)

    params = seen["request"].url.params
    assert params["department"] == "222"
    assert params["limit"] == "50"


@pytest.mark.asyncio
async def test_clear_failure_alerts_accepts_empty_body(make_desk_service, profile):
    def handler(request):
        assert request.method == "PATCH"
        return httpx.Response(204)

    assert await make_desk_service(handler).clear_email_failure_alerts(profile) == {}


@pytest.mark.asyncio
async def test_http_error_is_normalized(make_desk_service, profile):
    def handler(request):
        return httpx.Response(400, json={"message": "Invalid department"})

    with pytest.raises(ZohoHttpError) as exc_info:
        await make_desk_service(handler).create_ticket(profile, "a@x.com", "s", "d")

    assert exc_info.value.message == "Invalid department"
    assert exc_info.value.full_response == {"message": "Invalid department"}


@pytest.mark.asyncio
async def test_html_success_body_is_malformed(make_desk_service, profile):
    def handler(request):
        return httpx.Response(200, text="<html><title>Maintenance</title></html>")

    with pytest.raises(ZohoMalformedResponseError, match="Zoho Server Error: Maintenance"):
        await make_desk_service(handler).create_ticket(profile, "a@x.com", "s", "d")


@pytest.mark.asyncio
async def test_transport_failure_is_network_error(make_desk_service, profile):
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(ZohoNetworkError) as exc_info:
        await make_desk_service(handler).create_ticket(profile, "a@x.com", "s", "d")

    assert exc_info.value.message == NETWORK_ERROR_MESSAGE


@pytest.mark.asyncio
async def test_unauthorized_invalidates_cached_token(make_desk_service, fake_oauth, profile):
    responses = [httpx.Response(401, json={"message": "Invalid OAuth token"})]

    def handler(request):
        if responses:
            return responses.pop(0)
        return httpx.Response(200, json={"id": "1", "ticketNumber": "1"})

    desk = make_desk_service(handler)
    with pytest.raises(ZohoHttpError):
        await desk.create_ticket(profile, "a@x.com", "s", "d")
    await desk.create_ticket(profile, "a@x.com", "s", "d")

    assert fake_oauth.calls == 2


@pytest.mark.asyncio
async def test_mail_reply_address_requires_id(make_desk_service, bare_profile):
    def handler(request):
        raise AssertionError("no request expected")

    with pytest.raises(ProfileValidationError, match="Mail Reply Address ID"):
        await make_desk_service(handler).update_mail_reply_address(bare_profile, "Support")


@pytest.mark.asyncio
async def test_check_connection_hides_tokens(make_desk_service, profile):
    def handler(request):
        raise AssertionError("no request expected")

    data = await make_desk_service(handler).check_connection(profile)

    assert "access_token" not in data
    assert data["expires_in"] == 3600
