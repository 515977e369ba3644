"""
Tests for WebSocket command dispatch.
"""

import asyncio
import gc

import pytest

from bulkdesk.models.domain.job_domain import JobKey, JobStatus
from bulkdesk.services.errors import ZohoOAuthError
from bulkdesk.services.session_service import DeskSession

SESSION = "session-1"


@pytest.fixture
def session_for(make_container, emitter):
    def _make(desk, **kwargs) -> DeskSession:
        return DeskSession(SESSION, emitter, make_container(desk, **kwargs))

    return _make


def frame(command, **data):
    return {"command": command, "data": data}


@pytest.mark.asyncio
async def test_unknown_command(session_for, fake_desk, emitter):
    session = session_for(fake_desk)

    assert session.handle_frame(frame("explode")) is None

    [error] = emitter.named("command-error")
    assert error == {"command": "explode", "message": "Unknown command: explode"}


@pytest.mark.asyncio
async def test_malformed_frame(session_for, fake_desk, emitter):
    session = session_for(fake_desk)

    session.handle_frame(None)
    session.handle_frame({"data": {}})

    assert emitter.names() == ["command-error", "command-error"]


@pytest.mark.asyncio
async def test_invalid_payload(session_for, fake_desk, emitter):
    session = session_for(fake_desk)

    session.handle_frame(frame("start-bulk", profileName="acme", emails=["a@x.com"], delay=-1))

    [error] = emitter.named("command-error")
    assert error["command"] == "start-bulk"
    assert error["message"].startswith("Invalid delay")
    assert fake_desk.created == []


@pytest.mark.asyncio
async def test_start_bulk_runs_job(session_for, fake_desk, emitter):
    session = session_for(fake_desk)

    session.handle_frame(
        frame("start-bulk", selectedProfileName="acme", emails=["a@x.com", "b@x.com"])
    )
    await session.join()

    assert emitter.names() == ["item-result", "item-result", "job-completed"]


@pytest.mark.asyncio
async def test_finished_jobs_release_their_cancel_tokens(session_for, fake_desk, emitter):
    session = session_for(fake_desk)

    for _ in range(3):
        session.handle_frame(frame("start-bulk", profileName="acme", emails=["a@x.com"]))
        await session.join()
    gc.collect()

    assert emitter.names().count("job-completed") == 3
    assert len(session._job_tokens) == 0


@pytest.mark.asyncio
async def test_token_outlives_job_while_verifications_pending(session_for, fake_desk, emitter):
    session = session_for(fake_desk, settle_delay_seconds=30)

    session.handle_frame(
        frame("start-bulk", profileName="acme", emails=["a@x.com"], verifyEmail=True)
    )
    await session.join()
    gc.collect()

    assert emitter.names() == ["item-result", "job-completed"]
    [token] = list(session._job_tokens)
    assert not token.cancelled

    session.disconnect()
    assert token.cancelled
    await session._services.verification_pool.shutdown()


@pytest.mark.asyncio
async def test_pause_resume_end_apply_inline(session_for, fake_desk, emitter, eventually):
    session = session_for(fake_desk)
    registry = session._services.registry
    key = JobKey(SESSION, "acme")

    session.handle_frame(
        frame("start-bulk", profileName="acme", emails=["a@x.com", "b@x.com"], delay=5)
    )
    await eventually(lambda: len(emitter.named("item-result")) == 1)

    session.handle_frame(frame("pause", profileName="acme"))
    assert registry.get(key).status is JobStatus.PAUSED
    session.handle_frame(frame("resume", profileName="acme"))
    assert registry.get(key).status is JobStatus.RUNNING
    session.handle_frame(frame("end", profileName="acme"))
    await asyncio.wait_for(session.join(), 2)

    assert emitter.names() == ["item-result", "job-ended"]


@pytest.mark.asyncio
async def test_control_for_unknown_job_is_ignored(session_for, fake_desk, emitter):
    session = session_for(fake_desk)

    session.handle_frame(frame("pause", profileName="acme"))

    assert emitter.events == []


@pytest.mark.asyncio
async def test_disconnect_removes_jobs_and_silences_events(
    session_for, fake_desk, emitter, eventually
):
    session = session_for(fake_desk)
    session.handle_frame(
        frame("start-bulk", profileName="acme", emails=["a@x.com", "b@x.com"], delay=5)
    )
    await eventually(lambda: len(emitter.named("item-result")) == 1)

    assert session.disconnect() == 1
    await asyncio.wait_for(session.join(), 1)

    assert emitter.closed
    assert emitter.names() == ["item-result"]
    assert fake_desk.created == ["a@x.com"]


@pytest.mark.asyncio
async def test_send_test_ticket_with_verification(session_for, fake_desk, emitter, eventually):
    session = session_for(fake_desk)

    session.handle_frame(
        frame("send-test-ticket", profileName="acme", email="t@x.com", verifyEmail=True)
    )
    await session.join()
    await eventually(lambda: emitter.named("test-ticket-verification"))

    [result] = emitter.named("test-ticket-result")
    assert result["success"] is True
    assert result["ticketNumber"] == "100"
    [verification] = emitter.named("test-ticket-verification")
    assert verification["ticketNumber"] == "100"


@pytest.mark.asyncio
async def test_send_test_ticket_requires_email(session_for, fake_desk, emitter):
    session = session_for(fake_desk)

    session.handle_frame(frame("send-test-ticket", profileName="acme"))
    await session.join()

    [result] = emitter.named("test-ticket-result")
    assert result["success"] is False
    assert result["error"] == "Missing email or profile."


@pytest.mark.asyncio
async def test_verify_single_ticket(session_for, fake_desk, emitter):
    fake_desk.history["WorkflowHistory"] = {"data": [{"event": "sent"}]}
    session = session_for(fake_desk)

    session.handle_frame(
        frame("verify-single-ticket", profileName="acme", ticket={"id": "9", "ticketNumber": "9"})
    )
    await session.join()

    [update] = emitter.named("single-ticket-verification")
    assert update["success"] is True


@pytest.mark.asyncio
async def test_check_api_status(session_for, fake_desk, emitter):
    session = session_for(fake_desk)

    session.handle_frame(frame("check-api-status", profileName="acme"))
    await session.join()

    [status] = emitter.named("api-status")
    assert status["success"] is True
    assert status["message"] == "Token is valid. Connection to Zoho API is successful."


@pytest.mark.asyncio
async def test_check_api_status_failure(session_for, fake_desk, emitter):
    fake_desk.connection_error = ZohoOAuthError("invalid_code")
    session = session_for(fake_desk)

    session.handle_frame(frame("check-api-status", profileName="acme"))
    await session.join()

    [status] = emitter.named("api-status")
    assert status["success"] is False
    assert status["message"] == "Connection failed: invalid_code"


@pytest.mark.asyncio
async def test_email_failures_are_joined_with_ticket_log(session_for, fake_desk, emitter):
    fake_desk.failure_alerts = {
        "data": [
            {"ticketNumber": "100", "reason": "Bounced"},
            {"ticketNumber": "555", "reason": "Blocked"},
        ]
    }
    session = session_for(fake_desk)
    session._services.ticket_log.append("100", "a@x.com")

    session.handle_frame(frame("get-email-failures", profileName="acme"))
    await session.join()

    [result] = emitter.named("email-failures")
    assert result["success"] is True
    assert [f["email"] for f in result["data"]] == ["a@x.com", "Unknown"]


@pytest.mark.asyncio
async def test_clear_email_failures_and_ticket_logs(session_for, fake_desk, emitter):
    session = session_for(fake_desk)
    session._services.ticket_log.append("100", "a@x.com")

    session.handle_frame(frame("clear-email-failures", profileName="acme"))
    session.handle_frame(frame("clear-ticket-logs"))
    await session.join()

    assert emitter.named("clear-email-failures-result")[0]["success"] is True
    assert emitter.named("clear-ticket-logs-result")[0]["success"] is True
    assert fake_desk.cleared == 1
    assert session._services.ticket_log.read() == []


@pytest.mark.asyncio
async def test_mail_reply_address(session_for, fake_desk, emitter):
    session = session_for(fake_desk)

    session.handle_frame(frame("get-mail-reply-address", profileName="acme"))
    session.handle_frame(frame("get-mail-reply-address", profileName="bare"))
    session.handle_frame(
        frame("update-mail-reply-address", profileName="bare", displayName="Support")
    )
    await session.join()

    configured, not_configured = emitter.named("mail-reply-address")
    assert configured["data"]["displayName"] == "Acme Support"
    assert not_configured["notConfigured"] is True
    [updated] = emitter.named("mail-reply-address-updated")
    assert updated["success"] is False
    assert updated["error"] == "Mail Reply Address ID is not configured for this profile."


@pytest.mark.asyncio
async def test_profile_tool_with_unknown_profile(session_for, fake_desk, emitter):
    session = session_for(fake_desk)

    session.handle_frame(frame("clear-email-failures", profileName="ghost"))
    await session.join()

    [result] = emitter.named("clear-email-failures-result")
    assert result == {
        "success": False,
        "message": None,
        "error": "Profile not found.",
        "data": None,
        "fullResponse": None,
        "notConfigured": None,
        "profileName": "ghost",
    }
