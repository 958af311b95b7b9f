"""
Tests for `assistant_api/mock_client.py` and the `get_assistant_client` factory.

The mock stands in for the remote assistant in local runs and throughout the test suite,
so its scripting knobs are pinned down here.
"""

import json

import pytest

from assistant_api import MockAssistantClient, get_assistant_client
from assistant_api.base import AssistantAPIError, SessionNotFound
from shared.models import RunStatus


def test_full_turn_produces_json_reply():
    client = MockAssistantClient()
    session_id = client.create_session()
    client.post_message(session_id, "Meeting about the project https://example.com/doc")
    run_id = client.submit_run(session_id)

    assert client.get_run_status(session_id, run_id) is RunStatus.COMPLETED
    reply = json.loads(client.get_latest_reply(session_id))
    assert reply["category"] == "work"
    assert reply["keywords"] == ["meeting", "project"]
    assert reply["links"] == ["https://example.com/doc"]


def test_status_script_last_entry_repeats():
    client = MockAssistantClient(status_script=[RunStatus.QUEUED, RunStatus.IN_PROGRESS])
    session_id = client.create_session()
    client.post_message(session_id, "x")
    run_id = client.submit_run(session_id)

    statuses = [client.get_run_status(session_id, run_id) for _ in range(4)]

    assert statuses == [RunStatus.QUEUED, RunStatus.IN_PROGRESS, RunStatus.IN_PROGRESS, RunStatus.IN_PROGRESS]
    assert client.get_latest_reply(session_id) is None


def test_reply_text_override():
    client = MockAssistantClient(reply_text="not json")
    session_id = client.create_session()
    client.post_message(session_id, "x")
    run_id = client.submit_run(session_id)
    client.get_run_status(session_id, run_id)
    assert client.get_latest_reply(session_id) == "not json"


def test_fail_on_and_call_counts():
    client = MockAssistantClient(fail_on={"create_session"})
    with pytest.raises(AssistantAPIError):
        client.create_session()
    assert client.calls["create_session"] == 1


def test_expired_session():
    client = MockAssistantClient()
    session_id = client.create_session()
    client.expire_session(session_id)

    assert client.session_exists(session_id) is False
    with pytest.raises(SessionNotFound):
        client.post_message(session_id, "x")
    with pytest.raises(SessionNotFound):
        client.delete_session(session_id)


def test_factory_mock_provider():
    client = get_assistant_client({"assistant": {"provider": "Mock"}})
    assert isinstance(client, MockAssistantClient)


def test_factory_rejects_unknown_provider():
    with pytest.raises(ValueError):
        get_assistant_client({"assistant": {"provider": "nebius"}})


def test_active_run_blocks_new_messages_until_cancelled():
    client = MockAssistantClient(status_script=[RunStatus.IN_PROGRESS])
    session_id = client.create_session()
    client.post_message(session_id, "first")
    run_id = client.submit_run(session_id)

    with pytest.raises(AssistantAPIError):
        client.post_message(session_id, "second")

    client.cancel_run(session_id, run_id)

    assert client.get_run_status(session_id, run_id) is RunStatus.CANCELLED
    client.post_message(session_id, "second")


def test_terminal_run_frees_the_session():
    client = MockAssistantClient()
    session_id = client.create_session()
    client.post_message(session_id, "first")
    run_id = client.submit_run(session_id)
    client.get_run_status(session_id, run_id)

    client.post_message(session_id, "second")
