"""Tests for the agent loop's checkpoint handling, using a scripted LLM client."""
import asyncio
import json
import threading
from types import SimpleNamespace

import pytest

from flowbuilder.agent.react_agent import run_agent
from flowbuilder.config import Settings
from flowbuilder.models.checkpoint import Checkpoint, CheckpointStatus
from flowbuilder.models.field import Field
from flowbuilder.routers.agent import watch_disconnect


class FakeMessage:
    def __init__(self, content=None, tool_calls=None):
        self.content = content
        self.tool_calls = tool_calls

    def model_dump(self):
        return {
            "role": "assistant",
            "content": self.content,
            "tool_calls": [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {"name": tc.function.name, "arguments": tc.function.arguments},
                }
                for tc in self.tool_calls or []
            ],
        }


def tool_turn(*calls):
    tool_calls = [
        SimpleNamespace(
            id=f"call_{i}",
            function=SimpleNamespace(name=name, arguments=json.dumps(args)),
        )
        for i, (name, args) in enumerate(calls)
    ]
    return _response(FakeMessage(tool_calls=tool_calls))


def final_turn(text):
    return _response(FakeMessage(content=text))


def _response(message):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message)],
        usage=SimpleNamespace(total_tokens=10),
    )


class ScriptedClient:
    """Stands in for ``openai.OpenAI``; returns (or raises) scripted turns in order."""

    def __init__(self, *turns):
        self.turns = list(turns)
        self.requests = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _create(self, **kwargs):
        self.requests.append(kwargs)
        turn = self.turns.pop(0)
        if isinstance(turn, Exception):
            raise turn
        if callable(turn):
            return turn()
        return turn


@pytest.fixture
def agent_settings(app_settings):
    return Settings(DATABASE_URL=app_settings.DATABASE_URL, OPENAI_API_KEY="", AGENT_MAX_ITERATIONS=4)


def _only_checkpoint(db):
    db.expire_all()
    return db.query(Checkpoint).one()


class TestWithoutClient:
    def test_placeholder_when_not_configured(self, db, manager, case, agent_settings):
        result = run_agent(db, manager, "add a field", case_id=case.id, app_settings=agent_settings)
        assert "isn't configured" in result["response"]
        assert result["checkpoint"] is None
        assert db.query(Checkpoint).count() == 0


class TestCheckpointOutcome:
    def test_successful_turn_commits(self, db, manager, case, agent_settings):
        client = ScriptedClient(
            tool_turn(("saveFields", {"caseid": case.id, "fields": [{"name": "email"}]})),
            final_turn("Added an email field."),
        )

        result = run_agent(db, manager, "add email", case_id=case.id, client=client, app_settings=agent_settings)

        assert result["response"] == "Added an email field."
        assert result["cancelled"] is False
        assert result["checkpoint"]["status"] == "historical"
        checkpoint = _only_checkpoint(db)
        assert checkpoint.status == CheckpointStatus.historical
        assert checkpoint.user_command == "add email"
        assert checkpoint.tools_executed == ["saveFields"]
        assert checkpoint.changes_count == 1
        assert db.query(Field).count() == 1
        # tool results are fed back to the model
        assert client.requests[1]["messages"][-1]["role"] == "tool"

    def test_tool_error_is_reported_and_turn_continues(self, db, manager, case, agent_settings):
        client = ScriptedClient(
            tool_turn(("deleteField", {"caseid": case.id, "id": 404})),
            final_turn("That field does not exist."),
        )

        result = run_agent(db, manager, "delete it", case_id=case.id, client=client, app_settings=agent_settings)

        assert result["tool_calls"][0]["error"]
        assert "error" in json.loads(client.requests[1]["messages"][-1]["content"])
        assert _only_checkpoint(db).status == CheckpointStatus.historical

    def test_llm_error_rolls_back(self, db, manager, case, agent_settings):
        client = ScriptedClient(
            tool_turn(("saveFields", {"caseid": case.id, "fields": [{"name": "email"}]})),
            RuntimeError("service unavailable"),
        )

        result = run_agent(db, manager, "add email", case_id=case.id, client=client, app_settings=agent_settings)

        assert "trouble connecting" in result["response"]
        assert result["checkpoint"]["status"] == "rolled_back"
        assert _only_checkpoint(db).status == CheckpointStatus.rolled_back
        assert db.query(Field).count() == 0

    def test_abort_after_tool_batch_rolls_back(self, db, manager, case, agent_settings):
        client = ScriptedClient(
            tool_turn(("saveFields", {"caseid": case.id, "fields": [{"name": "email"}]})),
            final_turn("never reached"),
        )
        calls = iter([False, True])

        result = run_agent(
            db, manager, "add email", case_id=case.id, client=client,
            should_abort=lambda: next(calls), app_settings=agent_settings,
        )

        assert result["cancelled"] is True
        assert _only_checkpoint(db).status == CheckpointStatus.rolled_back
        assert db.query(Field).count() == 0
        assert len(client.requests) == 1

    def test_unexpected_error_rolls_back_and_raises(self, db, manager, case, agent_settings):
        client = ScriptedClient(
            tool_turn(("saveFields", {"caseid": case.id, "fields": [{"name": "email"}]})),
            SimpleNamespace(choices=[]),
        )

        with pytest.raises(IndexError):
            run_agent(db, manager, "add email", case_id=case.id, client=client, app_settings=agent_settings)

        assert _only_checkpoint(db).status == CheckpointStatus.rolled_back
        assert db.query(Field).count() == 0

    def test_max_iterations_commits_work_so_far(self, db, manager, case, agent_settings):
        turns = [tool_turn(("listFields", {"caseid": case.id})) for _ in range(agent_settings.AGENT_MAX_ITERATIONS)]
        client = ScriptedClient(*turns)

        result = run_agent(db, manager, "loop", case_id=case.id, client=client, app_settings=agent_settings)

        assert "longer than expected" in result["response"]
        assert _only_checkpoint(db).status == CheckpointStatus.historical

    def test_without_case_id_no_checkpoint(self, db, manager, agent_settings):
        client = ScriptedClient(
            tool_turn(("createCase", {"name": "Hiring"})),
            final_turn("Created."),
        )

        result = run_agent(db, manager, "new workflow", client=client, app_settings=agent_settings)

        assert result["checkpoint"] is None
        assert db.query(Checkpoint).count() == 0


class TestChatEndpoint:
    def test_chat_runs_agent_with_app_manager(self, app, client, db, case):
        app.state.llm_client = ScriptedClient(
            tool_turn(("saveView", {"caseid": case.id, "name": "Main"})),
            final_turn("Created the Main view."),
        )

        resp = client.post("/api/agent/chat", json={"message": "add a view", "case_id": case.id})

        assert resp.status_code == 200
        body = resp.json()
        assert body["response"] == "Created the Main view."
        assert body["checkpoint"]["status"] == "historical"
        assert body["tool_calls"][0]["tool"] == "saveView"

    def test_chat_placeholder_without_key(self, client, case):
        resp = client.post("/api/agent/chat", json={"message": "hi", "case_id": case.id})
        assert resp.status_code == 200
        assert resp.json()["checkpoint"] is None

    def test_cancelled_turn_rolls_back(self, app, client, db, case):
        def cancel_then_save():
            app.state.agent_runs.cancel("turn-1")
            return tool_turn(("saveFields", {"caseid": case.id, "fields": [{"name": "email"}]}))

        app.state.llm_client = ScriptedClient(cancel_then_save, final_turn("never reached"))

        resp = client.post(
            "/api/agent/chat",
            json={"message": "add email", "case_id": case.id, "request_id": "turn-1"},
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["cancelled"] is True
        assert body["request_id"] == "turn-1"
        assert body["checkpoint"]["status"] == "rolled_back"
        assert _only_checkpoint(db).status == CheckpointStatus.rolled_back
        assert db.query(Field).count() == 0
        assert "turn-1" not in app.state.agent_runs

    def test_request_id_is_generated(self, client, case):
        resp = client.post("/api/agent/chat", json={"message": "hi", "case_id": case.id})
        assert resp.json()["request_id"]

    def test_cancel_running_turn(self, app, client):
        event = app.state.agent_runs.register("turn-2")

        resp = client.post("/api/agent/chat/turn-2/cancel")

        assert resp.status_code == 200
        assert resp.json() == {"request_id": "turn-2", "cancelled": True}
        assert event.is_set()

    def test_cancel_unknown_turn(self, client):
        resp = client.post("/api/agent/chat/nope/cancel")
        assert resp.status_code == 404

    def test_duplicate_request_id_conflicts(self, app, client, case):
        app.state.agent_runs.register("turn-3")
        resp = client.post("/api/agent/chat", json={"message": "hi", "case_id": case.id, "request_id": "turn-3"})
        assert resp.status_code == 409


class TestDisconnectWatcher:
    class _Request:
        def __init__(self, *states):
            self.states = list(states)

        async def is_disconnected(self):
            return self.states.pop(0)

    def test_disconnect_sets_cancel(self):
        cancel = threading.Event()
        asyncio.run(watch_disconnect(self._Request(False, True), cancel, interval=0))
        assert cancel.is_set()

    def test_stops_once_cancelled_elsewhere(self):
        cancel = threading.Event()
        cancel.set()
        request = self._Request()
        asyncio.run(watch_disconnect(request, cancel, interval=0))
        assert request.states == []
