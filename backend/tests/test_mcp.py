"""Tests for the MCP JSON-RPC endpoint and its checkpoint wrapping."""
from flowbuilder.models.checkpoint import Checkpoint, CheckpointSource, CheckpointStatus
from flowbuilder.models.field import Field
from flowbuilder.models.undo_log import UndoLogEntry
from flowbuilder.models.view import View
from flowbuilder.services import workflow_service


def _rpc(client, method, params=None, request_id=1):
    resp = client.post("/api/mcp", json={"jsonrpc": "2.0", "id": request_id, "method": method, "params": params or {}})
    assert resp.status_code == 200, resp.text
    return resp.json()


def _call(client, name, arguments):
    return _rpc(client, "tools/call", {"name": name, "arguments": arguments})


class TestProtocol:
    def test_initialize(self, client):
        body = _rpc(client, "initialize")
        assert body["id"] == 1
        assert body["result"]["protocolVersion"] == "2024-11-05"
        assert body["result"]["serverInfo"]["name"] == "workflow-tools-server"

    def test_tools_list(self, client):
        tools = _rpc(client, "tools/list")["result"]["tools"]
        names = {t["name"] for t in tools}
        assert {"saveFields", "deleteField", "getCase"} <= names
        assert all("inputSchema" in t for t in tools)

    def test_unknown_method(self, client):
        body = _rpc(client, "prompts/get")
        assert body["error"]["code"] == -32601

    def test_unknown_tool(self, client):
        body = _call(client, "dropDatabase", {})
        assert body["error"]["code"] == -32601
        assert "dropDatabase" in body["error"]["message"]

    def test_invalid_params(self, client):
        body = _rpc(client, "tools/call", {"arguments": {}})
        assert body["error"]["code"] == -32602


class TestCheckpointWrapping:
    def test_successful_modification_commits(self, client, db, case):
        body = _call(client, "saveFields", {"caseid": case.id, "fields": [{"name": "email", "label": "Email"}]})
        assert "result" in body

        checkpoint = db.query(Checkpoint).one()
        assert checkpoint.status == CheckpointStatus.historical
        assert checkpoint.source == CheckpointSource.MCP
        assert checkpoint.description == "MCP Tool: saveFields"
        assert checkpoint.user_command.startswith("MCP saveFields(")
        assert checkpoint.tools_executed == ["saveFields"]
        assert checkpoint.changes_count == 1
        assert db.query(Field).count() == 1

    def test_failing_modification_rolls_back(self, client, db, case):
        body = _call(client, "deleteField", {"caseid": case.id, "id": 4242})
        assert body["error"]["code"] == -32603
        assert body["error"]["message"].startswith("Tool execution failed")

        checkpoint = db.query(Checkpoint).one()
        assert checkpoint.status == CheckpointStatus.rolled_back

    def test_partial_batch_is_undone_on_failure(self, client, db, case):
        """Nothing from a batch that fails halfway survives."""
        body = _call(client, "saveFields", {
            "caseid": case.id,
            "fields": [{"name": "ok"}, {"id": 9999, "label": "missing"}],
        })
        assert body["error"]["code"] == -32603
        db.expire_all()
        assert db.query(Field).count() == 0

    def test_read_only_tool_has_no_checkpoint(self, client, db, case):
        body = _call(client, "listFields", {"caseid": case.id})
        assert "result" in body
        assert db.query(Checkpoint).count() == 0

    def test_modification_without_caseid_skips_checkpoint(self, client, db):
        body = _call(client, "createCase", {"name": "Fresh"})
        assert "result" in body
        assert db.query(Checkpoint).count() == 0


class TestCaseScoping:
    def test_delete_field_of_another_case_is_refused(self, client, db, case, other_case):
        (field,) = workflow_service.save_fields(db, other_case.id, [{"name": "amount"}])

        body = _call(client, "deleteField", {"caseid": case.id, "id": field.id})

        assert body["error"]["code"] == -32603
        assert f"not found on case {case.id}" in body["error"]["message"]
        db.expire_all()
        assert db.get(Field, field.id) is not None
        assert db.query(UndoLogEntry).count() == 0
        assert db.query(Checkpoint).one().status == CheckpointStatus.rolled_back

    def test_delete_view_of_another_case_is_refused(self, client, db, case, other_case):
        view = workflow_service.save_view(db, other_case.id, "Claims")

        body = _call(client, "deleteView", {"caseid": case.id, "id": view.id})

        assert body["error"]["code"] == -32603
        db.expire_all()
        assert db.get(View, view.id) is not None
        assert db.query(UndoLogEntry).count() == 0

    def test_delete_field_logs_under_owning_case(self, client, db, case):
        (field,) = workflow_service.save_fields(db, case.id, [{"name": "amount"}])

        body = _call(client, "deleteField", {"caseid": case.id, "id": field.id})

        assert "result" in body
        db.expire_all()
        (entry,) = db.query(UndoLogEntry).all()
        assert entry.caseid == case.id
        assert entry.previous_data["caseid"] == case.id
