"""Tests for the checkpoint administration API.

Covers:
- begin / commit / rollback / restore over HTTP
- active and history listings (history carries change summaries)
- 404 for unknown checkpoints, 409 for finished ones
- single and bulk deletes
"""
from flowbuilder.models.field import Field
from flowbuilder.models.undo_log import UndoLogEntry, UndoOperation
from flowbuilder.services import workflow_service


def _begin(client, caseid, description="Manual edit"):
    resp = client.post("/api/checkpoints/", json={"caseid": caseid, "description": description})
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestBeginAndRead:
    def test_begin_defaults_to_api_source(self, client, case):
        data = _begin(client, case.id)
        assert data["status"] == "active"
        assert data["source"] == "API"
        assert data["caseid"] == case.id

    def test_get_checkpoint(self, client, case):
        created = _begin(client, case.id)
        resp = client.get(f"/api/checkpoints/{created['id']}")
        assert resp.status_code == 200
        assert resp.json()["description"] == "Manual edit"

    def test_get_unknown_checkpoint(self, client):
        resp = client.get("/api/checkpoints/nope")
        assert resp.status_code == 404

    def test_active_listing(self, client, case, other_case):
        mine = _begin(client, case.id)
        _begin(client, other_case.id)
        resp = client.get("/api/checkpoints/active", params={"case_id": case.id})
        assert resp.status_code == 200
        assert [c["id"] for c in resp.json()] == [mine["id"]]


class TestLifecycle:
    def test_commit_then_commit_again_conflicts(self, client, case):
        created = _begin(client, case.id)
        resp = client.post(f"/api/checkpoints/{created['id']}/commit")
        assert resp.status_code == 200
        assert resp.json()["status"] == "historical"
        assert resp.json()["changes_count"] == 0

        resp = client.post(f"/api/checkpoints/{created['id']}/commit")
        assert resp.status_code == 409

    def test_rollback_undoes_logged_changes(self, client, manager, db, case):
        created = _begin(client, case.id)
        (field,) = workflow_service.save_fields(db, case.id, [{"name": "tmp"}])
        manager.log_operation(created["id"], case.id, "insert", "fields", {"id": field.id})

        resp = client.post(f"/api/checkpoints/{created['id']}/rollback")
        assert resp.status_code == 200
        assert resp.json()["undone"] == 1
        db.expire_all()
        assert db.query(Field).count() == 0

    def test_rollback_unknown(self, client):
        assert client.post("/api/checkpoints/missing/rollback").status_code == 404

    def test_rollback_with_corrupt_entry_returns_500(self, client, manager, db, case):
        created = _begin(client, case.id)
        db.add(UndoLogEntry(
            checkpoint_id=created["id"], caseid=case.id, operation=UndoOperation.delete,
            table_name="fields", primary_key={"id": 1}, previous_data=None,
        ))
        db.commit()

        resp = client.post(f"/api/checkpoints/{created['id']}/rollback")
        assert resp.status_code == 500
        detail = resp.json()["detail"]
        assert detail["message"] == "Failed to rollback checkpoint"
        assert "no previous data" in detail["details"]
        assert client.get(f"/api/checkpoints/{created['id']}").json()["status"] == "active"

    def test_restore(self, client, case):
        first = _begin(client, case.id)
        client.post(f"/api/checkpoints/{first['id']}/commit")
        second = _begin(client, case.id)
        client.post(f"/api/checkpoints/{second['id']}/commit")

        resp = client.post(f"/api/checkpoints/{first['id']}/restore")
        assert resp.status_code == 200
        assert resp.json()["rolled_back"] == [second["id"], first["id"]]


class TestHistory:
    def test_history_includes_change_summaries(self, client, checkpoints, db, case):
        existing = workflow_service.save_fields(db, case.id, [{"name": "old_field", "label": "Old"}])[0]

        checkpoints.begin(case.id, "Mixed edits")
        workflow_service.save_fields(db, case.id, [{"name": "email", "label": "Email"}], checkpoints=checkpoints)
        workflow_service.save_view(db, case.id, "Main", checkpoints=checkpoints)
        workflow_service.delete_field(db, case.id, existing.id, checkpoints=checkpoints)
        checkpoints.commit()

        resp = client.get("/api/checkpoints/history", params={"case_id": case.id})
        assert resp.status_code == 200
        (item,) = resp.json()
        assert item["status"] == "historical"
        assert item["changes_count"] == 3
        assert item["changes"] == [
            {"name": "old_field", "type": "Field", "operation": "Delete"},
            {"name": "Main", "type": "View", "operation": "Create"},
            {"name": "email", "type": "Field", "operation": "Create"},
        ]

    def test_entries_endpoint(self, client, checkpoints, db, case):
        checkpoint_id = checkpoints.begin(case.id, "Add")
        workflow_service.save_fields(db, case.id, [{"name": "a"}, {"name": "b"}], checkpoints=checkpoints)

        resp = client.get(f"/api/checkpoints/{checkpoint_id}/entries")
        assert resp.status_code == 200
        entries = resp.json()
        assert [e["operation"] for e in entries] == ["insert", "insert"]
        assert entries[0]["id"] > entries[1]["id"]


class TestDelete:
    def test_delete_single(self, client, case):
        created = _begin(client, case.id)
        resp = client.delete(f"/api/checkpoints/{created['id']}")
        assert resp.status_code == 204
        assert client.get(f"/api/checkpoints/{created['id']}").status_code == 404

    def test_delete_unknown(self, client):
        assert client.delete("/api/checkpoints/missing").status_code == 404

    def test_delete_all_for_case(self, client, case, other_case):
        _begin(client, case.id)
        _begin(client, case.id)
        _begin(client, other_case.id)
        resp = client.delete("/api/checkpoints/", params={"case_id": case.id})
        assert resp.status_code == 200
        assert resp.json() == {"deleted": 2}
        assert len(client.get("/api/checkpoints/active").json()) == 1


class TestHealth:
    def test_health(self, client):
        assert client.get("/api/health").json() == {"status": "ok"}
