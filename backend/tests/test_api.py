"""HTTP tests for the timeline and node routes."""

import json
import logging
import sqlite3

import pytest


def _create(client, path, payload):
    response = client.post(f"/api{path}", json=payload)
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.fixture
def hierarchy(client):
    axis = _create(client, "/timeline-axes", {"name": "Prime", "axisType": "main"})
    era = _create(client, "/timeline-eras", {"axisId": axis["id"], "name": "Age of Dawn", "order": 0})
    segment = _create(client, "/timeline-segments", {"eraId": era["id"], "name": "First Years", "durationYears": 100})
    marker = _create(client, "/timeline-markers", {"segmentId": segment["id"], "label": "Coronation", "tick": 10})
    character = _create(client, "/nodes/character", {"id": "c1", "name": "Aria"})
    return {"axis": axis, "era": era, "segment": segment, "marker": marker, "character": character}


def _change(client, hierarchy, **fields):
    payload = {
        "axisId": hierarchy["axis"]["id"],
        "subjectType": "character",
        "subjectId": "c1",
        "changeType": "set",
        **fields,
    }
    return _create(client, "/timeline-state-changes", payload)


class TestDatabaseHeader:
    def test_missing_header(self, client):
        client.headers.pop("x-database")
        response = client.get("/api/timeline-axes")
        assert response.status_code == 400
        assert response.json() == {"message": "dbName is required"}

    def test_invalid_header(self, client):
        response = client.get("/api/timeline-axes", headers={"x-database": "../escape"})
        assert response.status_code == 400
        assert response.json() == {
            "message": "dbName must contain only letters, numbers, underscores, or hyphens"
        }

    def test_databases_are_isolated(self, client):
        _create(client, "/timeline-axes", {"name": "Prime"})
        response = client.get("/api/timeline-axes", headers={"x-database": "elsewhere"})
        assert response.json()["meta"]["total"] == 0


class TestStructureRoutes:
    def test_create_uses_camel_case(self, hierarchy):
        assert hierarchy["axis"]["axisType"] == "main"
        assert hierarchy["axis"]["status"] == "active"
        assert hierarchy["segment"]["axisId"] == hierarchy["axis"]["id"]
        assert hierarchy["marker"]["eraId"] == hierarchy["era"]["id"]
        assert "createdAt" in hierarchy["marker"]

    def test_second_main_axis_conflicts(self, client, hierarchy):
        response = client.post("/api/timeline-axes", json={"name": "Other", "axisType": "main"})
        assert response.status_code == 409
        assert response.json() == {"message": "only one main axis is allowed"}

    def test_tick_range_is_checked(self, client):
        response = client.post("/api/timeline-axes", json={"name": "Prime", "startTick": 10, "endTick": 5})
        assert response.status_code == 400
        assert "endTick must be >= startTick" in response.json()["message"]

    def test_missing_name_is_reported(self, client):
        response = client.post("/api/timeline-axes", json={"name": "   "})
        assert response.status_code == 400
        assert response.json()["message"] == "name is required"

    def test_list_limit_is_bounded(self, client):
        assert client.get("/api/timeline-axes", params={"limit": 201}).status_code == 400
        assert client.get("/api/timeline-axes", params={"offset": -1}).status_code == 400

    def test_list_meta_echoes_query(self, client, hierarchy):
        response = client.get("/api/timeline-eras", params={"axisId": hierarchy["axis"]["id"], "limit": 10})
        body = response.json()
        assert [era["name"] for era in body["data"]] == ["Age of Dawn"]
        assert body["meta"]["axisId"] == hierarchy["axis"]["id"]
        assert body["meta"]["limit"] == 10
        assert body["meta"]["total"] == 1

    def test_unknown_parent_is_not_found(self, client):
        response = client.post("/api/timeline-eras", json={"axisId": "missing", "name": "Lost"})
        assert response.status_code == 404
        assert response.json() == {"message": "axis not found"}

    def test_delete_and_not_found(self, client, hierarchy):
        marker_id = hierarchy["marker"]["id"]
        response = client.delete(f"/api/timeline-markers/{marker_id}")
        assert response.status_code == 204
        assert response.content == b""

        response = client.get(f"/api/timeline-markers/{marker_id}")
        assert response.status_code == 404
        assert response.json() == {"message": "timeline marker not found"}

    def test_update_is_a_full_replacement(self, client, hierarchy):
        era = hierarchy["era"]
        response = client.put(
            f"/api/timeline-eras/{era['id']}",
            json={"axisId": era["axisId"], "name": "Age of Embers", "order": 2},
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert (data["name"], data["order"], data["createdAt"]) == ("Age of Embers", 2, era["createdAt"])

    def test_marker_event_link_and_unlink(self, client, hierarchy):
        event = _create(client, "/nodes/event", {"id": "ev1", "name": "The Crowning"})
        marker_id = hierarchy["marker"]["id"]
        response = client.put(f"/api/timeline-markers/{marker_id}/event", json={"eventId": event["id"]})
        assert response.json()["data"]["eventRefId"] == "ev1"

        response = client.delete("/api/timeline-markers/event/ev1")
        assert response.json() == {"data": {"eventId": "ev1", "clearedMarkers": 1}}

        response = client.put(f"/api/timeline-markers/{marker_id}/event", json={"eventId": "missing"})
        assert response.status_code == 404


class TestStateRoutes:
    def test_marker_fills_hierarchy(self, client, hierarchy):
        change = _change(
            client, hierarchy, fieldPath="title", newValue='"knight"', effectiveTick=10,
            markerId=hierarchy["marker"]["id"],
        )
        assert change["eraId"] == hierarchy["era"]["id"]
        assert change["segmentId"] == hierarchy["segment"]["id"]

    def test_unknown_subject(self, client, hierarchy):
        response = client.post("/api/timeline-state-changes", json={
            "axisId": hierarchy["axis"]["id"],
            "subjectType": "character",
            "subjectId": "nobody",
            "fieldPath": "title",
            "changeType": "set",
            "effectiveTick": 1,
        })
        assert response.status_code == 404
        assert response.json() == {"message": "subject not found"}

    def test_projection_omits_removed_values(self, client, hierarchy):
        _change(client, hierarchy, fieldPath="title", newValue='"knight"', effectiveTick=1)
        _change(client, hierarchy, fieldPath="stats.power", newValue=3, effectiveTick=2)
        _change(client, hierarchy, fieldPath="title", changeType="remove", effectiveTick=5)

        response = client.get(
            "/api/timeline-state-changes/projection",
            params={"axisId": hierarchy["axis"]["id"], "tick": 6},
        )
        assert response.status_code == 200
        body = response.json()
        subject = body["data"][0]
        assert subject["state"] == {"stats": {"power": 3}}
        fields = {f["fieldPath"]: f for f in subject["fields"]}
        assert "value" not in fields["title"]
        assert fields["stats.power"]["value"] == 3
        assert body["meta"]["subjectCount"] == 1
        assert body["meta"]["fieldCount"] == 2

    def test_projection_requires_axis_and_tick(self, client):
        response = client.get("/api/timeline-state-changes/projection", params={"tick": 1})
        assert response.status_code == 400
        assert response.json()["message"] == "axisId is required"

    def test_history_meta(self, client, hierarchy):
        for tick, value in [(1, "squire"), (2, "knight"), (3, "king")]:
            _change(client, hierarchy, fieldPath="title", newValue=json.dumps(value), effectiveTick=tick)
        response = client.get("/api/timeline-state-changes/history", params={
            "axisId": hierarchy["axis"]["id"],
            "subjectType": "character",
            "subjectId": "c1",
            "limit": 2,
        })
        body = response.json()
        assert [entry["newValue"] for entry in body["data"]] == ["squire", "knight"]
        assert body["meta"]["total"] == 3
        assert body["meta"]["hasMore"] is True
        assert body["meta"]["finalState"] == {"title": "knight"}

    def test_diff(self, client, hierarchy):
        _change(client, hierarchy, fieldPath="title", newValue='"squire"', effectiveTick=1)
        _change(client, hierarchy, fieldPath="home", newValue='"Vale"', effectiveTick=5)
        response = client.get("/api/timeline-state-changes/diff", params={
            "axisId": hierarchy["axis"]["id"],
            "subjectType": "character",
            "subjectId": "c1",
            "fromTick": 1,
            "toTick": 5,
        })
        data = response.json()["data"]
        assert data["added"] == [{"fieldPath": "home", "toValue": "Vale"}]
        assert data["removed"] == [] and data["updated"] == []

    def test_diff_rejects_reversed_window(self, client, hierarchy):
        response = client.get("/api/timeline-state-changes/diff", params={
            "axisId": hierarchy["axis"]["id"],
            "subjectType": "character",
            "subjectId": "c1",
            "fromTick": 5,
            "toTick": 1,
        })
        assert response.status_code == 400
        assert "toTick must be >= fromTick" in response.json()["message"]

    def test_state_change_not_found(self, client):
        assert client.get("/api/timeline-state-changes/missing").status_code == 404
        assert client.delete("/api/timeline-state-changes/missing").json() == {
            "message": "timeline state change not found"
        }


class TestNodeRoutes:
    def test_node_crud(self, client):
        node = _create(client, "/nodes/faction", {"name": "Wardens", "properties": {"motto": "Hold"}})
        path = f"/api/nodes/faction/{node['id']}"

        response = client.put(path, json={"properties": {"seat": "Vale"}})
        assert response.json()["data"]["properties"] == {"motto": "Hold", "seat": "Vale"}

        assert client.get("/api/nodes/faction").json()["meta"]["total"] == 1
        assert client.delete(path).status_code == 204
        assert client.get(path).json() == {"message": "faction not found"}

    def test_create_without_timeline_headers_skips_ledger(self, client):
        body = client.post("/api/nodes/character", json={"name": "Aria"}).json()
        assert body["meta"]["timeline"]["reason"] == "missing-timeline-context-headers"

    def test_dual_write_from_headers(self, client, hierarchy):
        headers = {"x-timeline-axis-id": hierarchy["axis"]["id"], "x-timeline-tick": "12"}
        response = client.put("/api/nodes/character/c1", json={"properties": {"title": "knight"}}, headers=headers)
        assert response.status_code == 200
        assert response.json()["meta"]["timeline"]["written"] == 1

        changes = client.get("/api/timeline-state-changes", params={"subjectId": "c1"}).json()["data"]
        assert [(c["fieldPath"], c["newValue"], c["effectiveTick"]) for c in changes] == [
            ("title", '"knight"', 12),
        ]

    def test_node_write_survives_ledger_store_error(self, client, hierarchy, monkeypatch):
        async def locked(db_name, payload):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(client.app.state.state_change_service, "create_state_change", locked)
        headers = {"x-timeline-axis-id": hierarchy["axis"]["id"], "x-timeline-tick": "3"}
        response = client.post("/api/nodes/character", json={"id": "c2", "name": "Bren"}, headers=headers)
        assert response.status_code == 201
        assert response.json()["meta"]["timeline"]["skipped"] == 1
        assert client.get("/api/nodes/character/c2").status_code == 200

    def test_timeline_types_are_not_nodes(self, client):
        response = client.post("/api/nodes/timelineAxis", json={"name": "Prime"})
        assert response.status_code == 400


def test_timeline_requests_are_audited(client, caplog):
    caplog.set_level(logging.INFO, logger="loreline.audit")
    client.post("/api/timeline-axes", json={"name": "Prime"})
    client.get("/api/timeline-axes/missing")
    client.get("/health")

    records = [r.getMessage() for r in caplog.records if r.name == "loreline.audit"]
    assert len(records) == 2
    created = json.loads(records[0].removeprefix("[timeline-audit] "))
    assert created["action"] == "timeline-axes.create"
    assert created["result"] == "success"
    assert created["dbName"] == "testworld"
    missing = json.loads(records[1].removeprefix("[timeline-audit] "))
    assert (missing["action"], missing["resourceId"], missing["statusCode"]) == ("timeline-axes.get", "missing", 404)


def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"
