"""
测试 HTTP 接口 (dispatch_api.py)
"""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from autoanim.api import dispatch_api


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(dispatch_api, "DATA_DIR", str(Path(__file__).parent.parent / "data"))
    dispatch_api.get_registry.cache_clear()
    yield TestClient(dispatch_api.app)
    dispatch_api.get_registry.cache_clear()


def request(item, **overrides):
    body = {
        "item_name": item,
        "source": {"id": "wizard", "col": 0, "row": 0},
        "targets": [{"id": "goblin", "col": 3, "row": 0}],
        "roll_phase": "attack",
    }
    body.update(overrides)
    return body


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["definitions"] > 0


class TestDispatchEndpoint:

    def test_fire_bolt(self, client):
        data = client.post("/dispatch", json=request("Fire Bolt")).json()

        assert data["status"] == "SUCCESS"
        instructions = data["sequences"][0]["instructions"]
        assert [i["phase"] for i in instructions] == ["source", "secondary", "target"]
        assert instructions[1]["stretch_from"] == "wizard"
        assert instructions[2]["location"] == "goblin"
        assert data["sequences"][0]["module"] == "Automated Animations"

    def test_missed_target_uses_spot(self, client):
        body = request("Fire Bolt", hit_targets=[], settings={"playonmiss": True})
        data = client.post("/dispatch", json=body).json()

        target = data["sequences"][0]["instructions"][-1]
        assert target["location"] == "spot goblin"
        assert target["attach"] is False

    def test_no_match(self, client):
        data = client.post("/dispatch", json=request("Wish")).json()
        assert data["status"] == "NO_MATCH"
        assert data["sequences"] == []

    def test_template_in_request(self, client):
        body = request("Burning Hands", targets=[], roll_phase="pass",
                       template={"shape": "cone", "x": 50, "y": 50, "distance": 15, "direction": 0})
        data = client.post("/dispatch", json=body).json()

        assert data["status"] == "SUCCESS"
        target = data["sequences"][0]["instructions"][-1]
        assert target["stretch_from"] == {"x": 50.0, "y": 50.0}
        assert "fade_out" in target

    def test_template_missing(self, client):
        data = client.post("/dispatch", json=request("Burning Hands", targets=[])).json()
        assert data["status"] == "SUPPRESSED"

    def test_invalid_settings(self, client):
        response = client.post("/dispatch", json=request("Fire Bolt", settings={"enabled": "maybe"}))
        assert response.status_code == 422
