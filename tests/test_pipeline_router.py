"""
tests/test_pipeline_router.py

HTTP contract of the pipeline endpoints, with the orchestrator dependency overridden.
"""

from __future__ import annotations

import httpx
import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.services.pipeline_orchestrator import PipelineOrchestrator, get_pipeline_orchestrator

CSV_UPLOAD = "순번,제품명\n1,Lipitor\n2,Unknownium\n".encode("utf-8")


def _registries(request: httpx.Request) -> httpx.Response:
    if request.url.host == "api.fda.gov":
        if "LIPITOR" in request.url.params.get("search", "") and request.url.path.endswith("/label.json"):
            return httpx.Response(
                200,
                json={
                    "results": [
                        {
                            "openfda": {"brand_name": ["LIPITOR"]},
                            "active_ingredient": ["ATORVASTATIN CALCIUM 20MG"],
                        }
                    ]
                },
            )
        return httpx.Response(404)

    term = request.url.params.get("item_ingr_name") or request.url.params.get("itemName")
    items = []
    if term == "아토르바스타틴":
        items = [
            {"ITEM_SEQ": "100", "ITEM_NAME": "리피토정", "NEWDRUG_CLASS_NAME": "신약"},
            {"ITEM_SEQ": "200", "ITEM_NAME": "아토르정"},
        ]
    elif term == "우노니움":
        items = [{"itemSeq": "900", "itemName": "우노니움정"}]
    return httpx.Response(
        200,
        json={"header": {"resultCode": "00"}, "body": {"totalCount": len(items), "items": items}},
    )


@pytest.fixture()
def orchestrator(translator, http_settings, primary_settings, secondary_settings) -> PipelineOrchestrator:
    return PipelineOrchestrator(
        translator=translator,
        client_factory=lambda: httpx.AsyncClient(transport=httpx.MockTransport(_registries)),
        http_settings=http_settings,
        primary_settings=primary_settings,
        secondary_settings=secondary_settings,
    )


@pytest.fixture()
def client(orchestrator: PipelineOrchestrator):
    app.dependency_overrides[get_pipeline_orchestrator] = lambda: orchestrator
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _upload(client: TestClient, content: bytes = CSV_UPLOAD, filename: str = "products.csv", **params):
    return client.post(
        "/pipeline/runs",
        files={"file": (filename, content, "text/csv")},
        params=params,
    )


def test_health(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


class TestStartRun:
    def test_upload_is_accepted_and_completes(self, client: TestClient) -> None:
        response = _upload(client)

        assert response.status_code == 202
        body = response.json()
        assert body["rows"] == 2
        assert body["count_mode"] == "ingredient"
        assert body["include_revoked"] is False

        current = client.get("/pipeline/runs/current").json()
        assert current["run_id"] == body["run_id"]
        assert current["status"] == "done"
        assert current["progress"] == 100
        assert current["summary"]["total_rows"] == 2
        assert current["summary"]["not_found_count"] == 1

    def test_non_csv_upload_is_rejected(self, client: TestClient) -> None:
        response = client.post("/pipeline/runs", files={"file": ("products.xlsx", b"PK", "application/zip")})

        assert response.status_code == 400

    def test_empty_csv_is_rejected(self, client: TestClient) -> None:
        response = _upload(client, content=b"seq,product\n")

        assert response.status_code == 400

    def test_invalid_count_mode_is_rejected(self, client: TestClient) -> None:
        response = _upload(client, count_mode="by-company")

        assert response.status_code == 422

    def test_form_mode_is_passed_through(self, client: TestClient) -> None:
        response = _upload(client, count_mode="ingredient+form", include_revoked="true")

        assert response.status_code == 202
        assert response.json()["count_mode"] == "ingredient+form"
        assert response.json()["include_revoked"] is True

    def test_unencoded_plus_in_form_mode(self, client: TestClient) -> None:
        response = client.post(
            "/pipeline/runs?count_mode=ingredient+form",
            files={"file": ("products.csv", CSV_UPLOAD, "text/csv")},
        )

        assert response.status_code == 202
        assert response.json()["count_mode"] == "ingredient+form"


class TestOutputs:
    def test_result_tables(self, client: TestClient) -> None:
        _upload(client)

        results = client.get("/pipeline/runs/current/results").json()["rows"]
        assert [(row["sequence"], row["has_original"], row["generic_count"]) for row in results] == [
            ("1", "Y", 1),
            ("2", "-", 0),
        ]
        assert results[1]["needs_manual_review"] is True

        items = client.get("/pipeline/runs/current/generic-items").json()["rows"]
        assert [item["item_code"] for item in items] == ["200"]

        compact = client.get("/pipeline/runs/current/generic-compact").json()["rows"]
        assert compact[0]["joined_product_names"] == "아토르정"

    def test_review_queue(self, client: TestClient) -> None:
        _upload(client)

        queue = client.get("/pipeline/runs/current/review-queue").json()

        assert [row["sequence"] for row in queue["review"]] == ["2"]
        assert [row["sequence"] for row in queue["unmapped"]] == ["2"]
        assert [row["sequence"] for row in queue["manual_review"]] == ["2"]


class TestManualMappings:
    def test_requires_a_completed_run(self, client: TestClient) -> None:
        response = client.post("/pipeline/runs/current/manual-mappings", json={"mappings": {"2": "우노니움"}})

        assert response.status_code == 409

    def test_empty_mapping_is_invalid(self, client: TestClient) -> None:
        _upload(client)

        response = client.post("/pipeline/runs/current/manual-mappings", json={"mappings": {}})

        assert response.status_code == 422

    def test_mapping_reruns_matching(self, client: TestClient) -> None:
        first = _upload(client).json()

        response = client.post("/pipeline/runs/current/manual-mappings", json={"mappings": {"2": "우노니움"}})

        assert response.status_code == 202
        assert response.json()["run_id"] != first["run_id"]
        results = client.get("/pipeline/runs/current/results").json()["rows"]
        assert results[1]["not_found"] is False
        assert results[1]["local_search_term"] == "우노니움"


class TestCancelAndReset:
    def test_cancel_without_active_run(self, client: TestClient) -> None:
        response = client.post("/pipeline/runs/current/cancel")

        assert response.status_code == 200
        assert response.json()["cancelled"] is False

    def test_reset_returns_idle_run(self, client: TestClient, orchestrator: PipelineOrchestrator) -> None:
        _upload(client)

        response = client.post("/pipeline/reset")

        assert response.status_code == 200
        assert response.json()["status"] == "idle"
        assert len(orchestrator.primary_cache) == 0
