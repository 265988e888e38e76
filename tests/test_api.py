"""Tests for API endpoints (hashing embeddings, temp collection files)."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from rhetoric.api.main import app
from rhetoric.context import get_context
from tests.fakes import SCENARIO_TEXT, make_context


@pytest.fixture
def client() -> Iterator[TestClient]:
    context = make_context()
    app.dependency_overrides[get_context] = lambda: context
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


class TestAnalyzeEndpoint:
    def test_success_envelope(self, client: TestClient, seeded_store_path: Path) -> None:
        response = client.post(
            "/api/analyze",
            json={"text": SCENARIO_TEXT, "exemplarStorePath": str(seeded_store_path), "minWords": 2},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert [s["moveType"] for s in body["data"]["segments"]] == ["concession", "contrast"]
        assert body["metadata"]["operation"] == "analyze"

    def test_empty_store_is_400(self, client: TestClient, store_path: Path) -> None:
        response = client.post("/api/analyze", json={"text": SCENARIO_TEXT, "exemplarStorePath": str(store_path)})
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "NO_EXEMPLARS"
        assert "data" not in body

    def test_invalid_request_is_400(self, client: TestClient, seeded_store_path: Path) -> None:
        response = client.post(
            "/api/analyze",
            json={"text": "x", "exemplarStorePath": str(seeded_store_path), "topK": 0},
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_body_must_be_object(self, client: TestClient) -> None:
        response = client.post("/api/analyze", json=["not", "an", "object"])
        assert response.status_code == 422


class TestUploadEndpoint:
    TEXT = b"Admittedly, this is wrong in places. However, the data shows otherwise in practice."

    def test_plain_text_upload(self, client: TestClient, seeded_store_path: Path) -> None:
        response = client.post(
            "/api/analyze/upload",
            files={"file": ("essay.txt", self.TEXT, "text/plain")},
            data={"exemplarStorePath": str(seeded_store_path)},
        )
        assert response.status_code == 200, response.text
        data = response.json()["data"]
        assert data["inputFile"] == "essay.txt"
        assert [s["moveType"] for s in data["segments"]] == ["concession", "contrast"]

    def test_unsupported_type_is_415(self, client: TestClient, seeded_store_path: Path) -> None:
        response = client.post(
            "/api/analyze/upload",
            files={"file": ("report.pdf", b"%PDF-1.4 binary", "application/pdf")},
            data={"exemplarStorePath": str(seeded_store_path)},
        )
        assert response.status_code == 415

    def test_invalid_utf8_is_400(self, client: TestClient, seeded_store_path: Path) -> None:
        response = client.post(
            "/api/analyze/upload",
            files={"file": ("notes.txt", b"\xff\xfe\xfa broken", "text/plain")},
            data={"exemplarStorePath": str(seeded_store_path)},
        )
        assert response.status_code == 400

    def test_oversize_is_413(self, client: TestClient, seeded_store_path: Path) -> None:
        with patch("rhetoric.api.routes.analyze.settings") as mock_settings:
            mock_settings.max_upload_bytes = 10
            response = client.post(
                "/api/analyze/upload",
                files={"file": ("essay.txt", self.TEXT, "text/plain")},
                data={"exemplarStorePath": str(seeded_store_path)},
            )
        assert response.status_code == 413

    def test_requires_file(self, client: TestClient) -> None:
        response = client.post("/api/analyze/upload")
        assert response.status_code == 422


class TestSegmentEndpoint:
    def test_sentence(self, client: TestClient) -> None:
        response = client.post("/api/segment", json={"text": SCENARIO_TEXT, "minWords": 2})
        assert response.status_code == 200
        body = response.json()
        assert body["totalSegments"] == 2
        assert body["segments"][0] == {
            "text": "Admittedly, this is wrong.",
            "start": 0,
            "end": 26,
            "index": 0,
            "wordCount": 4,
        }

    def test_speaker_turn(self, client: TestClient) -> None:
        text = "ALICE: I think we should start now.\nBOB: I would rather wait a little."
        response = client.post("/api/segment", json={"text": text, "method": "speaker_turn", "minWords": 2})
        assert [s["speaker"] for s in response.json()["segments"]] == ["ALICE", "BOB"]

    def test_bad_overlap_is_400(self, client: TestClient) -> None:
        body = {"text": "a b c", "method": "sliding", "maxWords": 5, "overlapWords": 5}
        response = client.post("/api/segment", json=body)
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "VALIDATION_ERROR"

    def test_unknown_method_is_422(self, client: TestClient) -> None:
        response = client.post("/api/segment", json={"text": "a b c", "method": "by_chapter"})
        assert response.status_code == 422


class TestExemplarEndpoints:
    def test_add(self, client: TestClient, store_path: Path) -> None:
        response = client.post(
            "/api/exemplars",
            json={
                "text": "Granted, the sample was small.",
                "moveType": "concession",
                "moveCategory": "positioning",
                "exemplarStorePath": str(store_path),
            },
        )
        assert response.status_code == 201
        body = response.json()
        assert body["id"]
        assert body["moveType"] == "concession"
        assert body["confidence"] == "high"
        assert "embedding" not in body
        assert store_path.exists()

    def test_add_rejects_blank_text(self, client: TestClient, store_path: Path) -> None:
        response = client.post(
            "/api/exemplars",
            json={"text": "  ", "moveType": "concession", "moveCategory": "p", "exemplarStorePath": str(store_path)},
        )
        assert response.status_code == 422
        assert not store_path.exists()

    def test_list(self, client: TestClient, seeded_store_path: Path) -> None:
        body = client.get("/api/exemplars", params={"store": str(seeded_store_path)}).json()
        assert body["count"] == 6
        assert all("embedding" not in e for e in body["exemplars"])

    def test_list_filtered_with_embeddings(self, client: TestClient, seeded_store_path: Path) -> None:
        body = client.get(
            "/api/exemplars",
            params={"store": str(seeded_store_path), "moveType": "contrast", "includeEmbeddings": "true"},
        ).json()
        assert body["count"] == 3
        assert all(e["moveType"] == "contrast" and e["embedding"] for e in body["exemplars"])

    def test_stats(self, client: TestClient, seeded_store_path: Path) -> None:
        body = client.get("/api/exemplars/stats", params={"store": str(seeded_store_path)}).json()
        assert body["totalExemplars"] == 6
        assert body["moveTypeCounts"] == {"concession": 3, "contrast": 3}

    def test_remove(self, client: TestClient, seeded_store_path: Path) -> None:
        params = {"store": str(seeded_store_path)}
        first = client.get("/api/exemplars", params=params).json()["exemplars"][0]

        response = client.delete(f"/api/exemplars/{first['id']}", params=params)
        assert response.status_code == 200
        assert response.json() == {"removedId": first["id"]}
        assert client.get("/api/exemplars", params=params).json()["count"] == 5

    def test_remove_missing_is_404(self, client: TestClient, seeded_store_path: Path) -> None:
        before = seeded_store_path.read_bytes()
        response = client.delete("/api/exemplars/nope", params={"store": str(seeded_store_path)})
        assert response.status_code == 404
        assert seeded_store_path.read_bytes() == before

    def test_search(self, client: TestClient, seeded_store_path: Path) -> None:
        response = client.post(
            "/api/exemplars/search",
            json={
                "text": "However, the evidence shows otherwise.",
                "exemplarStorePath": str(seeded_store_path),
                "topK": 2,
            },
        )
        assert response.status_code == 200
        matches = response.json()["matches"]
        assert len(matches) == 2
        assert matches[0]["exemplar"]["text"] == "However, the evidence shows otherwise."
        assert matches[0]["similarity"] == pytest.approx(1.0)
        assert "embedding" not in matches[0]["exemplar"]

    def test_malformed_store_is_500(self, client: TestClient, store_path: Path) -> None:
        store_path.write_text("[]", encoding="utf-8")
        response = client.get("/api/exemplars", params={"store": str(store_path)})
        assert response.status_code == 500
        assert response.json()["detail"]["code"] == "STORE_ERROR"
