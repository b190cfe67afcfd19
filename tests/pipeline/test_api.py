from __future__ import annotations

from typing import Any

from fastapi.testclient import TestClient

from app import main


class FakeOrchestrator:
    def __init__(self, *, health_status: str = "degraded", fail_listing: bool = False) -> None:
        self.calls: list[tuple[str, Any]] = []
        self.health_status = health_status
        self.fail_listing = fail_listing

    async def run_ingestion(self, limit=None):
        self.calls.append(("ingest", limit))
        return {"success": True, "processed": 1}

    async def run_enrichment(self, limit=None):
        self.calls.append(("enrich", limit))
        return {"success": True, "processed": 0}

    async def run_refresh(self, limit=None):
        self.calls.append(("refresh", limit))
        return {"success": True, "processed": 2}

    async def run_discovery(self, sources=None):
        self.calls.append(("discover", sources))
        return {"success": True, "processed": 0, "sources": {}}

    def get_status(self):
        return {"success": True, "counts": {"total": 3}}

    def health(self):
        return {"success": self.health_status != "unhealthy", "status": self.health_status}

    def list_repositories(self, **query):
        if self.fail_listing:
            raise RuntimeError("connection refused")
        self.calls.append(("list", query))
        return {"success": True, "repositories": [], "page": query["page"], "limit": 12, "hasMore": False}

    def get_catalogue_stats(self):
        return {"success": True, "totalRepos": 2, "totalStars": 30, "totalLanguages": 1}


def test_automation_endpoints_run_synchronously(monkeypatch) -> None:
    fake = FakeOrchestrator()
    monkeypatch.setattr(main, "orchestrator", fake)
    client = TestClient(main.app)

    assert client.post("/api/automation/ingest", params={"limit": 5}).json()["processed"] == 1
    assert client.post("/api/automation/enrich").json()["success"] is True
    assert client.post("/api/automation/update").json()["processed"] == 2
    assert client.get("/api/automation/status").json()["counts"]["total"] == 3
    assert client.get("/api/automation/health").json()["status"] == "degraded"
    assert client.get("/api/health").json()["status"] == "healthy"

    assert fake.calls == [("ingest", 5), ("enrich", None), ("refresh", None)]


def test_discover_endpoint_validates_source(monkeypatch) -> None:
    fake = FakeOrchestrator()
    monkeypatch.setattr(main, "orchestrator", fake)
    client = TestClient(main.app)

    assert client.post("/api/discover/papers").status_code == 200
    assert client.post("/api/discover/all").status_code == 200
    assert client.post("/api/discover/myspace").status_code == 404
    assert fake.calls == [("discover", ["papers"]), ("discover", None)]


def test_pipeline_health_returns_503_when_database_is_down(monkeypatch) -> None:
    monkeypatch.setattr(main, "orchestrator", FakeOrchestrator(health_status="unhealthy"))
    client = TestClient(main.app)

    response = client.get("/api/automation/health")

    assert response.status_code == 503
    assert response.json() == {"success": False, "status": "unhealthy"}


def test_pipeline_health_stays_200_when_only_degraded(monkeypatch) -> None:
    monkeypatch.setattr(main, "orchestrator", FakeOrchestrator(health_status="degraded"))

    assert TestClient(main.app).get("/api/automation/health").status_code == 200


def test_repository_listing_forwards_query_parameters(monkeypatch) -> None:
    fake = FakeOrchestrator()
    monkeypatch.setattr(main, "orchestrator", fake)
    client = TestClient(main.app)

    response = client.get(
        "/api/repositories",
        params={"page": 2, "sortBy": "stars", "sortOrder": "asc", "search": "cli", "language": "Rust"},
    )

    assert response.status_code == 200
    assert response.json()["page"] == 2
    assert fake.calls == [
        (
            "list",
            {
                "page": 2,
                "limit": None,
                "sort_by": "stars",
                "sort_order": "asc",
                "search": "cli",
                "language": "Rust",
                "experience": None,
                "license": None,
            },
        )
    ]
    assert client.get("/api/repositories", params={"page": 0}).status_code == 422


def test_repository_listing_failure_is_a_500_payload(monkeypatch) -> None:
    monkeypatch.setattr(main, "orchestrator", FakeOrchestrator(fail_listing=True))

    response = TestClient(main.app).get("/api/repositories")

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Failed to fetch repositories"}


def test_stats_endpoint_returns_catalogue_totals(monkeypatch) -> None:
    monkeypatch.setattr(main, "orchestrator", FakeOrchestrator())

    assert TestClient(main.app).get("/api/stats").json() == {
        "success": True,
        "totalRepos": 2,
        "totalStars": 30,
        "totalLanguages": 1,
    }
