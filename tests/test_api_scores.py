"""Tests for the lead scoring HTTP API."""

from database.repositories import ChatMessageRepository, CustomerRepository, LeadRepository
from database.session import session_scope

COLD_LEAD = {"id": "inline-1", "kunde_id": "autohaus-mueller", "anliegen": "Frage"}


# ── Without database ──────────────────────────────────

class TestApiWithoutDatabase:
    def test_root(self, client):
        data = client.get("/").json()
        assert data["service"] == "CarBot Lead Scoring"
        assert data["status"] == "operational"

    def test_health(self, client):
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["services"]["database"] is False

    def test_score_inline_lead(self, client):
        response = client.post("/api/v1/leads/score", json={
            "action": "score",
            "lead_data": COLD_LEAD,
            "chat_history": [],
        })
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["lead_id"] == "inline-1"
        score = data["score"]
        assert score["total"] == 42
        assert score["classification"] == "Cold"
        assert score["priority"] == "Low"
        assert score["persistence"]["ok"] is True

    def test_inline_context_sets_value(self, client):
        response = client.post("/api/v1/leads/score", json={
            "lead_data": COLD_LEAD,
            "customer_context": {"averageJobValue": 800},
        })
        assert response.json()["score"]["estimated_value"] == 800

    def test_invalid_action(self, client):
        response = client.post("/api/v1/leads/score", json={"action": "explode"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid action"

    def test_score_requires_lead(self, client):
        response = client.post("/api/v1/leads/score", json={"action": "score"})
        assert response.status_code == 400

    def test_score_by_id_needs_database(self, client):
        response = client.post("/api/v1/leads/score", json={"lead_id": "abc"})
        assert response.status_code == 503

    def test_batch_partial_failure(self, client):
        response = client.post("/api/v1/leads/score", json={
            "action": "batch",
            "leads": [COLD_LEAD, {"id": "no-tenant", "anliegen": "x"}, "not-a-lead"],
        })
        assert response.status_code == 200
        data = response.json()
        assert data["processed"] == 3
        assert data["successful"] == 2
        assert data["failed"] == 1
        assert data["results"][1]["score"]["degraded"] is True
        assert data["results"][2]["success"] is False

    def test_empty_batch(self, client):
        data = client.post("/api/v1/leads/score", json={"action": "batch"}).json()
        assert data["processed"] == 0

    def test_rescore_requires_slug(self, client):
        response = client.post("/api/v1/leads/score", json={"action": "rescore"})
        assert response.status_code == 400

    def test_rescore_needs_database(self, client):
        response = client.post("/api/v1/leads/score", json={
            "action": "rescore", "customer_slug": "autohaus-mueller",
        })
        assert response.status_code == 503

    def test_list_scores_needs_database(self, client):
        assert client.get("/api/v1/leads/scores").status_code == 503

    def test_manual_update_requires_lead_id(self, client):
        response = client.put("/api/v1/leads/scores", json={"manual_score": 90})
        assert response.status_code == 400
        assert response.json()["detail"] == "Lead ID required"

    def test_manual_update_rejects_out_of_range(self, client):
        response = client.put("/api/v1/leads/scores", json={"lead_id": "x", "manual_score": 150})
        assert response.status_code == 422

    def test_metrics_exposed(self, client):
        client.post("/api/v1/leads/score", json={"lead_data": COLD_LEAD})
        body = client.get("/metrics").text
        assert "carbot_lead_classification_total" in body


# ── With database ─────────────────────────────────────

def _seed(db_client) -> str:
    async def seed():
        async with session_scope() as session:
            await CustomerRepository(session).create(
                slug="autohaus-mueller", name="Autohaus Müller", average_job_value=500,
            )
            lead = await LeadRepository(session).create(
                kunde_id="autohaus-mueller",
                anliegen="Bremsen kaputt, bitte Termin",
                name="Max Mustermann",
                telefon="+49 1711 2345678",
            )
            messages = ChatMessageRepository(session)
            await messages.add("autohaus-mueller", "assistant", "Wie kann ich helfen?")
            await messages.add("autohaus-mueller", "user", "Bitte einen Termin für die Bremse, Baujahr 2015?")
            return lead.id

    return db_client.portal.call(seed)


class TestApiWithDatabase:
    def test_score_and_list(self, db_client):
        lead_id = _seed(db_client)

        response = db_client.post("/api/v1/leads/score", json={"action": "score", "lead_id": lead_id})
        assert response.status_code == 200
        score = response.json()["score"]
        assert score["persistence"]["ok"] is True
        assert score["persistence"]["record_id"]
        assert score["estimated_value"] >= 500

        data = db_client.get("/api/v1/leads/scores", params={"customer": "autohaus-mueller"}).json()
        assert data["success"] is True
        (lead,) = data["leads"]
        assert lead["id"] == lead_id
        assert lead["lead_score"] == score["total"]
        assert lead["score_classification"] == score["classification"]
        assert len(lead["lead_scores"]) == 1
        assert data["summary"]["total"] == 1
        assert data["summary"]["average_score"] == score["total"]

    def test_rescore_appends_history(self, db_client):
        lead_id = _seed(db_client)
        db_client.post("/api/v1/leads/score", json={"lead_id": lead_id})

        response = db_client.post("/api/v1/leads/score", json={
            "action": "rescore", "customer_slug": "autohaus-mueller",
        })
        assert response.status_code == 200
        assert response.json()["processed"] == 1

        data = db_client.get("/api/v1/leads/scores", params={"lead_id": lead_id}).json()
        assert len(data["leads"][0]["lead_scores"]) == 2

    def test_rescore_unknown_customer(self, db_client):
        response = db_client.post("/api/v1/leads/score", json={
            "action": "rescore", "customer_slug": "niemand",
        })
        assert response.json() == {"success": True, "message": "No leads found to rescore"}

    def test_score_unknown_lead(self, db_client):
        response = db_client.post("/api/v1/leads/score", json={"lead_id": "missing"})
        assert response.status_code == 404

    def test_manual_override(self, db_client):
        lead_id = _seed(db_client)
        response = db_client.put("/api/v1/leads/scores", json={
            "lead_id": lead_id, "manual_score": 90, "priority": "High", "notes": "Stammkunde",
        })
        assert response.status_code == 200
        lead = response.json()["lead"]
        assert lead["lead_score"] == 90
        assert lead["priority"] == "High"
        assert lead["scoring_notes"] == "Stammkunde"

        summary = db_client.get("/api/v1/leads/scores").json()["summary"]
        assert summary["priorities"]["high"] == 1

    def test_manual_override_unknown_lead(self, db_client):
        response = db_client.put("/api/v1/leads/scores", json={"lead_id": "missing", "manual_score": 10})
        assert response.status_code == 404
