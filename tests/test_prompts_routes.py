"""HTTP-level tests for the prompt and admin endpoints.

The lifespan is not entered, so the services on app.state are mocks and the
current user is overridden.
"""

from unittest.mock import AsyncMock, MagicMock

import jwt
import pytest
from fastapi.testclient import TestClient

from promptpool.config import settings
from promptpool.exceptions import GenerationError, NoContentAvailable, PoolReadError, ScoringError
from promptpool.models.prompt import DifficultyScores, ExerciseItem, SelectedBatch
from promptpool.routes.auth import get_current_user
from promptpool.routes.prompts import NO_CONTENT_MESSAGE
from promptpool.server import app

from conftest import NOW, USER_ID

AUTH = {"Authorization": "Bearer test-token"}


def _item(item_id, difficulty=50.0, category="genericVocab"):
    return ExerciseItem(
        id=item_id,
        owner_uid=USER_ID,
        text=f"prompt {item_id}",
        category=category,
        difficulty=difficulty,
        sub_scores=DifficultyScores(
            freq_norm=1, abstractness=2, length_scale=1,
            response_type_scale=1, semantic_distance_scale=2,
        ),
        created_at=NOW,
    )


@pytest.fixture
def services():
    scheduler = MagicMock()
    scheduler.select_batch = AsyncMock()
    generator = MagicMock()
    generator.seed_pool = AsyncMock(return_value=42)
    generator.generate = AsyncMock(return_value=5)
    store = MagicMock()
    store.get_item = AsyncMock(return_value=None)
    store.delete_all = AsyncMock(return_value=7)
    users = MagicMock()
    users.list_user_ids = AsyncMock(return_value=[USER_ID])
    users.get_skill_scores = AsyncMock(return_value={})
    users.get_user = AsyncMock(return_value={"id": USER_ID})
    scorer = MagicMock()
    scorer.score = AsyncMock()

    app.state.scheduler = scheduler
    app.state.generator = generator
    app.state.store = store
    app.state.users = users
    app.state.scorer = scorer
    return MagicMock(scheduler=scheduler, generator=generator, store=store, users=users, scorer=scorer)


@pytest.fixture
def client(services):
    app.dependency_overrides[get_current_user] = lambda: {"id": USER_ID}
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestAuth:

    def test_missing_token_rejected(self, client):
        response = client.get("/api/prompts")
        assert response.status_code == 401

    def test_health_is_public(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_token_verified_against_users(self, services):
        token = jwt.encode({"sub": USER_ID}, settings.jwt_secret, algorithm="HS256")
        services.scheduler.select_batch.return_value = SelectedBatch(main=[_item("a")])

        response = TestClient(app).get("/api/prompts", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        services.users.get_user.assert_awaited_once_with(USER_ID)

    def test_bad_signature_rejected(self, services):
        token = jwt.encode({"sub": USER_ID}, "some-other-secret-that-is-long-enough", algorithm="HS256")
        response = TestClient(app).get("/api/prompts", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_unknown_user_rejected(self, services):
        services.users.get_user.return_value = None
        token = jwt.encode({"sub": "ghost"}, settings.jwt_secret, algorithm="HS256")
        response = TestClient(app).get("/api/prompts", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401


class TestGetPrompts:

    def test_batch_payload(self, client, services):
        services.scheduler.select_batch.return_value = SelectedBatch(
            main=[_item("m1"), _item("m2", 140)],
            easy_backups=[_item("e1", 30)],
            hard_backups=[],
        )

        response = client.get("/api/prompts?category=challenge&batch_size=2", headers=AUTH)

        assert response.status_code == 200
        body = response.json()
        assert [p["id"] for p in body["main"]] == ["m1", "m2"]
        assert body["main"][1]["difficulty"] == 100
        assert [p["id"] for p in body["easyBackups"]] == ["e1"]
        assert body["hardBackups"] == []
        services.scheduler.select_batch.assert_awaited_once_with(USER_ID, "challenge", 2)

    def test_defaults(self, client, services):
        services.scheduler.select_batch.return_value = SelectedBatch(main=[_item("m1")])

        client.get("/api/prompts", headers=AUTH)

        services.scheduler.select_batch.assert_awaited_once_with(USER_ID, "genericVocab", None)

    def test_unknown_category(self, client):
        assert client.get("/api/prompts?category=poetry", headers=AUTH).status_code == 422

    def test_no_content(self, client, services):
        services.scheduler.select_batch.side_effect = NoContentAvailable(USER_ID)

        response = client.get("/api/prompts", headers=AUTH)

        assert response.status_code == 500
        assert response.json()["detail"] == NO_CONTENT_MESSAGE

    def test_pool_unreadable(self, client, services):
        services.scheduler.select_batch.side_effect = PoolReadError("down")
        assert client.get("/api/prompts", headers=AUTH).status_code == 500


class TestPoolLifecycle:

    def test_initialize(self, client, services):
        response = client.post("/api/prompts/initialize", headers=AUTH)

        assert response.status_code == 201
        assert response.json()["promptCount"] == 42
        services.generator.seed_pool.assert_awaited_once_with(USER_ID)

    def test_initialize_failure(self, client, services):
        services.generator.seed_pool.side_effect = GenerationError("nothing")
        assert client.post("/api/prompts/initialize", headers=AUTH).status_code == 500

    def test_reset_deletes_then_regenerates(self, client, services):
        response = client.post("/api/prompts/reset", headers=AUTH)

        assert response.status_code == 200
        assert response.json() == {"message": "Prompts reset successfully.", "promptCount": 42}
        services.store.delete_all.assert_awaited_once_with(USER_ID)
        services.generator.seed_pool.assert_awaited_once_with(USER_ID)


class TestScore:

    def test_unknown_prompt(self, client):
        response = client.post("/api/prompts/missing/score", json={"response": "dog"}, headers=AUTH)
        assert response.status_code == 404

    def test_blank_response(self, client):
        response = client.post("/api/prompts/p1/score", json={"response": "  "}, headers=AUTH)
        assert response.status_code == 422

    def test_scored(self, client, services):
        item = _item("p1")
        services.store.get_item.return_value = item
        services.scorer.score.return_value = {"score": 0.8, "feedback": "Nice work!", "latency_ms": 120}

        response = client.post("/api/prompts/p1/score", json={"response": "dog"}, headers=AUTH)

        assert response.status_code == 200
        assert response.json() == {"score": 0.8, "feedback": "Nice work!", "latencyMs": 120}
        services.scorer.score.assert_awaited_once_with(USER_ID, item, "dog")

    def test_scorer_failure(self, client, services):
        services.store.get_item.return_value = _item("p1")
        services.scorer.score.side_effect = ScoringError("bad json")

        response = client.post("/api/prompts/p1/score", json={"response": "dog"}, headers=AUTH)
        assert response.status_code == 502


class TestAdminTopUp:

    def test_requires_secret(self, client):
        assert client.post("/api/admin/pool-top-up").status_code == 403
        assert client.post("/api/admin/pool-top-up", headers={"X-Admin-Secret": "wrong"}).status_code == 403

    def test_tops_up_every_user(self, client, services):
        response = client.post("/api/admin/pool-top-up", headers={"X-Admin-Secret": settings.admin_secret})

        assert response.status_code == 200
        body = response.json()
        assert body["users"] == 1
        assert body["added"] == {USER_ID: 15}
        assert services.generator.generate.await_count == 3
