"""HTTP tests: authentication seam, error mapping and response shapes"""
import pytest

from models import GameMode, Review, Role
from api.deps import get_refresh_worker
from services.refresh_worker import ApiObjectType


def _as(user_id):
    return {"X-User-Id": str(user_id)}


@pytest.fixture
def users(make_user):
    make_user(1, "reviewer")
    make_user(2, "captain", roles=[(Role.captain, GameMode.osu)])
    make_user(3, "news", roles=[Role.news])
    make_user(4, "god", roles=[Role.god])
    make_user(5, "alumnus", roles=[(Role.captain, GameMode.osu, True)])


class TestBasics:
    def test_root_and_health(self, client):
        assert client.get("/").json()["status"] == "ok"
        assert client.get("/health").json() == {"status": "healthy"}

    def test_missing_user_header(self, client):
        response = client.post("/review", json={"beatmapset_id": 1, "game_mode": 0, "score": 1, "reason": ""})

        assert response.status_code == 401

    def test_unknown_user(self, client, users):
        assert client.get("/rounds", headers=_as(999)).status_code == 401

    def test_role_required_for_rounds(self, client, users):
        assert client.get("/rounds", headers=_as(1)).status_code == 403
        assert client.get("/rounds", headers=_as(5)).status_code == 403
        assert client.get("/rounds", headers=_as(2)).status_code == 200


class TestReviewsApi:
    def test_submit_and_delete(self, client, users, make_beatmapset, db):
        make_beatmapset(100)

        response = client.post(
            "/review",
            json={"beatmapset_id": 100, "game_mode": 0, "score": 3, "reason": "great"},
            headers=_as(1),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["score"] == 3
        assert body["active_captain"] is None

        response = client.delete("/review", params={"review_id": body["id"]}, headers=_as(2))
        assert response.status_code == 403

        response = client.delete("/review", params={"review_id": body["id"]}, headers=_as(1))
        assert response.status_code == 204

        db.expire_all()
        assert db.query(Review).count() == 0

    def test_error_mapping(self, client, users, make_beatmapset):
        make_beatmapset(100)

        captain_only = client.post(
            "/review", json={"beatmapset_id": 100, "game_mode": 0, "score": 0, "reason": ""}, headers=_as(1)
        )
        deprecated = client.post(
            "/review", json={"beatmapset_id": 100, "game_mode": 0, "score": 2, "reason": ""}, headers=_as(1)
        )
        missing = client.delete("/review", params={"review_id": 42}, headers=_as(1))

        assert captain_only.status_code == 403
        assert deprecated.status_code == 422
        assert missing.status_code == 404

    def test_review_many(self, client, users, make_beatmapset, db):
        make_beatmapset(100, game_modes=(GameMode.osu, GameMode.catch))

        response = client.post(
            "/review-many",
            json={"beatmapset_id": 100, "game_modes": [0, 2], "score": 1, "reason": ""},
            headers=_as(1),
        )

        assert response.status_code == 204
        db.expire_all()
        assert db.query(Review).count() == 2


class TestConsentsApi:
    def test_set_and_list(self, client, users, make_beatmapset):
        make_beatmapset(100)

        response = client.post(
            "/mapper-consent",
            json={
                "consent": {"user_id": 1, "consent": 1, "consent_reason": None},
                "consent_beatmapsets": [{"beatmapset_id": 100, "consent": 0}],
            },
            headers=_as(1),
        )
        assert response.status_code == 200
        assert response.json()["beatmapset_consents"][0]["beatmapset"]["id"] == 100

        listed = client.get("/mapper-consents").json()
        assert [c["user_id"] for c in listed] == [1]

    def test_unresolvable_beatmapset_is_404(self, client, users):
        response = client.post(
            "/mapper-consent",
            json={
                "consent": {"user_id": 1, "consent": 1},
                "consent_beatmapsets": [{"beatmapset_id": 404, "consent": 0}],
            },
            headers=_as(2),
        )

        assert response.status_code == 404

    def test_unreachable_is_422(self, client, users):
        response = client.post(
            "/mapper-consent",
            json={"consent": {"user_id": 1, "consent": 2}},
            headers=_as(1),
        )

        assert response.status_code == 422


class TestRoundsAndNominationsApi:
    def test_round_and_nomination_flow(self, client, users, make_beatmapset):
        make_beatmapset(100)

        assert client.post("/add-round", headers=_as(2)).status_code == 403

        round_id = client.post("/add-round", headers=_as(3)).json()["id"]

        response = client.post(
            "/update-round",
            json={"round_id": round_id, "round": {"name": "Round 1"}},
            headers=_as(3),
        )
        assert response.status_code == 204

        response = client.post(
            "/nomination-submit",
            json={"round_id": round_id, "game_mode": 0, "beatmapset_id": 100},
            headers=_as(2),
        )
        assert response.status_code == 200
        nomination_id = response.json()["id"]

        duplicate = client.post(
            "/nomination-submit",
            json={"round_id": round_id, "game_mode": 0, "beatmapset_id": 100},
            headers=_as(2),
        )
        assert duplicate.status_code == 409

        response = client.post("/update-nomination-order", json={str(nomination_id): 3}, headers=_as(2))
        assert response.status_code == 204

        listed = client.get("/nominations", params={"round_id": round_id}, headers=_as(2)).json()
        assert listed["round"]["name"] == "Round 1"
        assert [(n["id"], n["order"]) for n in listed["nominations"]] == [(nomination_id, 3)]

        rounds = client.get("/rounds", headers=_as(3)).json()
        assert [(r["id"], r["nomination_count"]) for r in rounds["incomplete_rounds"]] == [(round_id, 1)]

        response = client.delete("/nomination", params={"nomination_id": nomination_id}, headers=_as(3))
        assert response.status_code == 403

        response = client.delete("/nomination", params={"nomination_id": nomination_id}, headers=_as(2))
        assert response.status_code == 204

    def test_unknown_round_is_404(self, client, users):
        response = client.get("/nominations", params={"round_id": 999}, headers=_as(2))

        assert response.status_code == 404


class TestAdminApi:
    def test_requires_god(self, client, users, make_beatmapset):
        make_beatmapset(100)

        response = client.post("/update-api-object", json={"type": "beatmapset", "id": 100}, headers=_as(3))

        assert response.status_code == 403

    def test_refresh_one(self, client, users, make_beatmapset, content):
        make_beatmapset(100)

        response = client.post("/update-api-object", json={"type": "beatmapset", "id": 100}, headers=_as(4))
        assert response.status_code == 204
        assert content.beatmapset_calls == [(100, True)]

        response = client.post("/update-api-object", json={"type": "user", "id": 999}, headers=_as(4))
        assert response.status_code == 422

    def test_bulk_is_queued(self, client, users):
        queued = []

        class RecordingWorker:
            def enqueue(self, object_type, object_ids):
                queued.append((object_type, list(object_ids)))
                return len(queued[-1][1])

        client.app.dependency_overrides[get_refresh_worker] = lambda: RecordingWorker()

        response = client.post(
            "/update-api-object-bulk", json={"type": "user", "ids": [1, 2, 2]}, headers=_as(4)
        )

        assert response.status_code == 204
        assert queued == [(ApiObjectType.user, [1, 2])]


class TestUsersApi:
    def test_god_grants_a_role_that_opens_the_staff_routes(self, client, users, make_user):
        make_user(50, "Peppy")

        assert client.get("/rounds", headers=_as(50)).status_code == 403

        added = client.post("/add-user", json={"name": "peppy"}, headers=_as(4))
        assert added.status_code == 200
        assert (added.json()["id"], added.json()["roles"]) == (50, [])

        response = client.post(
            "/update-permissions",
            json={"user_id": 50, "roles": [{"role_id": int(Role.captain)}]},
            headers=_as(4),
        )
        assert response.status_code == 200
        assert response.json()["roles"] == [{"role_id": int(Role.captain), "game_mode": None, "alumni": False}]

        assert client.get("/rounds", headers=_as(50)).status_code == 200

        listed = client.get("/users-with-permissions", headers=_as(1)).json()
        assert 50 in [user["id"] for user in listed]

    def test_error_mapping(self, client, users):
        assert client.post("/add-user", json={"name": "peppy"}, headers=_as(3)).status_code == 403
        assert client.post("/add-user", json={"name": "nobody"}, headers=_as(4)).status_code == 422

        unknown_user = client.post(
            "/update-permissions", json={"user_id": 999, "roles": []}, headers=_as(4)
        )
        scoped_news = client.post(
            "/update-permissions",
            json={"user_id": 1, "roles": [{"role_id": int(Role.news), "game_mode": 0}]},
            headers=_as(4),
        )
        assert unknown_user.status_code == 404
        assert scoped_news.status_code == 422

    def test_listing_requires_login(self, client, users):
        assert client.get("/users-with-permissions").status_code == 401
