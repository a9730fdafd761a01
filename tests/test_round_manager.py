"""Tests for RoundManager"""
import pytest

from models import GameMode, Nomination, Role, Round, RoundGameMode
from core import round_manager
from core.exceptions import Forbidden, RoundNotFound, ValidationError
from core.round_manager import DEFAULT_ROUND_NAME, RoundManager


@pytest.fixture
def news(make_user, capabilities_for):
    return capabilities_for(make_user(1, "news", roles=[Role.news]))


@pytest.fixture
def captain(make_user, capabilities_for):
    return capabilities_for(make_user(2, "captain", roles=[(Role.captain, GameMode.osu)]))


class TestCreateRound:
    def test_new_round_is_incomplete_and_empty(self, db, news):
        round_obj = RoundManager.create_round(db, news)

        rounds = RoundManager.list_rounds(db)

        assert rounds.complete_rounds == []
        assert [(r.id, r.name, r.nomination_count) for r in rounds.incomplete_rounds] == [
            (round_obj.id, DEFAULT_ROUND_NAME, 0)
        ]

    def test_seeds_every_game_mode(self, db, news, monkeypatch):
        monkeypatch.setattr(round_manager.settings, "default_voting_thresholds", {0: 0.6, 3: 0.75})

        round_obj = RoundManager.create_round(db, news)

        thresholds = {
            rgm.game_mode: rgm.voting_threshold
            for rgm in db.query(RoundGameMode).filter(RoundGameMode.round_id == round_obj.id)
        }
        assert thresholds == {0: 0.6, 1: 0, 2: 0, 3: 0.75}

    def test_requires_news(self, db, captain):
        with pytest.raises(Forbidden):
            RoundManager.create_round(db, captain)

        assert db.query(Round).count() == 0


class TestListRounds:
    def test_split_and_ordering(self, db):
        db.add_all([
            Round(id=1, name="old", done=True),
            Round(id=2, name="newer", done=True),
            Round(id=3, name="open", done=False),
            Round(id=4, name="next", done=False),
        ])
        db.flush()
        db.add_all([
            Nomination(round_id=3, game_mode=0, beatmapset_id=100, order=0),
            Nomination(round_id=3, game_mode=1, beatmapset_id=100, order=0),
            Nomination(round_id=1, game_mode=0, beatmapset_id=101, order=0),
        ])
        db.commit()

        rounds = RoundManager.list_rounds(db)

        assert [(r.id, r.nomination_count) for r in rounds.complete_rounds] == [(2, 0), (1, 1)]
        assert [(r.id, r.nomination_count) for r in rounds.incomplete_rounds] == [(3, 2), (4, 0)]


class TestUpdateRound:
    def test_updates_given_fields_only(self, db, news):
        round_obj = RoundManager.create_round(db, news)

        RoundManager.update_round(db, news, round_obj.id, {"name": "Round 42", "news_outro": "See you"})

        db.expire_all()
        stored = db.get(Round, round_obj.id)
        assert stored.name == "Round 42"
        assert stored.news_outro == "See you"
        assert stored.news_intro is None

    def test_rejects_empty_name_and_unknown_fields(self, db, news):
        round_obj = RoundManager.create_round(db, news)

        with pytest.raises(ValidationError):
            RoundManager.update_round(db, news, round_obj.id, {"name": ""})
        with pytest.raises(ValidationError):
            RoundManager.update_round(db, news, round_obj.id, {"done": True})

    def test_unknown_round(self, db, news):
        with pytest.raises(RoundNotFound):
            RoundManager.update_round(db, news, 999, {"name": "x"})

    def test_requires_news(self, db, news, captain):
        round_obj = RoundManager.create_round(db, news)

        with pytest.raises(Forbidden):
            RoundManager.update_round(db, captain, round_obj.id, {"name": "x"})
