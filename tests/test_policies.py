"""Tests for the small policy helpers: scores, capabilities, grouping, cache, keyed lock"""
import threading

import pytest

from models import GameMode, Role, UserRole
from core.capabilities import Capabilities
from core.locks import KeyedLock
from services.cache_service import CacheStore, cache, delete_cache, reviews_cache_key
from services.grouping import group_by, unique_by
from services.score_policy import allow_deprecated_score, is_valid_score, requires_captain


def _role(role, game_mode=None, alumni=False):
    return UserRole(role_id=int(role), game_mode=game_mode, alumni=alumni)


class TestScorePolicy:
    @pytest.mark.parametrize("score", [-4, -3, -1, 0, 1, 3])
    def test_valid_scores(self, score):
        assert is_valid_score(score)

    @pytest.mark.parametrize("score", [-5, 4, 1.0, "1", None, True])
    def test_invalid_scores(self, score):
        assert not is_valid_score(score)

    def test_captain_scores(self):
        assert requires_captain(-4)
        assert requires_captain(0)
        assert not requires_captain(1)
        assert not requires_captain(-2)

    @pytest.mark.parametrize("score", [-2, 2])
    def test_deprecated_score_needs_identical_existing(self, score):
        assert allow_deprecated_score(score, score)
        assert not allow_deprecated_score(None, score)
        assert not allow_deprecated_score(1, score)
        assert not allow_deprecated_score(-score, score)

    def test_other_scores_always_allowed(self):
        assert allow_deprecated_score(None, 3)
        assert allow_deprecated_score(2, 1)


class TestCapabilities:
    def test_no_roles(self):
        capabilities = Capabilities.from_roles(1, [])

        assert not capabilities.any_role
        assert not capabilities.has_captain()
        assert not capabilities.has_news()

    def test_captain_is_scoped_to_game_mode(self):
        capabilities = Capabilities.from_roles(1, [_role(Role.captain, GameMode.taiko)])

        assert capabilities.any_role
        assert capabilities.has_captain()
        assert capabilities.has_captain(GameMode.taiko)
        assert not capabilities.has_captain(GameMode.osu)

    def test_alumni_roles_grant_nothing(self):
        capabilities = Capabilities.from_roles(1, [
            _role(Role.captain, GameMode.osu, alumni=True),
            _role(Role.news, alumni=True),
        ])

        assert not capabilities.any_role
        assert not capabilities.has_captain(GameMode.osu)
        assert not capabilities.has_news()

    def test_god_implies_everything(self):
        capabilities = Capabilities.from_roles(1, [_role(Role.god)])

        assert capabilities.has_captain(GameMode.mania)
        assert capabilities.has_news()
        assert capabilities.has_metadata()
        assert capabilities.has_moderator()
        assert capabilities.has_god()

    def test_active_captain(self):
        capabilities = Capabilities.from_roles(1, [
            _role(Role.captain, GameMode.osu),
            _role(Role.captain, GameMode.catch, alumni=True),
        ])

        assert capabilities.active_captain(GameMode.osu) is True
        assert capabilities.active_captain(GameMode.catch) is False
        assert capabilities.active_captain(GameMode.mania) is None

    def test_captain_without_mode_covers_every_mode(self):
        capabilities = Capabilities.from_roles(1, [_role(Role.captain)])

        assert capabilities.any_role
        assert capabilities.has_captain()
        assert all(capabilities.has_captain(game_mode) for game_mode in GameMode)
        assert capabilities.active_captain(GameMode.mania) is True

    def test_mode_specific_alumni_row_wins_over_modeless_row(self):
        capabilities = Capabilities.from_roles(1, [
            _role(Role.captain),
            _role(Role.captain, GameMode.taiko, alumni=True),
        ])

        assert capabilities.has_captain(GameMode.taiko)
        assert capabilities.active_captain(GameMode.taiko) is False
        assert capabilities.active_captain(GameMode.osu) is True


class TestGrouping:
    def test_group_by_keeps_row_order(self):
        rows = [(1, "a"), (2, "b"), (1, "c")]

        assert group_by(rows, key=lambda r: r[0]) == {1: [(1, "a"), (1, "c")], 2: [(2, "b")]}
        assert group_by(rows, key=lambda r: r[0], value=lambda r: r[1]) == {1: ["a", "c"], 2: ["b"]}

    def test_unique_by_drops_none_and_repeats(self):
        class Item:
            def __init__(self, id):
                self.id = id

        first, second = Item(1), Item(2)
        result = unique_by([first, None, Item(1), second, second])

        assert result == [first, second]

    def test_fanned_out_join_rows(self):
        # 2 creators x 2 beatmaps for nomination 7
        rows = [(7, "alice", 70), (7, "alice", 71), (7, "bob", 70), (7, "bob", 71)]
        grouped = group_by(rows, key=lambda r: r[0])[7]

        assert unique_by((r[1] for r in grouped), key=lambda name: name) == ["alice", "bob"]
        assert unique_by((r[2] for r in grouped), key=lambda beatmap_id: beatmap_id) == [70, 71]


class TestCache:
    def test_get_or_set_computes_once(self):
        store = CacheStore(ttl_seconds=60)
        calls = []

        def factory():
            calls.append(1)
            return "value"

        assert store.get_or_set("key", factory) == "value"
        assert store.get_or_set("key", factory) == "value"
        assert len(calls) == 1
        assert "key" in store

    def test_expired_entry_is_recomputed(self):
        store = CacheStore(ttl_seconds=0)
        store.get_or_set("key", lambda: 1)

        assert "key" not in store
        assert store.get_or_set("key", lambda: 2) == 2

    def test_invalidation_during_compute_is_not_lost(self):
        store = CacheStore(ttl_seconds=60)
        rows = {"v": "old"}

        def stale_read():
            snapshot = dict(rows)
            # a writer commits and invalidates while the read is in flight
            rows["v"] = "new"
            store.delete("key")
            return snapshot

        assert store.get_or_set("key", stale_read) == {"v": "old"}
        assert store.get_or_set("key", lambda: dict(rows)) == {"v": "new"}

    def test_clear_during_compute_is_not_lost(self):
        store = CacheStore(ttl_seconds=60)

        def stale_read():
            store.clear()
            return "old"

        store.get_or_set("key", stale_read)

        assert store.get_or_set("key", lambda: "new") == "new"

    def test_delete_cache(self):
        cache.get_or_set("mapper-consents", lambda: [])
        delete_cache("mapper-consents")

        assert "mapper-consents" not in cache

    def test_reviews_key_uses_integer_mode(self):
        assert reviews_cache_key(GameMode.osu) == "submissions:0:reviews"
        assert reviews_cache_key(GameMode.mania) == "submissions:3:reviews"


class TestKeyedLock:
    def test_entries_are_dropped_after_release(self):
        locks = KeyedLock()

        with locks.acquire(5):
            assert len(locks) == 1

        assert len(locks) == 0

    def test_same_key_is_serialized(self):
        locks = KeyedLock()
        inside = []
        overlap = []

        def work():
            with locks.acquire("peppy"):
                inside.append(1)
                if len(inside) > 1:
                    overlap.append(1)
                threading.Event().wait(0.01)
                inside.pop()

        threads = [threading.Thread(target=work) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert overlap == []
        assert len(locks) == 0
