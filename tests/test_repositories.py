from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from helpers import calculate_rank
from repositories import CHAT_RETENTION, Repositories, VoteRejected


def iso(dt):
    return dt.strftime("%Y-%m-%dT%H:%M:%S.000Z")


def profile(pid, **extra):
    return {"id": pid, "name": pid, "votes": 0, "rank": "bronze", **extra}


def post(pid, created, pinned=False):
    return {"id": pid, "content": pid, "createdAt": created, "isPinned": pinned, "likes": 0}


# -------- generic CRUD ---------

def test_get_by_id_missing_returns_none(repos):
    assert repos.profiles.get_by_id("nope") is None
    assert repos.users.get_by_id("nope") is None


def test_create_returns_entity_unchanged(repos):
    entity = profile("p1", bio="hi")
    assert repos.profiles.create(entity) == entity
    assert repos.profiles.get_by_id("p1") == entity


def test_create_rejects_invalid_entity(repos):
    with pytest.raises(ValidationError):
        repos.posts.create({"content": "no id or timestamp"})


def test_update_missing_returns_none(repos):
    assert repos.posts.update("nope", {"likes": 3}) is None


def test_update_is_shallow_merge(repos):
    repos.users.create({"id": "u1", "username": "Ann", "passwordHash": "x", "profileId": "p1"})
    updated = repos.users.update("u1", {"username": "Anna"})
    assert updated == {"id": "u1", "username": "Anna", "passwordHash": "x", "profileId": "p1"}


def test_profile_update_stamps_updated_at(repos):
    repos.profiles.create(profile("p1", updatedAt="2000-01-01T00:00:00.000Z"))
    updated = repos.profiles.update("p1", {"name": "New", "updatedAt": "1999-01-01T00:00:00.000Z"})
    assert updated["name"] == "New"
    assert updated["updatedAt"] > "2020"


def test_delete_nonexistent_profile_leaves_collection(repos, memory_store):
    repos.profiles.create(profile("p1"))
    repos.profiles.create(profile("p2"))
    before = memory_store.read("profiles", {})
    assert repos.profiles.delete("missing") is False
    assert memory_store.read("profiles", {}) == before


def test_delete_profile(repos):
    repos.profiles.create(profile("p1"))
    assert repos.profiles.delete("p1") is True
    assert repos.profiles.get_all() == []


def test_repositories_work_on_file_store(file_store):
    repos = Repositories(file_store)
    repos.profiles.create(profile("p1"))
    assert Repositories(file_store).profiles.get_by_id("p1")["name"] == "p1"


# -------- users ---------

def test_username_lookup_is_case_insensitive(repos):
    repos.users.create({"id": "u1", "username": "MixedCase", "passwordHash": "x"})
    assert repos.users.get_by_username("mixedcase")["id"] == "u1"
    assert repos.users.get_by_username("MIXEDCASE")["id"] == "u1"
    assert repos.users.get_by_username("other") is None


# -------- profiles ---------

def test_leaderboard_orders_by_votes(repos):
    repos.profiles.create(profile("a", votes=3))
    repos.profiles.create({"id": "b", "name": "no votes yet"})
    repos.profiles.create(profile("c", votes=9))
    assert [p["id"] for p in repos.profiles.get_top(2)] == ["c", "a"]


# -------- posts ---------

def test_posts_pinned_first_then_newest(repos):
    repos.posts.create(post("A", "2026-01-02T00:00:00.000Z"))
    repos.posts.create(post("B", "2026-01-01T00:00:00.000Z", pinned=True))
    repos.posts.create(post("C", "2026-01-03T00:00:00.000Z"))
    assert [p["id"] for p in repos.posts.get_all()] == ["B", "C", "A"]


def test_posts_get_all_does_not_reorder_storage(repos, memory_store):
    repos.posts.create(post("A", "2026-01-01T00:00:00.000Z"))
    repos.posts.create(post("B", "2026-01-02T00:00:00.000Z"))
    repos.posts.get_all()
    assert [p["id"] for p in memory_store.read("posts", {})["posts"]] == ["A", "B"]


def test_like_post(repos):
    repos.posts.create({"id": "p", "createdAt": "2026-01-01T00:00:00.000Z"})
    assert repos.posts.like("p")["likes"] == 1
    assert repos.posts.like("p")["likes"] == 2
    assert repos.posts.like("missing") is None


def test_delete_post(repos):
    repos.posts.create(post("A", "2026-01-01T00:00:00.000Z"))
    assert repos.posts.delete("A") is True
    assert repos.posts.delete("A") is False


# -------- chat ---------

def message(i):
    return {"id": f"m{i}", "content": str(i), "createdAt": f"2026-01-01T00:{i // 60:02d}:{i % 60:02d}.000Z"}


def test_chat_retention_keeps_newest_500(repos, memory_store):
    for i in range(CHAT_RETENTION + 1):
        repos.chat.add_message(message(i))
    stored = memory_store.read("chat", {})["messages"]
    assert len(stored) == CHAT_RETENTION
    assert stored[0]["id"] == "m1"
    assert stored[-1]["id"] == f"m{CHAT_RETENTION}"
    assert [m["id"] for m in stored] == [f"m{i}" for i in range(1, CHAT_RETENTION + 1)]


def test_get_messages_returns_latest_in_ascending_order(repos):
    for i in (3, 1, 2, 0):
        repos.chat.add_message(message(i))
    assert [m["id"] for m in repos.chat.get_messages(limit=3)] == ["m1", "m2", "m3"]
    assert [m["id"] for m in repos.chat.get_messages()] == ["m0", "m1", "m2", "m3"]


# -------- votes ---------

def vote(voter, pid, when):
    return {"voterId": voter, "profileId": pid, "createdAt": iso(when)}


def test_has_voted_today(repos):
    now = datetime.now(timezone.utc)
    repos.votes.add_vote(vote("v", "p", now - timedelta(days=1)))
    assert repos.votes.has_voted_today("v", "p") is False

    repos.votes.add_vote(vote("v", "p", now))
    assert repos.votes.has_voted_today("v", "p") is True
    assert repos.votes.has_voted_today("v", "other") is False
    assert repos.votes.has_voted_today("someone", "p") is False


def test_today_vote_count_spans_profiles(repos):
    now = datetime.now(timezone.utc)
    repos.votes.add_vote(vote("v", "p1", now))
    repos.votes.add_vote(vote("v", "p2", now))
    repos.votes.add_vote(vote("v", "p3", now - timedelta(days=2)))
    repos.votes.add_vote(vote("w", "p1", now))
    assert repos.votes.get_today_vote_count("v") == 2
    assert repos.votes.get_votes_for_profile("p1") == 2


def test_update_profile_votes_and_rank(repos):
    repos.profiles.create(profile("p"))
    start = datetime(2026, 1, 1, tzinfo=timezone.utc)
    for i in range(21):
        repos.votes.add_vote(vote(f"v{i}", "p", start))

    updated = repos.update_profile_votes_and_rank("p")
    assert updated["votes"] == 21
    assert updated["rank"] == "silver" == calculate_rank(updated["votes"])
    assert repos.profiles.get_by_id("p")["rank"] == "silver"


def test_update_profile_votes_and_rank_missing_profile(repos):
    assert repos.update_profile_votes_and_rank("ghost") is None


def test_cast_vote_enforces_daily_rules(repos):
    repos.profiles.create(profile("p1"))
    repos.profiles.create(profile("p2"))

    assert repos.cast_vote("v", "p1", daily_limit=1)["votes"] == 1

    with pytest.raises(VoteRejected) as exc:
        repos.cast_vote("v", "p1", daily_limit=5)
    assert exc.value.reason == "already_voted"

    with pytest.raises(VoteRejected) as exc:
        repos.cast_vote("v", "p2", daily_limit=1)
    assert exc.value.reason == "daily_limit"

    assert repos.cast_vote("v", "missing", daily_limit=5) is None


def test_votes_cannot_be_modified(repos, memory_store):
    stored = {"id": "v1", "voterId": "v", "profileId": "p1", "createdAt": "2026-01-01T00:00:00.000Z"}
    repos.votes.add_vote(dict(stored))

    assert not hasattr(repos.votes, "update")
    assert not hasattr(repos.votes, "delete")
    assert memory_store.read("votes", {})["votes"] == [stored]


def test_chat_create_applies_retention(repos, memory_store):
    for i in range(CHAT_RETENTION + 1):
        repos.chat.create(message(i))
    stored = memory_store.read("chat", {})["messages"]
    assert len(stored) == CHAT_RETENTION
    assert stored[0]["id"] == "m1"
    assert stored[-1]["id"] == f"m{CHAT_RETENTION}"
