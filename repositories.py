"""
Collection repositories built on a RecordStore.

Every operation reads the whole collection document, works on the list of
entities and, when it changes something, writes the whole document back.
Missing ids are reported as None / False, never raised.
"""

import logging
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel

from database import RecordStore
from helpers import calculate_rank, generate_id, parse_timestamp, utc_now_iso, utc_today
from schemas import (
    ChatDocument,
    ChatMessage,
    Post,
    PostsDocument,
    Profile,
    ProfilesDocument,
    User,
    UsersDocument,
    Vote,
    VotesDocument,
)

logger = logging.getLogger(__name__)

CHAT_RETENTION = 500

Record = Dict[str, Any]


class VoteRejected(Exception):
    """A vote that breaks the one-per-profile-per-day rule or the daily quota."""

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason


class Repository:
    name: str = ""
    key: str = ""
    document_model: Type[BaseModel] = BaseModel
    entity_model: Type[BaseModel] = BaseModel

    def __init__(self, store: RecordStore):
        self.store = store

    def _load(self) -> Dict[str, Any]:
        data = self.store.read(self.name, {self.key: []})
        # raises pydantic.ValidationError on a document of the wrong shape
        self.document_model.model_validate(data)
        data.setdefault(self.key, [])
        return data

    def _save(self, data: Dict[str, Any]) -> None:
        self.store.write(self.name, data)

    @staticmethod
    def _index_of(items: List[Record], record_id: str) -> int:
        for i, item in enumerate(items):
            if item.get("id") == record_id:
                return i
        return -1

    def get_all(self) -> List[Record]:
        return list(self._load()[self.key])

    def get_by_id(self, record_id: str) -> Optional[Record]:
        for item in self.get_all():
            if item.get("id") == record_id:
                return item
        return None

    def create(self, entity: Record) -> Record:
        self.entity_model.model_validate(entity)
        data = self._load()
        data[self.key].append(entity)
        self._save(data)
        return entity


class UpdatableRepository(Repository):
    def _merge(self, current: Record, updates: Record) -> Record:
        return {**current, **updates}

    def update(self, record_id: str, updates: Record) -> Optional[Record]:
        data = self._load()
        items = data[self.key]
        index = self._index_of(items, record_id)
        if index == -1:
            return None
        merged = self._merge(items[index], updates)
        self.entity_model.model_validate(merged)
        items[index] = merged
        self._save(data)
        return merged


class DeletableRepository(UpdatableRepository):
    def delete(self, record_id: str) -> bool:
        data = self._load()
        items = data[self.key]
        filtered = [item for item in items if item.get("id") != record_id]
        removed = len(filtered) != len(items)
        data[self.key] = filtered
        self._save(data)
        return removed


# -------- Users ---------

class UserRepository(UpdatableRepository):
    name = "users"
    key = "users"
    document_model = UsersDocument
    entity_model = User

    def get_by_username(self, username: str) -> Optional[Record]:
        wanted = username.lower()
        for user in self.get_all():
            if str(user.get("username", "")).lower() == wanted:
                return user
        return None


# -------- Profiles ---------

class ProfileRepository(DeletableRepository):
    name = "profiles"
    key = "profiles"
    document_model = ProfilesDocument
    entity_model = Profile

    def _merge(self, current: Record, updates: Record) -> Record:
        return {**current, **updates, "updatedAt": utc_now_iso()}

    def get_top(self, limit: int = 10) -> List[Record]:
        profiles = sorted(self.get_all(), key=lambda p: p.get("votes") or 0, reverse=True)
        return profiles[:limit]


# -------- Posts ---------

class PostRepository(DeletableRepository):
    name = "posts"
    key = "posts"
    document_model = PostsDocument
    entity_model = Post

    def get_all(self) -> List[Record]:
        """Pinned posts first, each group newest first."""
        return sorted(
            super().get_all(),
            key=lambda p: (not p.get("isPinned"), -parse_timestamp(p.get("createdAt"))),
        )

    def like(self, post_id: str) -> Optional[Record]:
        data = self._load()
        items = data[self.key]
        index = self._index_of(items, post_id)
        if index == -1:
            return None
        items[index]["likes"] = (items[index].get("likes") or 0) + 1
        self._save(data)
        return items[index]


# -------- Chat ---------

class ChatRepository(UpdatableRepository):
    name = "chat"
    key = "messages"
    document_model = ChatDocument
    entity_model = ChatMessage

    def get_messages(self, limit: int = 100) -> List[Record]:
        messages = sorted(self.get_all(), key=lambda m: parse_timestamp(m.get("createdAt")))
        return messages[-limit:]

    def create(self, message: Record) -> Record:
        """Append a message, keeping only the newest CHAT_RETENTION in storage."""
        self.entity_model.model_validate(message)
        data = self._load()
        data[self.key].append(message)
        if len(data[self.key]) > CHAT_RETENTION:
            data[self.key] = data[self.key][-CHAT_RETENTION:]
        self._save(data)
        return message

    def add_message(self, message: Record) -> Record:
        return self.create(message)


# -------- Votes ---------

class VoteRepository(Repository):
    """Append-only: votes are never updated or deleted."""

    name = "votes"
    key = "votes"
    document_model = VotesDocument
    entity_model = Vote

    def add_vote(self, vote: Record) -> Record:
        return self.create(vote)

    def get_votes_for_profile(self, profile_id: str) -> int:
        return sum(1 for v in self.get_all() if v.get("profileId") == profile_id)

    def has_voted_today(self, voter_id: str, profile_id: str) -> bool:
        today = utc_today()
        return any(
            v.get("voterId") == voter_id
            and v.get("profileId") == profile_id
            and str(v.get("createdAt", "")).startswith(today)
            for v in self.get_all()
        )

    def get_today_vote_count(self, voter_id: str) -> int:
        today = utc_today()
        return sum(
            1 for v in self.get_all()
            if v.get("voterId") == voter_id and str(v.get("createdAt", "")).startswith(today)
        )


class Repositories:
    def __init__(self, store: RecordStore):
        self.store = store
        self.users = UserRepository(store)
        self.profiles = ProfileRepository(store)
        self.posts = PostRepository(store)
        self.chat = ChatRepository(store)
        self.votes = VoteRepository(store)

    def update_profile_votes_and_rank(self, profile_id: str) -> Optional[Record]:
        """Recount a profile's votes and store the count together with its rank."""
        votes = self.votes.get_votes_for_profile(profile_id)
        return self.profiles.update(profile_id, {"votes": votes, "rank": calculate_rank(votes)})

    def cast_vote(self, voter_id: str, profile_id: str, daily_limit: int) -> Optional[Record]:
        if self.profiles.get_by_id(profile_id) is None:
            return None
        if self.votes.has_voted_today(voter_id, profile_id):
            raise VoteRejected("already_voted", "Already voted for this profile today")
        if self.votes.get_today_vote_count(voter_id) >= daily_limit:
            raise VoteRejected("daily_limit", f"Daily vote limit of {daily_limit} reached")
        self.votes.add_vote({
            "id": generate_id("vote"),
            "voterId": voter_id,
            "profileId": profile_id,
            "createdAt": utc_now_iso(),
        })
        logger.info(f"Vote from {voter_id} for {profile_id}")
        return self.update_profile_votes_and_rank(profile_id)
