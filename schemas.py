"""
Database Schemas for the Rankboard app

One pydantic model per entity plus one per stored collection document.
Each collection is persisted as a single document of the form
`{"<key>": [...entities]}`; the `*Document` models describe that shape and
are used to validate what comes back from storage.

Entities allow extra attributes so profile fields the UI adds are kept.
"""

from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

Rank = Literal["bronze", "silver", "gold", "platinum", "diamond", "master", "legend"]


class Entity(BaseModel):
    model_config = ConfigDict(extra="allow")


class User(Entity):
    id: str
    username: str = Field(..., min_length=1)
    passwordHash: str = Field(..., description="SHA-256 hex digest, never the plaintext")
    profileId: Optional[str] = None
    createdAt: Optional[str] = Field(None, description="ISO-8601 UTC timestamp")


class Profile(Entity):
    id: str
    name: Optional[str] = None
    votes: int = Field(0, ge=0)
    rank: Rank = "bronze"
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None


class Post(Entity):
    id: str
    authorId: Optional[str] = None
    content: Optional[str] = None
    isPinned: bool = False
    likes: int = Field(0, ge=0)
    createdAt: str


class ChatMessage(Entity):
    id: str
    userId: Optional[str] = None
    username: Optional[str] = None
    content: Optional[str] = None
    createdAt: str


class Vote(Entity):
    voterId: str
    profileId: str
    createdAt: str = Field(..., description="ISO-8601 UTC timestamp; the date prefix is the voting day")


# -------- Stored collection documents ---------

class UsersDocument(BaseModel):
    users: List[User] = Field(default_factory=list)


class ProfilesDocument(BaseModel):
    profiles: List[Profile] = Field(default_factory=list)


class PostsDocument(BaseModel):
    posts: List[Post] = Field(default_factory=list)


class ChatDocument(BaseModel):
    messages: List[ChatMessage] = Field(default_factory=list)


class VotesDocument(BaseModel):
    votes: List[Vote] = Field(default_factory=list)
