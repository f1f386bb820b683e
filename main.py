import logging
from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from config import Settings, get_settings
from database import create_record_store
from helpers import generate_id, hash_password, utc_now_iso, verify_password
from repositories import Repositories, VoteRejected
from uploads import BlobStore, UploadRejected, create_blob_store, validate_image

logger = logging.getLogger(__name__)

app = FastAPI(title="Rankboard API", version="1.0.0")

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache()
def get_repositories() -> Repositories:
    return Repositories(create_record_store(get_settings()))


@lru_cache()
def get_blob_store() -> BlobStore:
    return create_blob_store(get_settings())


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in user.items() if k != "passwordHash"}


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=32)
    password: str = Field(..., min_length=6)
    name: Optional[str] = None


class LoginRequest(BaseModel):
    username: str
    password: str


class ProfileCreate(BaseModel):
    name: str
    bio: Optional[str] = None
    avatar: Optional[str] = None


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    bio: Optional[str] = None
    avatar: Optional[str] = None


class PostCreate(BaseModel):
    authorId: str
    content: str
    image: Optional[str] = None
    isPinned: bool = False


class PostUpdate(BaseModel):
    content: Optional[str] = None
    image: Optional[str] = None
    isPinned: Optional[bool] = None


class ChatCreate(BaseModel):
    userId: str
    username: str
    content: str = Field(..., min_length=1, max_length=1000)


class VoteCreate(BaseModel):
    voterId: str
    profileId: str


@app.get("/", tags=["health"])
async def root():
    return {"status": "ok", "service": "Rankboard API"}


@app.get("/test", tags=["health"])
async def test_db(repos: Repositories = Depends(get_repositories)):
    return {"ok": True, "backend": repos.store.kind, "profiles": len(repos.profiles.get_all())}


# -------- Auth ---------

@app.post("/api/auth/register", tags=["auth"])
async def register(payload: RegisterRequest, repos: Repositories = Depends(get_repositories)):
    if repos.users.get_by_username(payload.username):
        raise HTTPException(status_code=409, detail="Username already taken")
    now = utc_now_iso()
    profile = repos.profiles.create({
        "id": generate_id("profile"),
        "name": payload.name or payload.username,
        "votes": 0,
        "rank": "bronze",
        "createdAt": now,
        "updatedAt": now,
    })
    user = repos.users.create({
        "id": generate_id("user"),
        "username": payload.username,
        "passwordHash": hash_password(payload.password),
        "profileId": profile["id"],
        "createdAt": now,
    })
    logger.info(f"Registered user {user['id']}")
    return {"user": public_user(user), "profile": profile}


@app.post("/api/auth/login", tags=["auth"])
async def login(payload: LoginRequest, repos: Repositories = Depends(get_repositories)):
    user = repos.users.get_by_username(payload.username)
    if not user or not verify_password(payload.password, user.get("passwordHash", "")):
        raise HTTPException(status_code=401, detail="Invalid username or password")
    return {"user": public_user(user)}


# -------- Profiles ---------

@app.get("/api/profiles", tags=["profiles"])
async def list_profiles(repos: Repositories = Depends(get_repositories)) -> List[Dict[str, Any]]:
    return repos.profiles.get_all()


@app.post("/api/profiles", tags=["profiles"])
async def create_profile(payload: ProfileCreate, repos: Repositories = Depends(get_repositories)):
    now = utc_now_iso()
    data = payload.model_dump(exclude_none=True)
    data.update({"id": generate_id("profile"), "votes": 0, "rank": "bronze", "createdAt": now, "updatedAt": now})
    return repos.profiles.create(data)


@app.get("/api/profiles/{profile_id}", tags=["profiles"])
async def get_profile(profile_id: str, repos: Repositories = Depends(get_repositories)):
    profile = repos.profiles.get_by_id(profile_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


@app.patch("/api/profiles/{profile_id}", tags=["profiles"])
async def update_profile(profile_id: str, payload: ProfileUpdate, repos: Repositories = Depends(get_repositories)):
    # votes and rank are only changed through voting
    profile = repos.profiles.update(profile_id, payload.model_dump(exclude_unset=True))
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


@app.delete("/api/profiles/{profile_id}", tags=["profiles"])
async def delete_profile(profile_id: str, repos: Repositories = Depends(get_repositories)):
    if not repos.profiles.delete(profile_id):
        raise HTTPException(status_code=404, detail="Profile not found")
    return {"deleted": True}


@app.get("/api/leaderboard", tags=["profiles"])
async def leaderboard(limit: int = 10, repos: Repositories = Depends(get_repositories)):
    return repos.profiles.get_top(limit)


# -------- Posts ---------

@app.get("/api/posts", tags=["posts"])
async def list_posts(repos: Repositories = Depends(get_repositories)):
    return repos.posts.get_all()


@app.post("/api/posts", tags=["posts"])
async def create_post(payload: PostCreate, repos: Repositories = Depends(get_repositories)):
    data = payload.model_dump(exclude_none=True)
    data.update({"id": generate_id("post"), "likes": 0, "createdAt": utc_now_iso()})
    return repos.posts.create(data)


@app.patch("/api/posts/{post_id}", tags=["posts"])
async def update_post(post_id: str, payload: PostUpdate, repos: Repositories = Depends(get_repositories)):
    post = repos.posts.update(post_id, payload.model_dump(exclude_unset=True))
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")
    return post


@app.delete("/api/posts/{post_id}", tags=["posts"])
async def delete_post(post_id: str, repos: Repositories = Depends(get_repositories)):
    if not repos.posts.delete(post_id):
        raise HTTPException(status_code=404, detail="Post not found")
    return {"deleted": True}


@app.post("/api/posts/{post_id}/like", tags=["posts"])
async def like_post(post_id: str, repos: Repositories = Depends(get_repositories)):
    post = repos.posts.like(post_id)
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")
    return post


# -------- Chat ---------

@app.get("/api/chat", tags=["chat"])
async def list_messages(limit: int = 100, repos: Repositories = Depends(get_repositories)):
    return repos.chat.get_messages(limit)


@app.post("/api/chat", tags=["chat"])
async def send_message(payload: ChatCreate, repos: Repositories = Depends(get_repositories)):
    message = payload.model_dump()
    message.update({"id": generate_id("msg"), "createdAt": utc_now_iso()})
    return repos.chat.add_message(message)


# -------- Votes ---------

@app.post("/api/votes", tags=["votes"])
async def cast_vote(
    payload: VoteCreate,
    repos: Repositories = Depends(get_repositories),
    settings: Settings = Depends(get_settings),
):
    try:
        profile = repos.cast_vote(payload.voterId, payload.profileId, settings.daily_vote_limit)
    except VoteRejected as e:
        status = 429 if e.reason == "daily_limit" else 409
        raise HTTPException(status_code=status, detail=str(e))
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    remaining = settings.daily_vote_limit - repos.votes.get_today_vote_count(payload.voterId)
    return {"profile": profile, "remainingVotes": max(remaining, 0)}


@app.get("/api/votes/{profile_id}", tags=["votes"])
async def profile_votes(profile_id: str, voterId: Optional[str] = None, repos: Repositories = Depends(get_repositories)):
    result = {"profileId": profile_id, "votes": repos.votes.get_votes_for_profile(profile_id)}
    if voterId:
        result["hasVotedToday"] = repos.votes.has_voted_today(voterId, profile_id)
    return result


# -------- Uploads ---------

@app.post("/api/upload", tags=["uploads"])
async def upload(file: UploadFile = File(...), blobs: BlobStore = Depends(get_blob_store)):
    data = await file.read()
    try:
        validate_image(file.content_type, len(data))
    except UploadRejected as e:
        raise HTTPException(status_code=400, detail=str(e))
    try:
        url = blobs.put(file.filename or "upload", data, file.content_type)
    except Exception as e:
        logger.exception(f"Upload error: {e}")
        raise HTTPException(status_code=500, detail="Upload failed")
    return {"url": url, "message": "Upload successful"}


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8000)
