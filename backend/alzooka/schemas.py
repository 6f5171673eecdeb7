from datetime import datetime
from typing import List, Optional, Literal
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from .moderation import Likelihood
from .relationships import RelationshipAction, RelationshipState


TargetType = Literal["post", "comment"]


class UserCreate(BaseModel):
    email: EmailStr
    username: str = Field(min_length=3, max_length=30, pattern=r"^[A-Za-z0-9_]+$")
    password: str
    display_name: Optional[str] = None

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if len(v) < 8:
            raise ValueError("Password must be at least 8 characters")
        if not any(ch.isalpha() for ch in v) or not any(ch.isdigit() for ch in v):
            raise ValueError("Password must include letters and numbers")
        return v


class UserRegister(UserCreate):
    confirm_password: str

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, v: str, info):
        password = info.data.get("password") if hasattr(info, "data") else None
        if password and v != password:
            raise ValueError("Passwords do not match")
        return v


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserResponse(BaseModel):
    id: int
    email: EmailStr
    username: str
    display_name: Optional[str] = None
    trivia_rating: int

    model_config = ConfigDict(from_attributes=True)


class UserSummary(BaseModel):
    id: int
    username: str
    display_name: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class Token(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str
    user_id: int
    username: str


class TokenData(BaseModel):
    email: Optional[str] = None
    user_id: Optional[int] = None


class RefreshRequest(BaseModel):
    refresh_token: str


class RelationshipResponse(BaseModel):
    user_id: int
    state: RelationshipState
    actions: List[RelationshipAction]


class RelationshipActionResponse(BaseModel):
    user_id: int
    action: RelationshipAction
    state: RelationshipState
    applied: bool


class FriendListResponse(BaseModel):
    items: List[UserSummary]


class PostCreate(BaseModel):
    content: str = Field(min_length=1, max_length=5000)
    image_url: Optional[str] = None

    @field_validator("content")
    @classmethod
    def strip_content(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Post content cannot be empty")
        return v


class PostResponse(BaseModel):
    id: int
    user_id: int
    content: str
    image_url: Optional[str] = None
    created_at: Optional[datetime] = None
    vote_total: int = 0

    model_config = ConfigDict(from_attributes=True)


class CommentCreate(BaseModel):
    content: str = Field(min_length=1, max_length=2000)
    parent_comment_id: Optional[int] = None


class CommentResponse(BaseModel):
    id: int
    post_id: int
    user_id: int
    parent_comment_id: Optional[int] = None
    content: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class VoteCreate(BaseModel):
    target_type: TargetType
    target_id: int
    value: Literal[-1, 1]


class VoteResponse(BaseModel):
    target_type: TargetType
    target_id: int
    total: int
    vote: Optional[int] = None


class NotificationResponse(BaseModel):
    id: int
    type: str
    title: str
    content: Optional[str] = None
    link: Optional[str] = None
    related_user_id: Optional[int] = None
    related_post_id: Optional[int] = None
    related_comment_id: Optional[int] = None
    is_read: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class NotificationListResponse(BaseModel):
    items: List[NotificationResponse]
    unread_count: int


class ModerationRequest(BaseModel):
    imageUrl: Optional[str] = None
    imageBase64: Optional[str] = None


class ModerationResponse(BaseModel):
    safe: bool
    blocked: bool
    categories: dict[str, Likelihood]
    blockReason: Optional[str] = None
    error: Optional[str] = None
    message: str = ""


class TriviaMatchCreate(BaseModel):
    opponent_id: int
    won: bool


class TriviaMatchResponse(BaseModel):
    player_rating: int
    opponent_rating: int
    player_change: int
    opponent_change: int
    description: str
