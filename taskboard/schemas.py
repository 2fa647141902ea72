from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field


# --- Accounts ---

class UserCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(min_length=8)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: int


class ProfileRead(BaseModel):
    id: int
    name: str
    email: str
    profilePic: Optional[str] = None
    points: int
    completed: int
    pending: int


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=100)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(default=None, min_length=8)


class AvatarOut(BaseModel):
    message: str
    pic: str


# --- Tasks ---
# Required fields are checked by taskboard.tasks so that a missing title or
# deadline comes back as a 400 with a readable message.

class TaskCreate(BaseModel):
    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    deadline: Optional[str] = None
    priority: Optional[str] = None


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    deadline: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[str] = None


class TaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    title: str
    description: str
    deadline: str
    priority: str
    status: str


class TaskCreated(BaseModel):
    message: str = "Task added successfully"
    taskId: int


class TaskUpdated(BaseModel):
    message: str
    matched: bool
    completed: bool


class TaskDeleted(BaseModel):
    message: str = "Task deleted successfully"
    deleted: bool


# --- Friends & leaderboard ---

class FriendRequestIn(BaseModel):
    toEmail: Optional[str] = Field(default=None, validation_alias=AliasChoices("toEmail", "friendEmail"))


class FriendAcceptIn(BaseModel):
    requesterId: Optional[int] = Field(default=None, validation_alias=AliasChoices("requesterId", "userId"))


class FriendRead(BaseModel):
    id: int
    name: str
    email: str
    profilePic: Optional[str] = None


class LeaderboardRow(BaseModel):
    name: str
    email: str
    completed: int
    incomplete: int


class Message(BaseModel):
    message: str
