from contextlib import asynccontextmanager
from typing import List, Optional
import logging

from fastapi import (
    Depends, FastAPI, File, HTTPException, Query, Request,
    UploadFile, WebSocket, WebSocketDisconnect, status,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordRequestForm
from fastapi.staticfiles import StaticFiles
from sqlalchemy.engine import Engine
from sqlmodel import Session

from taskboard import __version__, friends, leaderboard, tasks, users
from taskboard.auth import get_current_user, issue_token_for, user_id_from_token
from taskboard.config import UPLOAD_DIR
from taskboard.database import build_engine, create_db_and_tables, get_session
from taskboard.errors import TaskboardError, ValidationError
from taskboard.logging_setup import setup_logging
from taskboard.models import User
from taskboard.notifications import SUBSCRIBED, NotificationHub, make_event
from taskboard.reminders import ReminderJobs, SmtpMailer, build_scheduler
from taskboard.schemas import (
    AvatarOut, FriendAcceptIn, FriendRead, FriendRequestIn, LeaderboardRow, Message,
    ProfileRead, ProfileUpdate, TaskCreate, TaskCreated, TaskDeleted, TaskRead,
    TaskUpdate, TaskUpdated, Token, UserCreate,
)

logger = logging.getLogger(__name__)


def get_notifications(request: Request) -> NotificationHub:
    return request.app.state.notifications


def _friend_read(user: User) -> FriendRead:
    return FriendRead(id=user.id, name=user.name, email=user.email, profilePic=user.avatar)


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db_and_tables(app.state.engine)
    scheduler = None
    if app.state.mailer is not None:
        scheduler = build_scheduler(ReminderJobs(app.state.engine, app.state.mailer.send))
        scheduler.start()
    yield
    if scheduler is not None:
        scheduler.shutdown(wait=False)


def create_app(engine: Optional[Engine] = None, mailer: Optional[SmtpMailer] = None, upload_dir: str = UPLOAD_DIR) -> FastAPI:
    """
    Creates and configures the FastAPI application.
    """
    app = FastAPI(
        title="Taskboard",
        description="Tasks with deadlines, friends and a completion leaderboard.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.engine = engine if engine is not None else build_engine()
    app.state.mailer = mailer if mailer is not None else SmtpMailer.from_config()
    app.state.notifications = NotificationHub()
    app.state.upload_dir = upload_dir

    # --- Middleware Configuration ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.mount("/uploads", StaticFiles(directory=upload_dir, check_dir=False), name="uploads")

    @app.exception_handler(TaskboardError)
    async def taskboard_error_handler(request: Request, exc: TaskboardError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    # --- API Endpoints ---
    @app.get("/")
    def read_root():
        return {"message": "Welcome to Taskboard!"}

    # --- Accounts ---
    @app.post("/signup", response_model=Token, status_code=status.HTTP_201_CREATED)
    def signup(user_in: UserCreate, db: Session = Depends(get_session)):
        user = users.register_user(db, user_in.name, user_in.email, user_in.password)
        return Token(access_token=issue_token_for(user), user_id=user.id)

    @app.post("/login", response_model=Token)
    def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_session)):
        user = users.authenticate(db, form_data.username, form_data.password)
        if user is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Incorrect username or password",
                headers={"WWW-Authenticate": "Bearer"},
            )
        return Token(access_token=issue_token_for(user), user_id=user.id)

    @app.get("/profile", response_model=ProfileRead)
    def read_profile(current_user: User = Depends(get_current_user), db: Session = Depends(get_session)):
        return users.get_profile(db, current_user.id)

    @app.put("/profile", response_model=Message)
    def edit_profile(profile: ProfileUpdate, current_user: User = Depends(get_current_user), db: Session = Depends(get_session)):
        changed = users.update_profile(db, current_user.id, profile.name, profile.email, profile.password)
        return Message(message="Profile updated successfully" if changed else "Nothing to update")

    @app.post("/profile/upload", response_model=AvatarOut)
    def upload_avatar(
        profilePic: UploadFile = File(...),
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_session),
    ):
        path = users.set_avatar(
            db, current_user.id, profilePic.filename or "upload", profilePic.file.read(), app.state.upload_dir
        )
        return AvatarOut(message="Profile picture uploaded successfully", pic=path)

    # --- Tasks ---
    @app.get("/tasks", response_model=List[TaskRead])
    def list_tasks(current_user: User = Depends(get_current_user), db: Session = Depends(get_session)):
        return tasks.list_tasks(db, current_user.id)

    @app.post("/tasks", response_model=TaskCreated, status_code=status.HTTP_201_CREATED)
    def create_task(task_in: TaskCreate, current_user: User = Depends(get_current_user), db: Session = Depends(get_session)):
        task_id = tasks.create_task(
            db, current_user.id, task_in.title, task_in.deadline, task_in.description, task_in.priority
        )
        return TaskCreated(taskId=task_id)

    @app.get("/tasks/search", response_model=List[TaskRead])
    def search_tasks(q: str = "", current_user: User = Depends(get_current_user), db: Session = Depends(get_session)):
        return tasks.search_tasks(db, current_user.id, q)

    @app.get("/tasks/filter", response_model=List[TaskRead])
    def filter_tasks(
        status_filter: Optional[str] = Query(default=None, alias="status"),
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_session),
    ):
        return tasks.filter_tasks(db, current_user.id, status_filter)

    @app.get("/tasks/{task_id}", response_model=TaskRead)
    def get_task(task_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_session)):
        return tasks.get_task(db, current_user.id, task_id)

    @app.put("/tasks/{task_id}", response_model=TaskUpdated)
    def update_task(
        task_id: int,
        task_update: TaskUpdate,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_session),
        hub: NotificationHub = Depends(get_notifications),
    ):
        result = tasks.update_task(
            db, current_user.id, task_id, task_update.model_dump(exclude_unset=True), notifier=hub
        )
        return TaskUpdated(message=result.message, matched=result.matched, completed=result.completed)

    @app.delete("/tasks/{task_id}", response_model=TaskDeleted)
    def delete_task(task_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_session)):
        return TaskDeleted(deleted=tasks.delete_task(db, current_user.id, task_id))

    # --- Friends ---
    @app.post("/friends/request", response_model=Message)
    def send_friend_request(body: FriendRequestIn, current_user: User = Depends(get_current_user), db: Session = Depends(get_session)):
        friends.send_request(db, current_user.id, body.toEmail)
        return Message(message="Friend request sent")

    @app.post("/friends/accept", response_model=Message)
    def accept_friend_request(body: FriendAcceptIn, current_user: User = Depends(get_current_user), db: Session = Depends(get_session)):
        if body.requesterId is None:
            raise ValidationError("requesterId required")
        friends.accept_request(db, current_user.id, body.requesterId)
        return Message(message="Friend request accepted")

    @app.get("/friends", response_model=List[FriendRead])
    def list_friends(current_user: User = Depends(get_current_user), db: Session = Depends(get_session)):
        return [_friend_read(user) for user in friends.list_friends(db, current_user.id)]

    @app.get("/friends/requests", response_model=List[FriendRead])
    def list_friend_requests(current_user: User = Depends(get_current_user), db: Session = Depends(get_session)):
        return [_friend_read(user) for user in friends.list_incoming_requests(db, current_user.id)]

    # --- Leaderboard ---
    @app.get("/leaderboard", response_model=List[LeaderboardRow])
    def read_leaderboard(scope: str = "global", current_user: User = Depends(get_current_user), db: Session = Depends(get_session)):
        return [entry.to_dict() for entry in leaderboard.rank(db, scope, current_user.id)]

    # --- Live notifications ---
    @app.websocket("/ws")
    async def notifications_socket(websocket: WebSocket, token: str = Query(default="")):
        try:
            user_id = user_id_from_token(token)
        except HTTPException:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        hub: NotificationHub = websocket.app.state.notifications
        await websocket.accept()
        hub.subscribe(user_id, websocket)
        logger.info("User %s connected for notifications", user_id)
        try:
            await websocket.send_json(make_event(SUBSCRIBED, userId=user_id))
            while True:
                # Clients do not send anything meaningful; this just waits for the close
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            hub.unsubscribe(user_id, websocket)

    return app


# Create the FastAPI app instance
setup_logging()
app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
