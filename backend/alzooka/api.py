from contextlib import asynccontextmanager
import time
import logging
from pathlib import Path

from fastapi import Depends, FastAPI, HTTPException, status, Request, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import func, or_, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import auth, elo, milestones, models, moderation, notifications, relationships, schemas
from .config import settings
from .database import engine, get_db
from .logging_utils import configure_logging, RequestIdMiddleware, log_event, log_warning
from .vision_client import VisionClient, get_vision_client

configure_logging()


def _run_migrations():
    """Run Alembic migrations to latest head. Controlled via settings.auto_run_migrations."""
    try:
        from alembic import command
        from alembic.config import Config
        base_dir = Path(__file__).resolve().parent.parent
        alembic_ini = base_dir / 'alembic.ini'
        if not alembic_ini.exists():
            logging.warning('alembic.ini not found; skipping migrations')
            return
        cfg = Config(str(alembic_ini))
        cfg.set_main_option('script_location', str(base_dir / 'alembic'))
        command.upgrade(cfg, 'head')
        logging.info('Migrations applied to head')
    except Exception:
        logging.exception('Failed to run migrations on startup')


def _check_configuration():
    if not settings.database_url:
        raise RuntimeError('DATABASE_URL is required')
    if not settings.secret_key:
        raise RuntimeError('SECRET_KEY is required')
    if not settings.vision_api_key:
        logging.warning('VISION_API_KEY missing; every image upload will be blocked')


@asynccontextmanager
async def lifespan(_app: FastAPI):
    _check_configuration()
    if getattr(settings, "auto_run_migrations", False):
        _run_migrations()
    elif settings.auto_create_tables:
        models.Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(title="Alzooka API", version="1.0.0", lifespan=lifespan)

app.add_middleware(RequestIdMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins or [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    code = f"http_{exc.status_code}"
    message = exc.detail if isinstance(exc.detail, str) else "Error"
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"code": code, "message": message}, "detail": message},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logging.exception("Unhandled error", extra={"path": request.url.path})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": {"code": "internal_error", "message": "An unexpected error occurred."}},
    )


_RATE_LIMIT_STORE: dict[str, list[float]] = {}


def _evict_stale_rate_limits(action: str, now: float, window_seconds: int) -> None:
    # Entries are appended in order, so the last one is the newest.
    prefix = f"{action}:"
    stale = [
        key
        for key, entries in _RATE_LIMIT_STORE.items()
        if key.startswith(prefix) and (not entries or now - entries[-1] >= window_seconds)
    ]
    for key in stale:
        del _RATE_LIMIT_STORE[key]


def _enforce_rate_limit(
    action: str,
    request: Request | None = None,
    limit: int = 20,
    window_seconds: int = 60,
    identifier: str | None = None,
) -> None:
    now = time.time()
    _evict_stale_rate_limits(action, now, window_seconds)
    identity = identifier or _client_ip(request)
    key = f"{action}:{identity}"
    entries = _RATE_LIMIT_STORE.get(key, [])
    entries = [ts for ts in entries if now - ts < window_seconds]
    if len(entries) >= limit:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests. Please try again in a moment.",
        )
    entries.append(now)
    _RATE_LIMIT_STORE[key] = entries


def _client_ip(request: Request | None) -> str:
    if request is None:
        return "unknown"
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


def _get_user_or_404(db: Session, user_id: int) -> models.User:
    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found.")
    return user


# ===================== AUTH =====================


@app.post("/register", response_model=schemas.Token)
def register(user: schemas.UserRegister, request: Request, db: Session = Depends(get_db)):
    _enforce_rate_limit("register", request=request, identifier=user.email.lower())
    if db.query(models.User).filter(models.User.email == user.email).first():
        raise HTTPException(status_code=400, detail="This email is already in use.")
    if db.query(models.User).filter(func.lower(models.User.username) == user.username.lower()).first():
        raise HTTPException(status_code=400, detail="This username is already taken.")

    new_user = models.User(
        email=user.email,
        username=user.username,
        password_hash=auth.get_password_hash(user.password),
        display_name=user.display_name,
    )
    db.add(new_user)
    db.commit()
    db.refresh(new_user)
    log_event("user_registered", user_id=new_user.id, username=new_user.username)
    return auth.issue_tokens(new_user)


@app.post("/login", response_model=schemas.Token)
def login(user_credentials: schemas.UserLogin, request: Request, db: Session = Depends(get_db)):
    _enforce_rate_limit("login", request=request, identifier=user_credentials.email.lower())
    user = db.query(models.User).filter(models.User.email == user_credentials.email).first()
    if not user or not auth.verify_password(user_credentials.password, user.password_hash):
        log_warning("login_failed", email=user_credentials.email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    log_event("login_success", user_id=user.id)
    return auth.issue_tokens(user)


@app.post("/refresh", response_model=schemas.Token)
def refresh_token(payload: schemas.RefreshRequest, db: Session = Depends(get_db)):
    try:
        decoded = auth.jwt.decode(payload.refresh_token, settings.secret_key, algorithms=[settings.algorithm])
    except auth.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Refresh token expired.")
    except auth.JWTError:
        raise HTTPException(status_code=401, detail="Invalid refresh token.")

    if decoded.get("type") != "refresh" or not decoded.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid refresh token.")

    user = db.query(models.User).filter(models.User.id == int(decoded["sub"])).first()
    if not user:
        raise HTTPException(status_code=401, detail="Invalid refresh token.")
    return auth.issue_tokens(user)


@app.get("/me", response_model=schemas.UserResponse)
def get_me(current_user: models.User = Depends(auth.get_current_user)):
    return current_user


@app.get("/")
def read_root():
    return {"message": "Hello from Alzooka API!"}


# ===================== RELATIONSHIPS =====================


def _pair_key(user_a: int, user_b: int) -> tuple[int, int]:
    return (user_a, user_b) if user_a < user_b else (user_b, user_a)


def _find_friendship(db: Session, user_a: int, user_b: int) -> models.Friendship | None:
    low, high = _pair_key(user_a, user_b)
    return (
        db.query(models.Friendship)
        .filter(models.Friendship.user_low_id == low, models.Friendship.user_high_id == high)
        .first()
    )


def _to_record(row: models.Friendship | None) -> relationships.RelationshipRecord | None:
    if row is None:
        return None
    return relationships.RelationshipRecord(
        requester_id=row.requester_id,
        addressee_id=row.addressee_id,
        status=relationships.RelationshipStatus(row.status),
    )


def _load_state(db: Session, viewer_id: int, target_id: int) -> relationships.RelationshipState:
    return relationships.compute_state(viewer_id, target_id, _to_record(_find_friendship(db, viewer_id, target_id)))


def _matching_rows(db: Session, record: relationships.RelationshipRecord):
    return db.query(models.Friendship).filter(
        models.Friendship.requester_id == record.requester_id,
        models.Friendship.addressee_id == record.addressee_id,
        models.Friendship.status == record.status.value,
    )


def _apply_transition(db: Session, transition: relationships.Transition) -> int:
    """Persist a planned transition; returns the number of rows affected."""
    record = transition.record
    if transition.effect == relationships.Effect.noop or record is None:
        return 0

    if transition.effect == relationships.Effect.insert:
        low, high = _pair_key(record.requester_id, record.addressee_id)
        db.add(
            models.Friendship(
                requester_id=record.requester_id,
                addressee_id=record.addressee_id,
                user_low_id=low,
                user_high_id=high,
                status=record.status.value,
            )
        )
        try:
            db.commit()
        except IntegrityError:
            # Another request for the same pair got there first.
            db.rollback()
            log_warning(
                "friendship_insert_conflict",
                requester_id=record.requester_id,
                addressee_id=record.addressee_id,
            )
            return 0
        return 1

    if transition.effect == relationships.Effect.update:
        pending = relationships.RelationshipRecord(
            record.requester_id, record.addressee_id, relationships.RelationshipStatus.pending
        )
        count = _matching_rows(db, pending).update(
            {"status": record.status.value}, synchronize_session=False
        )
    else:
        count = _matching_rows(db, record).delete(synchronize_session=False)
    db.commit()
    return int(count or 0)


@app.get("/api/users/{user_id}/relationship", response_model=schemas.RelationshipResponse)
def get_relationship(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    if user_id == current_user.id:
        raise HTTPException(status_code=400, detail="You cannot have a relationship with yourself.")
    _get_user_or_404(db, user_id)
    state = _load_state(db, current_user.id, user_id)
    return {"user_id": user_id, "state": state, "actions": list(relationships.available_actions(state))}


@app.post("/api/users/{user_id}/relationship/{action}", response_model=schemas.RelationshipActionResponse)
def relationship_action(
    user_id: int,
    action: relationships.RelationshipAction,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    if user_id == current_user.id:
        raise HTTPException(status_code=400, detail="You cannot have a relationship with yourself.")
    _get_user_or_404(db, user_id)

    record = _to_record(_find_friendship(db, current_user.id, user_id))
    transition = relationships.plan(action, current_user.id, user_id, record)
    affected = _apply_transition(db, transition)

    if affected:
        log_event(
            "relationship_changed",
            actor_id=current_user.id,
            target_id=user_id,
            action=action.value,
            state=transition.state.value,
        )
        event = transition.notification
        if event is not None and event.type == "friend_request":
            notifications.notify_friend_request(db, recipient_id=event.recipient_id, sender=current_user)
        elif event is not None and event.type == "friend_accepted":
            notifications.notify_friend_accepted(db, requester_id=event.recipient_id, accepter=current_user)

    return {
        "user_id": user_id,
        "action": action,
        "state": _load_state(db, current_user.id, user_id),
        "applied": bool(affected),
    }


@app.get("/api/me/friends", response_model=schemas.FriendListResponse)
def list_friends(db: Session = Depends(get_db), current_user: models.User = Depends(auth.get_current_user)):
    rows = (
        db.query(models.Friendship)
        .filter(
            models.Friendship.status == relationships.RelationshipStatus.accepted.value,
            or_(
                models.Friendship.requester_id == current_user.id,
                models.Friendship.addressee_id == current_user.id,
            ),
        )
        .all()
    )
    friend_ids = [row.addressee_id if row.requester_id == current_user.id else row.requester_id for row in rows]
    if not friend_ids:
        return {"items": []}
    friends = db.query(models.User).filter(models.User.id.in_(friend_ids)).order_by(models.User.username).all()
    return {"items": friends}


@app.get("/api/me/friend-requests", response_model=schemas.FriendListResponse)
def list_friend_requests(db: Session = Depends(get_db), current_user: models.User = Depends(auth.get_current_user)):
    requesters = (
        db.query(models.User)
        .join(models.Friendship, models.Friendship.requester_id == models.User.id)
        .filter(
            models.Friendship.addressee_id == current_user.id,
            models.Friendship.status == relationships.RelationshipStatus.pending.value,
        )
        .order_by(models.Friendship.created_at.desc())
        .all()
    )
    return {"items": requesters}


# ===================== POSTS, COMMENTS, VOTES =====================


def _vote_total(db: Session, target_type: str, target_id: int) -> int:
    total = (
        db.query(func.coalesce(func.sum(models.Vote.value), 0))
        .filter(models.Vote.target_type == target_type, models.Vote.target_id == target_id)
        .scalar()
    )
    return int(total or 0)


def _target_owner_id(db: Session, target_type: str, target_id: int) -> int:
    if target_type == "post":
        row = db.query(models.Post.user_id).filter(models.Post.id == target_id).first()
    else:
        row = db.query(models.Comment.user_id).filter(models.Comment.id == target_id).first()
    if not row:
        raise HTTPException(status_code=404, detail=f"{target_type.capitalize()} not found.")
    return int(row[0])


@app.post("/api/posts", response_model=schemas.PostResponse, status_code=status.HTTP_201_CREATED)
def create_post(
    payload: schemas.PostCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    post = models.Post(user_id=current_user.id, content=payload.content, image_url=payload.image_url)
    db.add(post)
    db.flush()
    # Authors upvote their own posts.
    db.add(models.Vote(user_id=current_user.id, target_type="post", target_id=post.id, value=1))
    db.commit()
    db.refresh(post)
    log_event("post_created", post_id=post.id, user_id=current_user.id)
    return schemas.PostResponse.model_validate(post).model_copy(update={"vote_total": _vote_total(db, "post", post.id)})


@app.get("/api/posts/{post_id}", response_model=schemas.PostResponse)
def get_post(post_id: int, db: Session = Depends(get_db)):
    post = db.query(models.Post).filter(models.Post.id == post_id).first()
    if not post:
        raise HTTPException(status_code=404, detail="Post not found.")
    return schemas.PostResponse.model_validate(post).model_copy(update={"vote_total": _vote_total(db, "post", post.id)})


@app.post(
    "/api/posts/{post_id}/comments",
    response_model=schemas.CommentResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_comment(
    post_id: int,
    payload: schemas.CommentCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    post = db.query(models.Post).filter(models.Post.id == post_id).first()
    if not post:
        raise HTTPException(status_code=404, detail="Post not found.")

    parent = None
    if payload.parent_comment_id is not None:
        parent = (
            db.query(models.Comment)
            .filter(models.Comment.id == payload.parent_comment_id, models.Comment.post_id == post_id)
            .first()
        )
        if not parent:
            raise HTTPException(status_code=404, detail="Parent comment not found.")

    content = payload.content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="Comment cannot be empty.")

    comment = models.Comment(
        post_id=post_id,
        user_id=current_user.id,
        parent_comment_id=parent.id if parent else None,
        content=content,
    )
    db.add(comment)
    db.commit()
    db.refresh(comment)
    log_event("comment_created", comment_id=comment.id, post_id=post_id, user_id=current_user.id)

    notified = {current_user.id}
    if parent is not None:
        if parent.user_id not in notified:
            notifications.notify_new_reply(
                db,
                comment_owner_id=parent.user_id,
                replier=current_user,
                post_id=post_id,
                comment_id=comment.id,
                preview=content,
            )
            notified.add(parent.user_id)
    elif post.user_id not in notified:
        notifications.notify_new_comment(
            db,
            post_owner_id=post.user_id,
            commenter=current_user,
            post_id=post_id,
            comment_id=comment.id,
            preview=content,
        )
        notified.add(post.user_id)

    usernames = notifications.parse_mentions(content)
    if usernames:
        mentioned = db.query(models.User).filter(func.lower(models.User.username).in_(usernames)).all()
        for user in mentioned:
            if user.id in notified:
                continue
            notifications.notify_mention(
                db,
                mentioned_user_id=user.id,
                mentioner=current_user,
                post_id=post_id,
                comment_id=comment.id,
                preview=content,
            )
            notified.add(user.id)
    return comment


@app.post("/api/votes", response_model=schemas.VoteResponse)
def cast_vote(
    payload: schemas.VoteCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    owner_id = _target_owner_id(db, payload.target_type, payload.target_id)
    previous_total = _vote_total(db, payload.target_type, payload.target_id)

    existing = (
        db.query(models.Vote)
        .filter(
            models.Vote.user_id == current_user.id,
            models.Vote.target_type == payload.target_type,
            models.Vote.target_id == payload.target_id,
        )
        .first()
    )
    if existing and existing.value == payload.value:
        # Same vote again removes it.
        db.delete(existing)
        current_vote = None
    elif existing:
        existing.value = payload.value
        db.add(existing)
        current_vote = payload.value
    else:
        db.add(
            models.Vote(
                user_id=current_user.id,
                target_type=payload.target_type,
                target_id=payload.target_id,
                value=payload.value,
            )
        )
        current_vote = payload.value
    db.commit()

    current_total = _vote_total(db, payload.target_type, payload.target_id)
    if current_total != previous_total and owner_id != current_user.id:
        milestone = milestones.evaluate(previous_total, current_total)
        if milestone is not None:
            log_event(
                "vote_milestone_reached",
                target_type=payload.target_type,
                target_id=payload.target_id,
                threshold=milestone.threshold,
                kind=milestone.kind.value,
            )
            notifications.notify_vote_milestone(
                db,
                owner_id=owner_id,
                target_type=payload.target_type,
                target_id=payload.target_id,
                milestone=milestone,
            )

    return {
        "target_type": payload.target_type,
        "target_id": payload.target_id,
        "total": current_total,
        "vote": current_vote,
    }


@app.get("/api/votes/{target_type}/{target_id}", response_model=schemas.VoteResponse)
def get_vote_total(
    target_type: schemas.TargetType,
    target_id: int,
    db: Session = Depends(get_db),
    current_user: models.User | None = Depends(auth.get_optional_user),
):
    _target_owner_id(db, target_type, target_id)
    vote = None
    if current_user is not None:
        row = (
            db.query(models.Vote.value)
            .filter(
                models.Vote.user_id == current_user.id,
                models.Vote.target_type == target_type,
                models.Vote.target_id == target_id,
            )
            .first()
        )
        vote = int(row[0]) if row else None
    return {
        "target_type": target_type,
        "target_id": target_id,
        "total": _vote_total(db, target_type, target_id),
        "vote": vote,
    }


# ===================== NOTIFICATIONS =====================


@app.get("/api/notifications", response_model=schemas.NotificationListResponse)
def list_notifications(
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    items = (
        db.query(models.Notification)
        .filter(models.Notification.user_id == current_user.id)
        .order_by(models.Notification.created_at.desc(), models.Notification.id.desc())
        .limit(limit)
        .all()
    )
    unread = (
        db.query(func.count(models.Notification.id))
        .filter(models.Notification.user_id == current_user.id, models.Notification.is_read.is_(False))
        .scalar()
    )
    return {"items": items, "unread_count": int(unread or 0)}


@app.post("/api/notifications/{notification_id}/read", status_code=status.HTTP_204_NO_CONTENT)
def mark_notification_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    notification = (
        db.query(models.Notification)
        .filter(models.Notification.id == notification_id, models.Notification.user_id == current_user.id)
        .first()
    )
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found.")
    notification.is_read = True
    db.add(notification)
    db.commit()
    return


@app.post("/api/notifications/read-all", status_code=status.HTTP_204_NO_CONTENT)
def mark_all_notifications_read(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    db.query(models.Notification).filter(
        and_(models.Notification.user_id == current_user.id, models.Notification.is_read.is_(False))
    ).update({"is_read": True}, synchronize_session=False)
    db.commit()
    return


# ===================== IMAGE MODERATION =====================


def _record_moderation_block(
    db: Session,
    *,
    verdict: moderation.ModerationVerdict,
    ip_address: str,
    user_id: int | None,
    image_type: str,
) -> None:
    try:
        db.add(
            models.ModerationLog(
                user_id=user_id,
                ip_address=ip_address,
                action="blocked",
                categories={name: level.value for name, level in verdict.categories.items()},
                block_reason=verdict.block_reason,
                image_type=image_type,
            )
        )
        db.commit()
    except Exception as exc:  # noqa: BLE001
        db.rollback()
        log_warning("moderation_log_failed", error=str(exc))


@app.post("/api/moderate-image", response_model=schemas.ModerationResponse)
def moderate_image(
    payload: schemas.ModerationRequest,
    request: Request,
    db: Session = Depends(get_db),
    vision: VisionClient = Depends(get_vision_client),
    current_user: models.User | None = Depends(auth.get_optional_user),
):
    _enforce_rate_limit(
        "moderate_image",
        request=request,
        limit=settings.moderation_rate_limit,
        window_seconds=settings.moderation_rate_window_seconds,
    )
    if not payload.imageUrl and not payload.imageBase64:
        raise HTTPException(status_code=400, detail="Either imageUrl or imageBase64 is required")

    try:
        verdict = vision.moderate(image_url=payload.imageUrl, image_base64=payload.imageBase64)
    except Exception as exc:  # noqa: BLE001
        log_warning("moderation_failed", error=str(exc))
        verdict = moderation.evaluate_unavailable()

    if verdict.blocked:
        ip_address = _client_ip(request)
        user_id = current_user.id if current_user else None
        _record_moderation_block(
            db,
            verdict=verdict,
            ip_address=ip_address,
            user_id=user_id,
            image_type="base64" if payload.imageBase64 else "url",
        )
        log_warning(
            "image_blocked",
            block_reason=verdict.block_reason,
            ip_address=ip_address,
            user_id=user_id,
        )

    body = verdict.to_dict()
    body["message"] = moderation.user_message(verdict)
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE if verdict.error else status.HTTP_200_OK
    return JSONResponse(status_code=status_code, content=body)


# ===================== TRIVIA =====================


@app.post("/api/trivia/matches", response_model=schemas.TriviaMatchResponse)
def record_trivia_match(
    payload: schemas.TriviaMatchCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    if payload.opponent_id == current_user.id:
        raise HTTPException(status_code=400, detail="You cannot play against yourself.")
    opponent = _get_user_or_404(db, payload.opponent_id)

    ratings = elo.calculate_match_ratings(
        current_user.trivia_rating or elo.DEFAULT_RATING,
        opponent.trivia_rating or elo.DEFAULT_RATING,
        payload.won,
    )
    current_user.trivia_rating = ratings.player1_new_rating
    opponent.trivia_rating = ratings.player2_new_rating
    db.add_all([current_user, opponent])
    db.commit()
    log_event(
        "trivia_match_recorded",
        user_id=current_user.id,
        opponent_id=opponent.id,
        won=payload.won,
        change=ratings.player1_change,
    )
    return {
        "player_rating": ratings.player1_new_rating,
        "opponent_rating": ratings.player2_new_rating,
        "player_change": ratings.player1_change,
        "opponent_change": ratings.player2_change,
        "description": elo.rating_change_description(ratings.player1_change),
    }
