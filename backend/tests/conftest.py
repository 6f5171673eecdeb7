import os

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("VISION_API_KEY", "test-vision-key")

from alzooka import models
from alzooka import api as api_module
from alzooka.api import app
from alzooka.database import Base, engine, get_db, SessionLocal


@pytest.fixture(scope="session", autouse=True)
def _ensure_schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session():
    db = SessionLocal()
    try:
        for table in reversed(Base.metadata.sorted_tables):
            db.execute(table.delete())
        db.commit()
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(db_session):
    def _override_get_db():
        yield db_session

    api_module._RATE_LIMIT_STORE.clear()
    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def helpers(client, db_session):
    def register(username: str, password: str = "password123") -> dict:
        resp = client.post(
            "/register",
            json={
                "email": f"{username}@test.ro",
                "username": username,
                "password": password,
                "confirm_password": password,
            },
        )
        assert resp.status_code == 200, resp.text
        data = resp.json()
        return {
            "id": data["user_id"],
            "token": data["access_token"],
            "headers": auth_header(data["access_token"]),
        }

    def login(email: str, password: str) -> str:
        resp = client.post("/login", json={"email": email, "password": password})
        assert resp.status_code == 200
        return resp.json()["access_token"]

    def auth_header(token: str) -> dict:
        return {"Authorization": f"Bearer {token}"}

    def create_post(user: dict, content: str = "Hello Alzooka") -> int:
        resp = client.post("/api/posts", json={"content": content}, headers=user["headers"])
        assert resp.status_code == 201, resp.text
        return resp.json()["id"]

    def notifications_for(user_id: int) -> list[models.Notification]:
        db_session.expire_all()
        return (
            db_session.query(models.Notification)
            .filter(models.Notification.user_id == user_id)
            .order_by(models.Notification.id.asc())
            .all()
        )

    return {
        "client": client,
        "db": db_session,
        "register": register,
        "login": login,
        "auth_header": auth_header,
        "create_post": create_post,
        "notifications_for": notifications_for,
    }
