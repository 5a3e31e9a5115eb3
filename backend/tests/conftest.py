import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from receipt_splitter.database import Base, get_db
from receipt_splitter.main import app

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def auth_headers(client):
    client.post("/api/auth/register", json={
        "email": "test@example.com", "password": "testpass123", "name": "Test User"
    })
    res = client.post("/api/auth/login", json={
        "email": "test@example.com", "password": "testpass123"
    })
    token = res.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def second_user(client):
    res = client.post("/api/auth/register", json={
        "email": "user2@example.com", "password": "testpass123", "name": "User Two"
    })
    return res.json()["user"]


@pytest.fixture
def second_headers(client, second_user):
    res = client.post("/api/auth/login", json={
        "email": "user2@example.com", "password": "testpass123"
    })
    return {"Authorization": f"Bearer {res.json()['access_token']}"}


@pytest.fixture
def group(client, auth_headers):
    """Creator (the payer) plus two placeholder friends, Alice and Bob."""
    res = client.post("/api/groups", json={
        "name": "Dinner Club", "member_names": ["Alice", "Bob"]
    }, headers=auth_headers)
    return res.json()


@pytest.fixture
def member_ids(group):
    you, alice, bob = (m["id"] for m in group["members"])
    return {"you": you, "alice": alice, "bob": bob}


@pytest.fixture
def db_session():
    """Direct session for planting rows the API would refuse."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
