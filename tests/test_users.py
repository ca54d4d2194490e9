import pytest

from auth import role_for_email, hash_password, verify_password
from database import User


@pytest.mark.parametrize(
    "email, role",
    [
        ("admin@pennywise.io", "ADMIN"),
        ("Site.ADMIN@example.com", "ADMIN"),
        ("jane@example.com", "USER"),
    ],
)
def test_role_for_email(email, role):
    assert role_for_email(email) == role


def test_password_is_hashed():
    hashed = hash_password("hunter2")
    assert hashed != "hunter2"
    assert verify_password("hunter2", hashed)
    assert not verify_password("hunter3", hashed)


def test_signup_returns_profile(client):
    response = client.post(
        "/api/users/signup",
        json={"name": "Jane", "email": "jane@example.com", "password": "pw"},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["email"] == "jane@example.com"
    assert body["name"] == "Jane"
    assert body["role"] == "USER"
    assert isinstance(body["id"], str)


def test_signup_rejects_blank_fields(client):
    response = client.post(
        "/api/users/signup", json={"name": "  ", "email": "a@b.c", "password": "pw"}
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Name is required"}

    response = client.post("/api/users/signup", json={"name": "A", "email": "a@b.c"})
    assert response.status_code == 400
    assert response.json() == {"error": "Password is required"}


def test_signup_rejects_duplicate_email(client, make_user):
    make_user("jane@example.com")
    response = client.post(
        "/api/users/signup",
        json={"name": "Other", "email": "jane@example.com", "password": "pw"},
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Email already exists"}


def test_login(client, make_user):
    make_user("jane@example.com", password="pw")

    response = client.post(
        "/api/users/login", json={"email": "jane@example.com", "password": "pw"}
    )
    assert response.status_code == 200
    body = response.json()
    assert body["email"] == "jane@example.com"
    assert body["role"] == "USER"
    assert body["token_type"] == "bearer"
    assert body["access_token"]


@pytest.mark.parametrize(
    "email, password",
    [("jane@example.com", "wrong"), ("nobody@example.com", "pw")],
)
def test_login_failures_are_indistinguishable(client, make_user, email, password):
    make_user("jane@example.com", password="pw")
    response = client.post("/api/users/login", json={"email": email, "password": password})
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid credentials"}


def test_get_user_details(client, make_user):
    make_user("jane@example.com")
    response = client.get("/api/users/jane@example.com")
    assert response.status_code == 200
    assert response.json()["role"] == "USER"

    missing = client.get("/api/users/nobody@example.com")
    assert missing.status_code == 404
    assert missing.json() == {"error": "User not found"}


def test_admin_endpoints_require_token(client):
    response = client.get("/api/users/admin/users")
    assert response.status_code == 401

    response = client.get(
        "/api/users/admin/stats", headers={"Authorization": "Bearer garbage"}
    )
    assert response.status_code == 401


def test_admin_endpoints_reject_regular_users(client, make_user):
    make_user("jane@example.com", password="pw")
    token = client.post(
        "/api/users/login", json={"email": "jane@example.com", "password": "pw"}
    ).json()["access_token"]

    response = client.get(
        "/api/users/admin/users", headers={"Authorization": f"Bearer {token}"}
    )
    assert response.status_code == 403
    assert response.json() == {"error": "Unauthorized: Admin access required"}


def test_admin_users_and_stats(client, make_user, admin_headers):
    make_user("jane@example.com")
    make_user("idle@example.com")
    client.post(
        "/api/expenses",
        json={"username": "jane@example.com", "description": "Lunch", "amount": 12.5},
    )
    client.post(
        "/api/incomes",
        json={"email": "jane@example.com", "amount": 1000, "type": "SALARY"},
    )

    users = client.get("/api/users/admin/users", headers=admin_headers).json()
    by_email = {u["email"]: u for u in users}
    assert by_email["jane@example.com"]["expenseCount"] == 1
    assert by_email["jane@example.com"]["incomeCount"] == 1
    assert by_email["idle@example.com"]["expenseCount"] == 0

    stats = client.get("/api/users/admin/stats", headers=admin_headers).json()
    assert stats == {
        "totalUsers": 3,
        "totalExpenses": 1,
        "totalIncomes": 1,
        "activeUsers": 1,
    }


def test_admin_delete_user_cascades(client, make_user, admin_headers):
    user = make_user("jane@example.com")
    for amount in (1, 2, 3):
        client.post(
            "/api/expenses",
            json={"username": "jane@example.com", "description": "x", "amount": amount},
        )
    client.post(
        "/api/incomes", json={"email": "jane@example.com", "amount": 10, "type": "GIFT"}
    )
    client.post(
        "/api/budgets",
        json={
            "username": "jane@example.com",
            "category": "food",
            "month": "2024-05",
            "amount": 100,
        },
    )

    response = client.delete(
        f"/api/users/admin/delete/{user['id']}", headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json() == {"message": "User deleted successfully"}

    response = client.get("/api/expenses", params={"username": "jane@example.com"})
    assert response.status_code == 400
    assert response.json() == {"error": "User not found"}

    stats = client.get("/api/users/admin/stats", headers=admin_headers).json()
    assert stats["totalExpenses"] == 0
    assert stats["totalIncomes"] == 0


def test_admin_delete_missing_user(client, admin_headers):
    response = client.delete("/api/users/admin/delete/999", headers=admin_headers)
    assert response.status_code == 404


def test_signup_conflict_at_commit_is_a_client_error(client, db_session):
    # the existence check only looks at email, so a username clash
    # reaches the unique constraint on commit
    db_session.add(
        User(username="jane@example.com", email="other@example.com", password_hash="x")
    )
    db_session.commit()

    response = client.post(
        "/api/users/signup",
        json={"name": "Jane", "email": "jane@example.com", "password": "pw"},
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Email already exists"}
