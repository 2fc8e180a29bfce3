from notesync.utils.jwt_auth import create_access_token, decode_token


def test_register_login_token_returned(client):
    r = client.post("/auth/register", json={"user_id": "userA", "password": "StrongPassw0rd!"})
    assert r.status_code == 201
    assert r.json() == {"user_id": "userA"}

    r = client.post("/auth/login", json={"user_id": "userA", "password": "StrongPassw0rd!"})
    assert r.status_code == 200
    data = r.json()
    assert data["token_type"] == "bearer"
    assert data["expires_in"] == 15 * 60
    assert decode_token(data["access_token"])["sub"] == "userA"


def test_token_from_login_opens_note_routes(client):
    client.post("/auth/register", json={"user_id": "userA", "password": "StrongPassw0rd!"})
    token = client.post("/auth/login", json={"user_id": "userA", "password": "StrongPassw0rd!"}).json()["access_token"]

    r = client.get("/notes", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200


def test_register_twice_conflicts(client):
    client.post("/auth/register", json={"user_id": "userA", "password": "StrongPassw0rd!"})
    r = client.post("/auth/register", json={"user_id": "userA", "password": "OtherPassw0rd!"})
    assert r.status_code == 409


def test_register_rejects_path_like_user_id(client):
    r = client.post("/auth/register", json={"user_id": "../etc", "password": "StrongPassw0rd!"})
    assert r.status_code == 422


def test_login_wrong_password(client):
    client.post("/auth/register", json={"user_id": "userA", "password": "StrongPassw0rd!"})
    r = client.post("/auth/login", json={"user_id": "userA", "password": "wrongwrongwrong"})
    assert r.status_code == 401


def test_login_unknown_user(client):
    r = client.post("/auth/login", json={"user_id": "ghost", "password": "wrongwrongwrong"})
    assert r.status_code == 401


def test_expired_token_is_rejected(client):
    token = create_access_token("userA", expires_minutes=-1)
    r = client.get("/notes", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401


def test_protected_requires_token(client):
    r = client.get("/notes")
    assert r.status_code == 401
