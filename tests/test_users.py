from conftest import create_user, get_auth_header


def test_profile_read_and_update(client, login):
    _, headers = login("reader")
    resp = client.get("/api/users/profile", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["user"]["username"] == "reader_user"

    resp = client.put(
        "/api/users/profile",
        json={
            "first_name": "Rita",
            "last_name": "Reader",
            "bio": "Likes books",
            "website": "https://rita.example.com",
            "social_links": {"twitter": "@rita"},
        },
        headers=headers,
    )
    assert resp.status_code == 200
    user = resp.json()["user"]
    assert user["first_name"] == "Rita"
    assert user["website"] == "https://rita.example.com"
    assert user["social_links"] == {"twitter": "@rita"}


def test_profile_rejects_non_http_urls(client, login):
    _, headers = login("reader")
    resp = client.put(
        "/api/users/profile",
        json={"first_name": "Rita", "last_name": "", "website": "ftp://nope"},
        headers=headers,
    )
    assert resp.status_code == 400


def test_change_password(client, login):
    _, headers = login("reader")
    resp = client.post(
        "/api/users/change-password",
        json={"current_password": "wrong", "new_password": "newpass123"},
        headers=headers,
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["message"] == "Current password is incorrect"

    resp = client.post(
        "/api/users/change-password",
        json={"current_password": "password123", "new_password": "newpass123"},
        headers=headers,
    )
    assert resp.status_code == 200
    get_auth_header(client, "reader_user@example.com", password="newpass123")


def test_admin_lists_and_filters_users(client, login):
    _, admin = login("admin")
    create_user(role="author", username="writer")
    _, reader = login("reader")

    assert client.get("/api/users", headers=reader).status_code == 403
    resp = client.get("/api/users", params={"role": "author"}, headers=admin)
    assert resp.status_code == 200
    assert [u["username"] for u in resp.json()["users"]] == ["writer"]


def test_editor_cannot_grant_admin(client, login):
    _, editor = login("editor")
    user_id = create_user(username="promote_me")
    resp = client.put(
        f"/api/users/{user_id}",
        json={"first_name": "P", "last_name": "M", "role": "admin", "is_active": True},
        headers=editor,
    )
    assert resp.status_code == 403

    resp = client.put(
        f"/api/users/{user_id}",
        json={"first_name": "P", "last_name": "M", "role": "author", "is_active": True},
        headers=editor,
    )
    assert resp.status_code == 200
    assert resp.json()["user"]["role"] == "author"


def test_deactivated_user_token_stops_working(client, login):
    _, admin = login("admin")
    user_id = create_user(username="soon_gone")
    headers = get_auth_header(client, "soon_gone@example.com")

    client.put(
        f"/api/users/{user_id}",
        json={"first_name": "S", "last_name": "G", "role": "reader", "is_active": False},
        headers=admin,
    )
    resp = client.get("/api/users/profile", headers=headers)
    assert resp.status_code == 401
    assert resp.json()["error"]["message"] == "User account is inactive"


def test_admin_cannot_delete_self(client, login):
    admin_id, admin = login("admin")
    resp = client.delete(f"/api/users/{admin_id}", headers=admin)
    assert resp.status_code == 400
    assert resp.json()["error"]["message"] == "Cannot delete your own account"

    victim = create_user(username="victim")
    assert client.delete(f"/api/users/{victim}", headers=admin).status_code == 200
    assert client.get(f"/api/users/{victim}", headers=admin).status_code == 404


def test_deleting_author_drops_their_cached_posts(client, login, fake_redis):
    _, admin = login("admin")
    author_id = create_user(role="author", username="leaving")
    author = get_auth_header(client, "leaving@example.com")
    resp = client.post("/api/posts", json={"title": "Farewell", "content": "bye", "status": "published"}, headers=author)
    post_id = resp.json()["post"]["id"]

    # warm both caches
    assert client.get(f"/api/posts/{post_id}").status_code == 200
    assert [p["id"] for p in client.get("/api/posts").json()["posts"]] == [post_id]

    assert client.delete(f"/api/users/{author_id}", headers=admin).status_code == 200
    assert fake_redis.get(f"post_cache_{post_id}") is None
    assert client.get(f"/api/posts/{post_id}").status_code == 404
    assert client.get("/api/posts/farewell").status_code == 404
    assert client.get("/api/posts").json()["posts"] == []
