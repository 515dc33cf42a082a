def test_defaults_created_on_first_read(client):
    resp = client.get("/api/blog-settings")
    assert resp.status_code == 200
    data = resp.json()["settings"]
    assert data["blog_title"] == "My Blog"
    assert data["blog_description"] == "Welcome to my blog"


def test_admin_updates_settings(client, login):
    admin_id, admin = login("admin")
    resp = client.put("/api/blog-settings", json={"blog_title": "  Dev Notes  ", "blog_description": "Bits"}, headers=admin)
    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Blog settings updated successfully"
    assert body["settings"]["blog_title"] == "Dev Notes"
    assert body["settings"]["updated_by"] == admin_id

    assert client.get("/api/blog-settings").json()["settings"]["blog_title"] == "Dev Notes"


def test_non_admin_cannot_update(client, login):
    _, editor = login("editor")
    resp = client.put("/api/blog-settings", json={"blog_title": "Mine"}, headers=editor)
    assert resp.status_code == 403


def test_title_is_validated(client, login):
    _, admin = login("admin")
    assert client.put("/api/blog-settings", json={"blog_title": "   "}, headers=admin).status_code == 400
    assert client.put("/api/blog-settings", json={"blog_title": "x" * 201}, headers=admin).status_code == 400


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "OK"
