def test_create_category_generates_slug(client, login):
    _, headers = login("editor")
    resp = client.post("/api/categories", json={"name": "Tech News", "description": "Gadgets"}, headers=headers)
    assert resp.status_code == 201
    category = resp.json()["category"]
    assert category["slug"] == "tech-news"
    assert category["post_count"] == 0

    resp = client.get("/api/categories/tech-news")
    assert resp.status_code == 200
    assert resp.json()["category"]["id"] == category["id"]


def test_authors_cannot_manage_categories(client, login):
    _, headers = login("author")
    resp = client.post("/api/categories", json={"name": "Mine"}, headers=headers)
    assert resp.status_code == 403


def test_duplicate_category_is_conflict(client, login):
    _, headers = login("editor")
    client.post("/api/categories", json={"name": "Travel"}, headers=headers)
    resp = client.post("/api/categories", json={"name": "Travel"}, headers=headers)
    assert resp.status_code == 409
    assert resp.json()["error"]["message"] == "Category with this name or slug already exists"


def test_category_hierarchy_rejects_cycles(client, login):
    _, headers = login("editor")
    parent = client.post("/api/categories", json={"name": "Parent"}, headers=headers).json()["category"]
    child = client.post(
        "/api/categories", json={"name": "Child", "parent_id": parent["id"]}, headers=headers
    ).json()["category"]
    assert child["parent_id"] == parent["id"]

    resp = client.put(f"/api/categories/{parent['id']}", json={"parent_id": child["id"]}, headers=headers)
    assert resp.status_code == 400
    resp = client.put(f"/api/categories/{parent['id']}", json={"parent_id": parent["id"]}, headers=headers)
    assert resp.status_code == 400

    # deleting the parent leaves the child at the top level
    assert client.delete(f"/api/categories/{parent['id']}", headers=headers).status_code == 200
    assert client.get(f"/api/categories/{child['id']}").json()["category"]["parent_id"] is None


def test_category_post_count(client, login):
    _, headers = login("editor")
    category = client.post("/api/categories", json={"name": "Counted"}, headers=headers).json()["category"]
    client.post("/api/posts", json={"title": "A", "content": "a", "categories": [category["id"]]}, headers=headers)
    client.post("/api/posts", json={"title": "B", "content": "b", "categories": [category["id"]]}, headers=headers)

    listed = client.get("/api/categories").json()
    assert listed["categories"][0]["post_count"] == 2
    assert listed["pagination"]["total"] == 1


def test_tag_crud(client, login):
    _, headers = login("editor")
    resp = client.post("/api/tags", json={"name": "Machine Learning"}, headers=headers)
    assert resp.status_code == 201
    tag = resp.json()["tag"]
    assert tag["slug"] == "machine-learning"

    resp = client.put(f"/api/tags/{tag['id']}", json={"name": "ML"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["tag"]["slug"] == "ml"

    assert client.get("/api/tags", params={"search": "ML"}).json()["tags"][0]["name"] == "ML"

    assert client.delete(f"/api/tags/{tag['id']}", headers=headers).status_code == 200
    assert client.get(f"/api/tags/{tag['id']}").status_code == 404


def test_numeric_slugs_resolve(client, login):
    _, headers = login("editor")
    category = client.post("/api/categories", json={"name": "1999"}, headers=headers).json()["category"]
    tag = client.post("/api/tags", json={"name": "42"}, headers=headers).json()["tag"]

    assert client.get("/api/categories/1999").json()["category"]["id"] == category["id"]
    assert client.get("/api/tags/42").json()["tag"]["id"] == tag["id"]
