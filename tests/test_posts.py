from datetime import datetime, timedelta

from blogcms import models, worker


def create_post(client, headers, **overrides):
    payload = {"title": "Hello", "content": "World"}
    payload.update(overrides)
    resp = client.post("/api/posts", json=payload, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["post"]


def test_create_post_defaults_to_draft(client, login):
    author_id, headers = login("author")
    post = create_post(client, headers)
    assert post["status"] == "draft"
    assert post["slug"] == "hello"
    assert post["author_id"] == author_id
    assert post["published_at"] is None


def test_readers_cannot_create_posts(client, login):
    _, headers = login("reader")
    resp = client.post("/api/posts", json={"title": "Nope", "content": "x"}, headers=headers)
    assert resp.status_code == 403
    assert resp.json()["error"]["message"] == "Insufficient permissions"


def test_slug_uniqueness(client, login):
    _, headers = login("author")
    r1 = create_post(client, headers, title="Duplicate", content="a")
    r2 = create_post(client, headers, title="Duplicate", content="b")
    assert r1["slug"] != r2["slug"]
    assert r2["slug"].startswith("duplicate")


def test_drafts_hidden_from_public(client, login):
    _, headers = login("author")
    post = create_post(client, headers, title="Secret")

    assert client.get(f"/api/posts/{post['id']}").status_code == 404
    assert client.get("/api/posts").json()["posts"] == []
    # the owner still sees it
    assert client.get(f"/api/posts/{post['id']}", headers=headers).status_code == 200


def test_publish_then_read_by_slug(client, login):
    _, headers = login("author")
    post = create_post(client, headers, title="Going Live")

    resp = client.post(f"/api/posts/{post['id']}/publish", headers=headers)
    assert resp.status_code == 200
    published = resp.json()["post"]
    assert published["status"] == "published"
    assert published["published_at"] is not None

    resp = client.get("/api/posts/going-live")
    assert resp.status_code == 200
    assert resp.json()["post"]["id"] == post["id"]

    resp = client.post(f"/api/posts/{post['id']}/publish", headers=headers)
    assert resp.status_code == 400
    assert resp.json()["error"]["message"] == "Post is already published"


def test_create_published_post_directly(client, login):
    _, headers = login("author")
    post = create_post(client, headers, status="published")
    assert post["status"] == "published"
    assert post["published_at"] is not None


def test_other_authors_cannot_modify(client, login):
    _, owner = login("author", username="owner")
    _, intruder = login("author", username="intruder")
    _, editor = login("editor")
    post = create_post(client, owner)

    resp = client.put(f"/api/posts/{post['id']}", json={"title": "Hijack"}, headers=intruder)
    assert resp.status_code == 403
    assert resp.json()["error"]["message"] == "Not authorized to modify this post"

    resp = client.put(f"/api/posts/{post['id']}", json={"title": "Edited"}, headers=editor)
    assert resp.status_code == 200


def test_unpublish_and_archive(client, login):
    _, headers = login("author")
    post = create_post(client, headers, status="published")

    resp = client.post(f"/api/posts/{post['id']}/unpublish", headers=headers)
    assert resp.json()["post"]["status"] == "draft"
    assert resp.json()["post"]["published_at"] is None

    resp = client.post(f"/api/posts/{post['id']}/archive", headers=headers)
    assert resp.json()["post"]["status"] == "archived"
    resp = client.post(f"/api/posts/{post['id']}/archive", headers=headers)
    assert resp.status_code == 400


def test_schedule_in_past_is_rejected(client, login):
    _, headers = login("author")
    post = create_post(client, headers)
    past = datetime.utcnow() - timedelta(hours=1)
    resp = client.post(f"/api/posts/{post['id']}/schedule", json={"scheduled_at": past.isoformat()}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["error"]["message"] == "scheduled_at must be in the future"


def test_scheduled_post_requires_time(client, login):
    _, headers = login("author")
    resp = client.post("/api/posts", json={"title": "Later", "content": "x", "status": "scheduled"}, headers=headers)
    assert resp.status_code == 400


def test_schedule_and_worker_runs(client, login, db):
    _, headers = login("author")
    post = create_post(client, headers, title="Timer", content="Tick")
    future = datetime.utcnow() + timedelta(hours=1)
    resp = client.post(f"/api/posts/{post['id']}/schedule", json={"scheduled_at": future.isoformat()}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["post"]["status"] == "scheduled"

    # nothing is due yet
    assert worker.publish_scheduled_posts() == 0

    # simulate the passage of time
    row = db.get(models.Post, post["id"])
    row.scheduled_at = datetime.utcnow() - timedelta(minutes=1)
    db.commit()

    assert worker.publish_scheduled_posts() == 1
    resp = client.get(f"/api/posts/{post['id']}")
    assert resp.status_code == 200
    body = resp.json()["post"]
    assert body["status"] == "published"
    assert body["scheduled_at"] is None


def test_publish_ready_endpoint_for_editors(client, login, db):
    _, author = login("author")
    _, editor = login("editor")
    post = create_post(client, author, status="scheduled", scheduled_at=(datetime.utcnow() + timedelta(hours=1)).isoformat())

    row = db.get(models.Post, post["id"])
    row.scheduled_at = datetime.utcnow() - timedelta(minutes=1)
    db.commit()

    assert client.post("/api/posts/scheduled/publish", headers=author).status_code == 403
    ready = client.get("/api/posts/scheduled/ready", headers=editor).json()["scheduled_posts"]
    assert [p["id"] for p in ready] == [post["id"]]

    resp = client.post("/api/posts/scheduled/publish", headers=editor)
    assert resp.status_code == 200
    assert resp.json()["published"] == [post["id"]]


def test_versions_and_restore(client, login):
    _, headers = login("author")
    post = create_post(client, headers, title="First", content="one")

    resp = client.put(f"/api/posts/{post['id']}", json={"title": "Second", "content": "two"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["post"]["slug"] == "second"

    # unchanged text does not add a version
    client.put(f"/api/posts/{post['id']}", json={"meta_title": "SEO"}, headers=headers)

    versions = client.get(f"/api/posts/{post['id']}/versions", headers=headers).json()["versions"]
    assert [v["version_number"] for v in versions] == [2, 1]
    assert versions[1]["title"] == "First"

    resp = client.post(f"/api/posts/{post['id']}/versions/1/restore", headers=headers)
    assert resp.status_code == 200
    restored = resp.json()["post"]
    assert restored["title"] == "First"
    assert restored["content"] == "one"

    versions = client.get(f"/api/posts/{post['id']}/versions", headers=headers).json()["versions"]
    assert versions[0]["version_number"] == 3

    assert client.get(f"/api/posts/{post['id']}/versions/99", headers=headers).status_code == 404


def test_drafts_endpoints(client, login):
    _, headers = login("author")
    resp = client.post("/api/posts/drafts", json={"title": "Work in progress"}, headers=headers)
    assert resp.status_code == 200
    post_id = resp.json()["post_id"]

    resp = client.post("/api/posts/drafts", json={"post_id": post_id, "title": "Work", "content": "more"}, headers=headers)
    assert resp.json()["message"] == "Draft saved"

    drafts = client.get("/api/posts/drafts", headers=headers).json()["drafts"]
    assert [d["id"] for d in drafts] == [post_id]
    assert drafts[0]["content"] == "more"


def test_public_list_is_cached_and_invalidated(client, login, fake_redis):
    _, headers = login("author")
    post = create_post(client, headers, title="Searchable", content="Find me", status="published")

    resp = client.get("/api/posts", params={"search": "Find"})
    assert resp.status_code == 200
    assert [p["id"] for p in resp.json()["posts"]] == [post["id"]]
    assert fake_redis.keys("published_list_*")

    client.get(f"/api/posts/{post['id']}")
    assert fake_redis.get(f"post_cache_{post['id']}") is not None

    resp = client.put(f"/api/posts/{post['id']}", json={"content": "Updated"}, headers=headers)
    assert resp.status_code == 200
    assert fake_redis.get(f"post_cache_{post['id']}") is None
    assert fake_redis.keys("published_list_*") == []


def test_filter_by_category_and_tag(client, login):
    _, editor = login("editor")
    category = client.post("/api/categories", json={"name": "News"}, headers=editor).json()["category"]
    tag = client.post("/api/tags", json={"name": "Python"}, headers=editor).json()["tag"]
    tagged = create_post(client, editor, title="Tagged", status="published", categories=[category["id"]], tags=[tag["id"]])
    create_post(client, editor, title="Plain", status="published")

    resp = client.get("/api/posts", params={"category": "news"})
    assert [p["id"] for p in resp.json()["posts"]] == [tagged["id"]]
    resp = client.get("/api/posts", params={"tag": "python"})
    assert [p["id"] for p in resp.json()["posts"]] == [tagged["id"]]

    resp = client.post("/api/posts", json={"title": "Bad", "content": "x", "tags": [999]}, headers=editor)
    assert resp.status_code == 400


def test_delete_post(client, login):
    _, headers = login("author")
    post = create_post(client, headers)
    resp = client.delete(f"/api/posts/{post['id']}", headers=headers)
    assert resp.status_code == 200
    assert client.get(f"/api/posts/{post['id']}", headers=headers).status_code == 404


def test_numeric_slug_is_readable(client, login):
    _, headers = login("author")
    post = create_post(client, headers, title="2024", status="published")
    assert post["slug"] == "2024"

    resp = client.get("/api/posts/2024")
    assert resp.status_code == 200
    assert resp.json()["post"]["id"] == post["id"]
    # plain ids still resolve
    assert client.get(f"/api/posts/{post['id']}").json()["post"]["slug"] == "2024"
