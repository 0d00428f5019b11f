def test_create_category_defaults_color(http):
    token = http.new_user()
    category = http.create_category(token, "inbox")
    assert category["color"] == "#3B82F6"
    assert category["name"] == "inbox"


def test_create_category_validation(http):
    token = http.new_user()
    r = http.request("POST", "/categories", token, json={"name": "x" * 51, "color": "red"})
    assert r.status_code == 400
    assert {v["field"] for v in r.json()["validation"]} == {"name", "color"}


def test_duplicate_category_name_is_rejected(http):
    token = http.new_user()
    http.create_category(token, "work")
    r = http.request("POST", "/categories", token, json={"name": "work"})
    assert r.status_code == 400
    assert r.json()["validation"][0]["field"] == "name"


def test_list_categories_by_name_with_counts(http):
    token = http.new_user()
    zed = http.create_category(token, "zed")
    http.create_category(token, "alpha")
    http.create_todo(token, title="t", categoryIds=[zed["id"]])

    body = http.request("GET", "/categories", token).json()
    assert body["totalCount"] == 2
    assert [(c["name"], c["todoCount"]) for c in body["categories"]] == [("alpha", 0), ("zed", 1)]


def test_update_category(http):
    token = http.new_user()
    c = http.create_category(token, "old")
    r = http.request("PATCH", f"/categories/{c['id']}", token, json={"name": "new", "color": "#000000"})
    assert r.status_code == 200
    assert (r.json()["category"]["name"], r.json()["category"]["color"]) == ("new", "#000000")
    assert http.request("PATCH", f"/categories/{c['id']}", token, json={}).status_code == 400


def test_delete_category_detaches_but_keeps_todos(http):
    token = http.new_user()
    c = http.create_category(token, "shared")
    ids = [http.create_todo(token, title=f"t{i}", categoryIds=[c["id"]])["id"] for i in range(3)]

    r = http.request("DELETE", f"/categories/{c['id']}", token)
    assert r.status_code == 200
    assert r.json() == {"success": True}

    assert http.request("GET", f"/categories/{c['id']}", token).status_code == 404
    for todo_id in ids:
        r = http.request("GET", f"/todos/{todo_id}", token)
        assert r.status_code == 200
        assert r.json()["todo"]["categories"] == []
    assert http.list_todos(token)["totalCount"] == 3


def test_todo_category_endpoints(http):
    token = http.new_user()
    a = http.create_category(token, "a")
    b = http.create_category(token, "b")
    todo = http.create_todo(token, title="t")

    r = http.request("PUT", f"/todos/{todo['id']}/categories", token, json={"categoryIds": [a["id"], b["id"], a["id"]]})
    assert r.status_code == 200
    assert sorted(c["name"] for c in r.json()) == ["a", "b"]

    r = http.request("GET", f"/todos/{todo['id']}/categories", token)
    assert sorted(c["id"] for c in r.json()) == sorted([a["id"], b["id"]])


def test_other_users_category_is_invisible(http):
    owner = http.new_user()
    intruder = http.new_user()
    c = http.create_category(owner, "mine")

    assert http.request("GET", f"/categories/{c['id']}", intruder).status_code == 404
    assert http.request("PATCH", f"/categories/{c['id']}", intruder, json={"name": "x"}).status_code == 404
    assert http.request("DELETE", f"/categories/{c['id']}", intruder).status_code == 404
    assert http.request("GET", "/categories", intruder).json() == {"categories": [], "totalCount": 0}
    assert http.request("GET", f"/categories/{c['id']}", owner).status_code == 200
