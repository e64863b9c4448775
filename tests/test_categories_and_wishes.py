from fastapi.testclient import TestClient
from sqlmodel import select

from homekeeper.main import app
from homekeeper.models import Category, CategoryPerson, Wish


def register(client, name, email, language=None):
    payload = {"name": name, "email": email, "password": "pw"}
    if language:
        payload["language"] = language
    return client.post("/api/register", json=payload).json()["person"]["id"]


def test_category_crud(client, session):
    register(client, "Alice", "alice@example.com")

    created = client.post(
        "/api/category", json={"name": "Jardín", "description": "Plantas", "color": "#0f0"}
    )
    assert created.status_code == 201
    category = created.json()["category"]
    assert category["icon"] == "categories/default.jpg"

    child = client.post("/api/category", json={"name": "Riego", "parent_id": category["id"]})
    assert child.status_code == 201

    shown = client.get(f"/api/category/{child.json()['category']['id']}").json()["category"]
    assert shown["parent"]["id"] == category["id"]
    assert shown["parent"]["parent"] is None

    updated = client.put(f"/api/category/{category['id']}", json={"color": "#00f"})
    assert updated.json()["category"]["color"] == "#00f"

    assert client.delete(f"/api/category/{category['id']}").json() == {"msg": "CategoryDeleted"}
    session.expire_all()
    assert session.exec(select(Category).where(Category.name.in_(["Jardín", "Riego"]))).all() == []


def test_categories_list_system_and_own_only(client):
    register(client, "Alice", "alice@example.com", language="en")
    client.post("/api/category", json={"name": "Jardín"})
    other = TestClient(app)
    register(other, "Bob", "bob@example.com")
    other.post("/api/category", json={"name": "Taller"})

    names = [c["name"] for c in client.get("/api/category").json()["categories"]]

    assert names == ["Home", "Jardín"]


def test_duplicate_category_names_are_rejected(client):
    register(client, "Alice", "alice@example.com")
    client.post("/api/category", json={"name": "Jardín"})

    again = client.post("/api/category", json={"name": "Jardín "})
    assert again.status_code == 400
    assert again.json()["msg"] == "CategoryExists"

    system = client.post("/api/category", json={"name": "Limpieza"})
    assert system.status_code == 400


def test_system_categories_are_read_only(client, session):
    register(client, "Alice", "alice@example.com")
    hogar = session.exec(select(Category).where(Category.name == "Hogar")).first()

    resp = client.put(f"/api/category/{hogar.id}", json={"name": "Casa"})
    assert resp.status_code == 400
    assert resp.json()["msg"] == "SystemCategory"
    assert client.delete(f"/api/category/{hogar.id}").status_code == 400


def test_category_parent_cycle_is_rejected(client):
    register(client, "Alice", "alice@example.com")
    root = client.post("/api/category", json={"name": "A"}).json()["category"]
    leaf = client.post("/api/category", json={"name": "B", "parent_id": root["id"]}).json()["category"]

    resp = client.put(f"/api/category/{root['id']}", json={"parent_id": leaf["id"]})

    assert resp.status_code == 400
    assert resp.json()["msg"] == "ParentCycle"


def test_sharing_a_category(client, session):
    register(client, "Alice", "alice@example.com")
    other = TestClient(app)
    bob = register(other, "Bob", "bob@example.com")
    category = client.post("/api/category", json={"name": "Jardín"}).json()["category"]
    assert other.get(f"/api/category/{category['id']}").status_code == 404

    resp = client.post(f"/api/category/{category['id']}/people", json={"person_id": bob})

    assert resp.status_code == 201
    assert other.get(f"/api/category/{category['id']}").status_code == 200
    links = session.exec(select(CategoryPerson).where(CategoryPerson.category_id == category["id"])).all()
    assert len(links) == 2

    missing = client.post(f"/api/category/{category['id']}/people", json={"person_id": 999})
    assert missing.status_code == 400


def test_categories_in_use_cannot_be_deleted(client):
    register(client, "Alice", "alice@example.com")
    home = client.post("/api/home", json={"name": "Casa"}).json()["home"]
    category = client.post("/api/category", json={"name": "Jardín"}).json()["category"]
    status_id = client.get("/api/status").json()["statuses"][0]["id"]
    priority_id = client.get("/api/priority").json()["priorities"][0]["id"]
    client.post(
        "/api/task",
        json={
            "title": "Podar",
            "category_id": category["id"],
            "status_id": status_id,
            "priority_id": priority_id,
            "home_id": home["id"],
        },
    )

    resp = client.delete(f"/api/category/{category['id']}")

    assert resp.status_code == 400
    assert resp.json()["msg"] == "CategoryInUse"


def wish_setup(client):
    register(client, "Alice", "alice@example.com")
    home = client.post("/api/home", json={"name": "Casa"}).json()["home"]
    options = client.get("/api/wish/options").json()
    return {
        "home_id": home["id"],
        "status_id": options["wishstatus"][0]["id"],
        "priority_id": options["wishpriorities"][0]["id"],
    }


def test_wish_visibility(client):
    base = wish_setup(client)
    shared = client.post("/api/wish", json={**base, "name": "Sofá", "type": "Hogar"}).json()["wish"]
    private = client.post("/api/wish", json={**base, "name": "Libro"}).json()["wish"]
    client.post("/api/wish", json={**base, "name": "Tapiz", "parent_id": shared["id"]})

    other = TestClient(app)
    bob = register(other, "Bob", "bob@example.com", language="en")

    mine = client.get("/api/wish").json()["wishes"]
    assert [w["name"] for w in mine] == ["Sofá", "Libro"]
    assert [c["name"] for c in mine[0]["children"]] == ["Tapiz"]

    # outside the home nothing is shared
    assert other.get("/api/wish").json()["wishes"] == []
    assert other.get(f"/api/wish/{shared['id']}").status_code == 404

    client.post(f"/api/home/{base['home_id']}/people", json={"person_id": bob})

    theirs = other.get("/api/wish").json()["wishes"]
    assert [w["name"] for w in theirs] == ["Sofá"]
    assert theirs[0]["typeName"] == "Household"
    assert theirs[0]["children"] == []
    assert other.get(f"/api/wish/{private['id']}").status_code == 404
    # shared wishes can be read but only the owner may change them
    assert other.get(f"/api/wish/{shared['id']}").status_code == 200
    assert other.delete(f"/api/wish/{shared['id']}").status_code == 404


def test_wishes_cannot_hang_under_someone_elses_wish(client):
    base = wish_setup(client)
    shared = client.post("/api/wish", json={**base, "name": "Sofá", "type": "Hogar"}).json()["wish"]
    other = TestClient(app)
    bob = register(other, "Bob", "bob@example.com")
    client.post(f"/api/home/{base['home_id']}/people", json={"person_id": bob})

    resp = other.post("/api/wish", json={**base, "name": "Cojines", "parent_id": shared["id"]})

    assert resp.status_code == 400
    assert resp.json()["details"] == {"parent_id": [shared["id"]]}


def test_wishes_filtered_by_type(client):
    base = wish_setup(client)
    client.post("/api/wish", json={**base, "name": "Sofá", "type": "Hogar"})
    client.post("/api/wish", json={**base, "name": "Libro"})

    resp = client.get("/api/wish", params={"type": "Hogar", "home_id": base["home_id"]})

    assert [w["name"] for w in resp.json()["wishes"]] == ["Sofá"]


def test_wish_update_and_delete(client, session):
    base = wish_setup(client)
    wish = client.post(
        "/api/wish", json={**base, "name": "Bicicleta", "start_date": "2030-01-01"}
    ).json()["wish"]
    assert wish["startDate"] == "2030-01-01"

    updated = client.put(f"/api/wish/{wish['id']}", json={"type": "Profesional", "location": "Centro"})
    assert updated.status_code == 200
    assert updated.json()["wish"]["typeName"] == "Profesional"
    assert updated.json()["wish"]["location"] == "Centro"

    assert client.delete(f"/api/wish/{wish['id']}").json() == {"msg": "WishDeleted"}
    assert session.exec(select(Wish)).all() == []


def test_wish_requires_home_membership(client):
    base = wish_setup(client)
    other = TestClient(app)
    register(other, "Bob", "bob@example.com")

    resp = other.post("/api/wish", json={**base, "name": "Tele"})

    assert resp.status_code == 404
    assert resp.json() == {"msg": "HomeNotFound"}


def test_deleting_a_parent_checks_the_whole_subtree(client, session):
    register(client, "Alice", "alice@example.com")
    home = client.post("/api/home", json={"name": "Casa"}).json()["home"]
    parent = client.post("/api/category", json={"name": "Jardín"}).json()["category"]
    child = client.post("/api/category", json={"name": "Riego", "parent_id": parent["id"]}).json()[
        "category"
    ]
    client.post(
        "/api/task",
        json={
            "title": "Regar",
            "category_id": child["id"],
            "status_id": client.get("/api/status").json()["statuses"][0]["id"],
            "priority_id": client.get("/api/priority").json()["priorities"][0]["id"],
            "home_id": home["id"],
        },
    )

    resp = client.delete(f"/api/category/{parent['id']}")

    assert resp.status_code == 400
    assert resp.json()["msg"] == "CategoryInUse"
    assert resp.json()["details"]["used_id"] == child["id"]
    session.expire_all()
    assert session.get(Category, child["id"]) is not None


def test_private_categories_cannot_be_used_as_parents(client):
    register(client, "Alice", "alice@example.com")
    other = TestClient(app)
    register(other, "Bob", "bob@example.com")
    hidden = other.post("/api/category", json={"name": "Taller"}).json()["category"]
    mine = client.post("/api/category", json={"name": "Jardín"}).json()["category"]

    created = client.post("/api/category", json={"name": "Herramientas", "parent_id": hidden["id"]})
    assert created.status_code == 400
    assert created.json()["details"] == {"parent_id": [hidden["id"]]}

    moved = client.put(f"/api/category/{mine['id']}", json={"parent_id": hidden["id"]})
    assert moved.status_code == 400


def test_unsharing_a_category(client):
    alice = register(client, "Alice", "alice@example.com")
    other = TestClient(app)
    bob = register(other, "Bob", "bob@example.com")
    shared = client.post("/api/category", json={"name": "Jardín"}).json()["category"]
    client.post(f"/api/category/{shared['id']}/people", json={"person_id": bob})
    own = other.post("/api/category", json={"name": "Riego", "parent_id": shared["id"]}).json()[
        "category"
    ]
    assert other.get(f"/api/category/{own['id']}").json()["category"]["parent"]["id"] == shared["id"]

    resp = client.delete(f"/api/category/{shared['id']}/people/{bob}")

    assert resp.status_code == 200
    assert other.get(f"/api/category/{shared['id']}").status_code == 404
    # the parent is no longer visible to Bob, so it is not shown
    assert other.get(f"/api/category/{own['id']}").json()["category"]["parent"] is None
    assert client.delete(f"/api/category/{shared['id']}/people/{bob}").status_code == 404
    last = client.delete(f"/api/category/{shared['id']}/people/{alice}")
    assert last.status_code == 400
    assert last.json()["msg"] == "LastCategoryPerson"
