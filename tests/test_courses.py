import pytest

import courses
import engagement
import errors
from conftest import as_identity, create_user, full_course, login
from models import Course, CourseItem, Rating, User, WantsToEat
from schemas import CourseItemIn


def _items(*pairs):
    return [CourseItemIn(product_id=pid, role=role) for pid, role in pairs]


def test_missing_mandatory_roles():
    assert courses.missing_mandatory_roles(_items((1, "main"), (2, "Dessert"))) == [
        "appetizer", "snack", "main",
    ]
    full = _items((1, "appetizer"), (2, "snack"), (3, "main"), (4, "main"), (5, "dessert"), (6, "drink"))
    assert courses.missing_mandatory_roles(full) == []


def test_create_requires_login(client, db, product_ids):
    assert client.post("/courses", json=full_course(product_ids)).status_code == 401


def test_create_course(client, db, product_ids):
    create_user(db, "a@x.com")
    login(client, "a@x.com")
    res = client.post("/courses", json=full_course(product_ids))
    assert res.status_code == 201
    course_id = res.json()["courseId"]

    detail = client.get(f"/courses/{course_id}").json()
    assert [i["order"] for i in detail["courseItems"]] == [1, 2, 3, 4, 5]
    assert [i["product"]["id"] for i in detail["courseItems"]] == product_ids[:5]
    db.expire_all()
    assert db.query(User).filter_by(email="a@x.com").one().course_count == 1


@pytest.mark.parametrize("change", [
    {"title": "  "},
    {"description": ""},
    {"courseItems": []},
])
def test_create_rejects_incomplete_course(client, db, product_ids, change):
    create_user(db, "a@x.com")
    login(client, "a@x.com")
    payload = {**full_course(product_ids), **change}
    assert client.post("/courses", json=payload).status_code == 400
    assert db.query(Course).count() == 0


def test_create_rejects_missing_slot_and_unknown_product(client, db, product_ids):
    create_user(db, "a@x.com")
    login(client, "a@x.com")

    payload = full_course(product_ids)
    payload["courseItems"] = payload["courseItems"][:4]
    res = client.post("/courses", json=payload)
    assert res.status_code == 400
    assert "dessert" in res.json()["message"]

    payload = full_course(product_ids)
    payload["courseItems"][0]["productId"] = 9999
    assert client.post("/courses", json=payload).status_code == 400


def test_service_only_needs_one_item(db, product_ids):
    user = create_user(db, "a@x.com")
    course = courses.create_course(db, as_identity(user), "Solo", "One bite.", _items((product_ids[0], "other")))
    assert len(course.items) == 1


def test_update_replaces_items(client, db, product_ids):
    create_user(db, "a@x.com")
    login(client, "a@x.com")
    course_id = client.post("/courses", json=full_course(product_ids)).json()["courseId"]

    payload = full_course(list(reversed(product_ids)), title="Reversed")
    payload["courseItems"].append({"productId": product_ids[0], "role": "drink"})
    assert client.put(f"/courses/{course_id}", json=payload).status_code == 200

    detail = client.get(f"/courses/{course_id}").json()
    assert detail["title"] == "Reversed"
    assert [i["order"] for i in detail["courseItems"]] == [1, 2, 3, 4, 5, 6]
    assert detail["courseItems"][-1]["role"] == "drink"
    assert db.query(CourseItem).count() == 6


def test_only_owner_can_change_course(client, db, product_ids):
    create_user(db, "owner@x.com")
    create_user(db, "other@x.com")
    login(client, "owner@x.com")
    course_id = client.post("/courses", json=full_course(product_ids)).json()["courseId"]

    login(client, "other@x.com")
    assert client.put(f"/courses/{course_id}", json=full_course(product_ids)).status_code == 403
    assert client.delete(f"/courses/{course_id}").status_code == 403
    assert client.delete("/courses/9999").status_code == 404

    login(client, "owner@x.com")
    assert client.put(f"/courses/{course_id}", json=full_course(product_ids)).status_code == 200
    assert client.delete(f"/courses/{course_id}").status_code == 200
    assert client.get(f"/courses/{course_id}").status_code == 404


def test_delete_decrements_course_count_and_removes_reactions(db, product_ids):
    owner = create_user(db, "owner@x.com")
    fan = create_user(db, "fan@x.com")
    course = courses.create_course(db, as_identity(owner), "T", "D", _items((product_ids[0], "main")))

    engagement.toggle_wants_to_eat(db, course.id, fan.id)
    engagement.rate(db, course.id, fan.id, 5)

    courses.delete_course(db, as_identity(owner), course.id)
    db.expire_all()
    assert db.get(User, owner.id).course_count == 0
    assert db.query(Course).count() == 0
    assert db.query(WantsToEat).count() == db.query(Rating).count() == 0


def test_non_owner_service_call_is_forbidden(db, product_ids):
    owner = create_user(db, "owner@x.com")
    other = create_user(db, "other@x.com")
    course = courses.create_course(db, as_identity(owner), "T", "D", _items((product_ids[0], "main")))
    with pytest.raises(errors.Forbidden):
        courses.delete_course(db, as_identity(other), course.id)


def test_list_courses_newest_first(client, db, product_ids):
    user = create_user(db, "a@x.com")
    for title in ("first", "second", "third"):
        courses.create_course(db, as_identity(user), title, "d", _items((product_ids[0], "main")))

    page = client.get("/courses", params={"page": 1, "limit": 2}).json()
    assert [c["title"] for c in page["courses"]] == ["third", "second"]
    assert page["total"] == 3
    assert page["totalPages"] == 2
