import uuid

from sqlalchemy import func

from campus_core.models import Role, Teacher, User, UserProfile
from campus_core.services import users as user_service

from .conftest import PASSWORD


def _teacher_payload(email, **extra):
    return {
        "email": email,
        "password": PASSWORD,
        "first_name": "Maya",
        "last_name": "Lin",
        "joining_date": "2024-08-01",
        **extra,
    }


def _count(database, model, *criteria):
    with database.session() as session:
        return session.query(func.count(model.id)).filter(*criteria).scalar()


def test_create_teacher(client, admin, school):
    response = client.post(
        "/api/v1/teachers",
        json=_teacher_payload("maya@campus.test", qualifications=["B.Ed"]),
        headers=admin.headers,
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["institution_id"] == str(school)
    assert data["qualifications"] == ["B.Ed"]
    assert data["user"]["email"] == "maya@campus.test"
    assert data["user"]["role"] == "TEACHER"


def test_duplicate_email_is_rejected_without_new_rows(client, database, admin):
    first = client.post("/api/v1/teachers", json=_teacher_payload("a@x.com"), headers=admin.headers)
    assert first.status_code == 201

    second = client.post("/api/v1/teachers", json=_teacher_payload("A@X.com"), headers=admin.headers)

    assert second.status_code == 409
    assert second.json()["code"] == "USER_002"
    assert _count(database, User, User.email == "a@x.com") == 1


def test_failed_role_record_rolls_back_user_and_profile(client, database, admin, monkeypatch):
    def broken_record(role, user, institution_id, payload):
        return Teacher(institution_id=institution_id, user_id=None)

    monkeypatch.setattr(user_service, "_build_role_record", broken_record)

    response = client.post("/api/v1/teachers", json=_teacher_payload("atomic@campus.test"), headers=admin.headers)

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Database error", "code": "SYS_003"}
    assert _count(database, User, User.email == "atomic@campus.test") == 0
    assert _count(database, UserProfile, UserProfile.first_name == "Maya") == 0
    assert _count(database, Teacher) == 0


def test_admin_cannot_create_users_in_other_tenant(client, admin, other_school):
    response = client.post(
        "/api/v1/teachers",
        json=_teacher_payload("elsewhere@campus.test", institution_id=str(other_school)),
        headers=admin.headers,
    )

    assert response.status_code == 403
    assert response.json()["code"] == "AUTHZ_004"


def test_student_section_must_belong_to_class(client, admin):
    grade1 = client.post("/api/v1/classes", json={"name": "Grade 1"}, headers=admin.headers).json()["data"]
    grade2 = client.post("/api/v1/classes", json={"name": "Grade 2"}, headers=admin.headers).json()["data"]
    section = client.post(
        f"/api/v1/classes/{grade2['id']}/sections", json={"name": "A"}, headers=admin.headers
    ).json()["data"]

    response = client.post(
        "/api/v1/students",
        json={
            "email": "kid@campus.test",
            "password": PASSWORD,
            "first_name": "Kid",
            "last_name": "One",
            "admission_number": "ADM-1",
            "admission_date": "2024-04-01",
            "class_id": grade1["id"],
            "section_id": section["id"],
        },
        headers=admin.headers,
    )

    assert response.status_code == 400
    assert response.json()["code"] == "VAL_002"


def test_update_user_across_tenants_is_denied(client, database, factory, admin, other_school):
    outsider = factory.account(Role.TEACHER, other_school)

    response = client.put(f"/api/v1/users/{outsider.user_id}", json={"first_name": "Hacked"}, headers=admin.headers)

    assert response.status_code == 403
    assert response.json()["code"] == "AUTHZ_005"
    with database.session() as session:
        profile = session.query(UserProfile).filter(UserProfile.user_id == outsider.user_id).one()
        assert profile.first_name != "Hacked"


def test_member_lookup_is_tenant_isolated(client, factory, admin, other_school):
    outsider = factory.account(Role.TEACHER, other_school)

    response = client.get(f"/api/v1/teachers/{outsider.record_id}", headers=admin.headers)

    assert response.status_code == 403


def test_update_user_and_email_uniqueness(client, factory, admin, school):
    teacher = factory.account(Role.TEACHER, school)
    other = factory.account(Role.TEACHER, school)

    taken = client.put(f"/api/v1/users/{teacher.user_id}", json={"email": other.email}, headers=admin.headers)
    assert taken.status_code == 409

    same = client.put(
        f"/api/v1/users/{teacher.user_id}",
        json={"email": teacher.email, "last_name": "Updated"},
        headers=admin.headers,
    )
    assert same.status_code == 200
    assert same.json()["data"]["profile"]["last_name"] == "Updated"


def test_list_users_is_scoped_and_filtered(client, factory, admin, school, other_school):
    factory.account(Role.TEACHER, school)
    factory.account(Role.STUDENT, school)
    factory.account(Role.TEACHER, other_school)

    response = client.get("/api/v1/users", params={"role": "TEACHER"}, headers=admin.headers)

    body = response.json()
    assert response.status_code == 200
    assert body["pagination"]["total_items"] == 1
    assert body["data"][0]["role"] == "TEACHER"


def test_deactivated_user_cannot_log_in(client, factory, admin, school):
    teacher = factory.account(Role.TEACHER, school)

    response = client.patch(f"/api/v1/users/{teacher.user_id}/status", json={"is_active": False}, headers=admin.headers)
    assert response.status_code == 200
    assert response.json()["data"]["is_active"] is False

    login = client.post("/api/v1/auth/login", json={"email": teacher.email, "password": PASSWORD})
    assert login.json()["code"] == "AUTH_007"


def test_delete_user(client, factory, admin, school):
    teacher = factory.account(Role.TEACHER, school)

    assert client.delete(f"/api/v1/users/{teacher.user_id}", headers=admin.headers).status_code == 200

    gone = client.get(f"/api/v1/users/{teacher.user_id}", headers=admin.headers)
    assert gone.status_code == 404
    assert gone.json()["code"] == "USER_001"
    assert client.get(f"/api/v1/teachers/{teacher.record_id}", headers=admin.headers).status_code == 404


def test_cannot_delete_self(client, admin):
    response = client.delete(f"/api/v1/users/{admin.user_id}", headers=admin.headers)

    assert response.status_code == 400
    assert response.json()["code"] == "USER_005"


def test_own_profile(client, factory, school):
    student = factory.account(Role.STUDENT, school)

    response = client.put("/api/v1/profile", json={"first_name": " Ana ", "gender": "female"}, headers=student.headers)
    assert response.status_code == 200

    profile = client.get("/api/v1/profile", headers=student.headers).json()["data"]["profile"]
    assert profile["first_name"] == "Ana"
    assert profile["gender"] == "female"


def test_update_teacher_record(client, factory, admin, school):
    teacher = factory.account(Role.TEACHER, school)
    department = client.post("/api/v1/departments", json={"name": "Science"}, headers=admin.headers).json()["data"]

    response = client.put(
        f"/api/v1/teachers/{teacher.record_id}",
        json={"department_id": department["id"], "first_name": "Grace"},
        headers=admin.headers,
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["department_id"] == department["id"]
    assert data["user"]["profile"]["first_name"] == "Grace"


def test_list_students_filters_by_class(client, factory, admin, school):
    grade = client.post("/api/v1/classes", json={"name": "Grade 3"}, headers=admin.headers).json()["data"]
    factory.account(Role.STUDENT, school, class_id=uuid.UUID(grade["id"]))
    factory.account(Role.STUDENT, school)

    response = client.get("/api/v1/students", params={"class_id": grade["id"]}, headers=admin.headers)

    assert response.json()["pagination"]["total_items"] == 1


def test_parent_student_links(client, factory, admin, school):
    student = factory.account(Role.STUDENT, school)
    mother = factory.account(Role.PARENT, school)
    father = factory.account(Role.PARENT, school)
    url = f"/api/v1/students/{student.record_id}/parents"

    first = client.post(
        url, json={"parent_id": str(mother.record_id), "relationship": "mother", "is_primary": True}, headers=admin.headers
    )
    assert first.status_code == 201
    assert first.json()["data"]["relationship"] == "mother"

    duplicate = client.post(url, json={"parent_id": str(mother.record_id), "relationship": "mother"}, headers=admin.headers)
    assert duplicate.status_code == 409

    client.post(
        url, json={"parent_id": str(father.record_id), "relationship": "father", "is_primary": True}, headers=admin.headers
    )
    links = client.get(url, headers=admin.headers).json()["data"]
    primary = {link["parent_id"]: link["is_primary"] for link in links}
    assert primary == {str(father.record_id): True, str(mother.record_id): False}

    children = client.get(f"/api/v1/parents/{mother.record_id}/children", headers=admin.headers).json()["data"]
    assert [child["student_id"] for child in children] == [str(student.record_id)]

    assert client.delete(f"{url}/{mother.record_id}", headers=admin.headers).status_code == 200
    remaining = client.get(url, headers=admin.headers).json()["data"]
    assert [link["parent_id"] for link in remaining] == [str(father.record_id)]


def test_parent_and_student_must_share_tenant(client, factory, super_admin, school, other_school):
    student = factory.account(Role.STUDENT, school)
    parent = factory.account(Role.PARENT, other_school)

    response = client.post(
        f"/api/v1/students/{student.record_id}/parents",
        json={"parent_id": str(parent.record_id), "relationship": "guardian"},
        headers=super_admin.headers,
    )

    assert response.status_code == 400
    assert response.json()["code"] == "USER_007"


def test_create_parent_and_accountant(client, admin):
    parent = client.post(
        "/api/v1/parents",
        json={"email": "mum@campus.test", "password": PASSWORD, "first_name": "Mum", "last_name": "Doe", "occupation": "Nurse"},
        headers=admin.headers,
    )
    accountant = client.post(
        "/api/v1/accountants",
        json={
            "email": "books@campus.test",
            "password": PASSWORD,
            "first_name": "Bo",
            "last_name": "Oks",
            "joining_date": "2023-01-09",
        },
        headers=admin.headers,
    )

    assert parent.status_code == 201
    assert parent.json()["data"]["occupation"] == "Nurse"
    assert accountant.status_code == 201
    assert client.get("/api/v1/accountants", headers=admin.headers).json()["pagination"]["total_items"] == 1


def test_super_admin_lookups_follow_active_tenant(client, database, factory, super_admin, school, other_school):
    local = factory.account(Role.STUDENT, school)
    outsider = factory.account(Role.STUDENT, other_school)
    headers = {**super_admin.headers, "X-Institution-ID": str(school)}

    assert client.get(f"/api/v1/students/{local.record_id}", headers=headers).status_code == 200

    member = client.get(f"/api/v1/students/{outsider.record_id}", headers=headers)
    assert member.status_code == 403
    assert member.json()["code"] == "AUTHZ_005"

    account = client.get(f"/api/v1/users/{outsider.user_id}", headers=headers)
    assert account.json()["code"] == "AUTHZ_005"

    renamed = client.put(f"/api/v1/users/{outsider.user_id}", json={"first_name": "Moved"}, headers=headers)
    assert renamed.status_code == 403
    with database.session() as session:
        profile = session.query(UserProfile).filter(UserProfile.user_id == outsider.user_id).one()
        assert profile.first_name != "Moved"

    parents = client.get(f"/api/v1/students/{outsider.record_id}/parents", headers=headers)
    assert parents.status_code == 403


def test_super_admin_without_tenant_sees_every_institution(client, factory, super_admin, other_school):
    outsider = factory.account(Role.STUDENT, other_school)

    response = client.get(f"/api/v1/users/{outsider.user_id}", headers=super_admin.headers)

    assert response.status_code == 200


def test_moving_student_to_another_class_checks_section(client, factory, admin, school):
    def create(url, payload):
        return client.post(url, json=payload, headers=admin.headers).json()["data"]

    one = create("/api/v1/classes", {"name": "One"})
    two = create("/api/v1/classes", {"name": "Two"})
    one_a = create(f"/api/v1/classes/{one['id']}/sections", {"name": "A"})
    two_b = create(f"/api/v1/classes/{two['id']}/sections", {"name": "B"})
    student = factory.account(
        Role.STUDENT, school, class_id=uuid.UUID(one["id"]), section_id=uuid.UUID(one_a["id"])
    )
    url = f"/api/v1/students/{student.record_id}"

    stale = client.put(url, json={"class_id": two["id"]}, headers=admin.headers)
    assert stale.status_code == 400
    assert stale.json()["code"] == "VAL_002"
    unchanged = client.get(url, headers=admin.headers).json()["data"]
    assert (unchanged["class_id"], unchanged["section_id"]) == (one["id"], one_a["id"])

    moved = client.put(url, json={"class_id": two["id"], "section_id": two_b["id"]}, headers=admin.headers)
    assert moved.status_code == 200
    assert (moved.json()["data"]["class_id"], moved.json()["data"]["section_id"]) == (two["id"], two_b["id"])

    cleared = client.put(url, json={"class_id": one["id"], "section_id": None}, headers=admin.headers)
    assert cleared.status_code == 200
    assert cleared.json()["data"]["section_id"] is None


def test_deactivating_through_update_revokes_refresh_token(client, database, factory, admin, school):
    teacher = factory.account(Role.TEACHER, school)
    login = client.post("/api/v1/auth/login", json={"email": teacher.email, "password": PASSWORD})
    assert login.status_code == 200

    response = client.put(f"/api/v1/users/{teacher.user_id}", json={"is_active": False}, headers=admin.headers)

    assert response.status_code == 200
    assert response.json()["data"]["is_active"] is False
    with database.session() as session:
        assert session.get(User, teacher.user_id).refresh_token is None
