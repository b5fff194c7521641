from datetime import time

import pytest
from sqlalchemy import func

from campus_core.models import Role, TimetableEntry
from campus_core.services.timetable import intervals_overlap


@pytest.fixture
def setup(client, factory, admin, school):
    """One academic year, two classes (three sections) and three teachers."""

    def create(url, payload):
        response = client.post(url, json=payload, headers=admin.headers)
        assert response.status_code == 201, response.text
        return response.json()["data"]

    year = create(
        "/api/v1/academic-years",
        {"name": "2025-2026", "start_date": "2025-04-01", "end_date": "2026-03-31", "is_current": True},
    )
    grade = create("/api/v1/classes", {"name": "Grade 4"})
    other_grade = create("/api/v1/classes", {"name": "Grade 5"})
    section_a = create(f"/api/v1/classes/{grade['id']}/sections", {"name": "A"})
    section_b = create(f"/api/v1/classes/{grade['id']}/sections", {"name": "B"})
    foreign_section = create(f"/api/v1/classes/{other_grade['id']}/sections", {"name": "A"})
    subject = create("/api/v1/subjects", {"name": "Science", "class_id": grade["id"]})
    teachers = [factory.account(Role.TEACHER, school) for _ in range(3)]

    return {
        "year": year["id"],
        "class": grade["id"],
        "section_a": section_a["id"],
        "section_b": section_b["id"],
        "foreign_section": foreign_section["id"],
        "subject": subject["id"],
        "teachers": teachers,
    }


@pytest.fixture
def schedule(client, admin, setup):
    def _schedule(day, start, end, *, teacher=0, section="section_a", room=None, expect=201):
        payload = {
            "academic_year_id": setup["year"],
            "class_id": setup["class"],
            "section_id": setup[section],
            "subject_id": setup["subject"],
            "teacher_id": str(setup["teachers"][teacher].record_id),
            "day_of_week": day,
            "start_time": start,
            "end_time": end,
        }
        if room is not None:
            payload["room_number"] = room
        response = client.post("/api/v1/timetable", json=payload, headers=admin.headers)
        assert response.status_code == expect, response.text
        return response.json()

    return _schedule


def _entry_count(database):
    with database.session() as session:
        return session.query(func.count(TimetableEntry.id)).scalar()


def test_half_open_overlap():
    assert intervals_overlap(time(9), time(9, 45), time(9, 30), time(10, 15))
    assert not intervals_overlap(time(9), time(9, 45), time(9, 45), time(10, 30))
    assert intervals_overlap(time(9), time(12), time(10), time(11))


def test_teacher_double_booking_is_rejected(database, schedule):
    first = schedule("MONDAY", "09:00", "09:45", room="101")["data"]
    assert first["start_time"] == "09:00"
    assert first["room_number"] == "101"

    clash = schedule("MONDAY", "09:30", "10:15", section="section_b", expect=409)
    assert clash["code"] == "TT_001"
    assert clash["details"] == {"conflict": "teacher", "entry_id": first["id"]}
    assert _entry_count(database) == 1

    schedule("MONDAY", "09:45", "10:30")
    assert _entry_count(database) == 2


def test_section_double_booking_is_rejected(schedule):
    schedule("TUESDAY", "10:00", "11:00", teacher=0)

    clash = schedule("TUESDAY", "10:30", "11:30", teacher=1, expect=409)

    assert clash["details"]["conflict"] == "section"


def test_room_double_booking_is_rejected(schedule):
    schedule("WEDNESDAY", "08:00", "09:00", teacher=0, section="section_a", room="Lab 1")

    clash = schedule("WEDNESDAY", "08:30", "09:30", teacher=1, section="section_b", room="Lab 1", expect=409)
    assert clash["details"]["conflict"] == "room"

    schedule("WEDNESDAY", "08:30", "09:30", teacher=1, section="section_b", room="Lab 2")


def test_room_numbers_are_trimmed(schedule):
    first = schedule("WEDNESDAY", "11:00", "12:00", teacher=0, section="section_a", room=" 101 ")["data"]
    assert first["room_number"] == "101"

    clash = schedule("WEDNESDAY", "11:30", "12:30", teacher=1, section="section_b", room="101", expect=409)
    assert clash["details"]["conflict"] == "room"


def test_blank_room_never_conflicts(schedule):
    schedule("THURSDAY", "08:00", "09:00", teacher=0, section="section_a", room="")
    schedule("THURSDAY", "08:00", "09:00", teacher=1, section="section_b", room="  ")


def test_other_days_do_not_conflict(schedule):
    schedule("MONDAY", "09:00", "10:00")
    schedule("FRIDAY", "09:00", "10:00")


def test_time_validation(schedule):
    backwards = schedule("MONDAY", "10:00", "09:00", expect=400)
    assert backwards["code"] == "VAL_003"

    same = schedule("MONDAY", "10:00", "10:00", expect=400)
    assert same["code"] == "VAL_003"

    malformed = schedule("MONDAY", "9:00", "10:00", expect=400)
    assert malformed["code"] == "VAL_001"
    assert "start_time" in malformed["details"]


def test_references_must_be_consistent(client, admin, setup, schedule):
    mismatched = schedule("MONDAY", "09:00", "10:00", section="foreign_section", expect=400)
    assert mismatched["code"] == "VAL_002"

    setup["section_a"] = "00000000-0000-4000-8000-000000000000"
    missing = schedule("MONDAY", "09:00", "10:00", expect=404)
    assert missing["error"] == "Section not found"


def test_update_excludes_the_entry_itself(client, admin, schedule):
    entry = schedule("MONDAY", "09:00", "09:45")["data"]

    response = client.put(
        f"/api/v1/timetable/{entry['id']}", json={"start_time": "09:15", "end_time": "10:00"}, headers=admin.headers
    )

    assert response.status_code == 200
    assert response.json()["data"]["start_time"] == "09:15"


def test_conflicting_update_leaves_entry_unchanged(client, admin, schedule):
    schedule("MONDAY", "09:00", "09:45", teacher=0)
    movable = schedule("MONDAY", "11:00", "11:45", teacher=0, section="section_b")["data"]

    response = client.put(
        f"/api/v1/timetable/{movable['id']}", json={"start_time": "09:30", "end_time": "10:15"}, headers=admin.headers
    )
    assert response.status_code == 409

    stored = client.get(f"/api/v1/timetable/{movable['id']}", headers=admin.headers).json()["data"]
    assert (stored["start_time"], stored["end_time"]) == ("11:00", "11:45")


def test_inactive_entries_skip_conflict_checks(client, admin, schedule):
    first = schedule("MONDAY", "09:00", "09:45")["data"]
    second = schedule("MONDAY", "10:00", "10:45")["data"]

    response = client.put(
        f"/api/v1/timetable/{second['id']}",
        json={"start_time": "09:00", "end_time": "09:45", "is_active": False},
        headers=admin.headers,
    )
    assert response.status_code == 200
    assert response.json()["data"]["is_active"] is False

    client.put(f"/api/v1/timetable/{first['id']}", json={"is_active": False}, headers=admin.headers)
    schedule("MONDAY", "09:00", "09:45")


def test_clearing_the_room(client, admin, schedule):
    entry = schedule("MONDAY", "09:00", "09:45", room="101")["data"]

    response = client.put(f"/api/v1/timetable/{entry['id']}", json={"room_number": None}, headers=admin.headers)

    assert response.json()["data"]["room_number"] is None


def test_deleted_entry_frees_the_slot(client, admin, schedule):
    entry = schedule("MONDAY", "09:00", "09:45")["data"]

    assert client.delete(f"/api/v1/timetable/{entry['id']}", headers=admin.headers).status_code == 200
    assert client.get(f"/api/v1/timetable/{entry['id']}", headers=admin.headers).status_code == 404
    schedule("MONDAY", "09:00", "09:45")


def test_weekly_views_group_by_day(client, admin, setup, schedule):
    schedule("WEDNESDAY", "10:00", "10:45", teacher=0)
    schedule("MONDAY", "11:00", "11:45", teacher=0)
    schedule("MONDAY", "08:00", "08:45", teacher=0)
    schedule("SUNDAY", "08:00", "08:45", teacher=1, section="section_b")

    week = client.get(f"/api/v1/timetable/class/{setup['class']}", headers=admin.headers).json()["data"]["days"]
    assert [day["day"] for day in week] == ["SUNDAY", "MONDAY", "WEDNESDAY"]
    assert [entry["start_time"] for entry in week[1]["entries"]] == ["08:00", "11:00"]
    assert week[1]["entries"][0]["class"]["name"] == "Grade 4"

    section_week = client.get(f"/api/v1/timetable/section/{setup['section_b']}", headers=admin.headers).json()
    assert [day["day"] for day in section_week["data"]["days"]] == ["SUNDAY"]

    teacher = setup["teachers"][0]
    own = client.get(f"/api/v1/timetable/teacher/{teacher.record_id}", headers=teacher.headers)
    assert own.status_code == 200
    assert [day["day"] for day in own.json()["data"]["days"]] == ["MONDAY", "WEDNESDAY"]


def test_list_is_ordered_by_day_then_start(client, admin, schedule):
    schedule("TUESDAY", "08:00", "08:45")
    schedule("MONDAY", "10:00", "10:45")
    schedule("MONDAY", "08:00", "08:45")

    body = client.get("/api/v1/timetable", headers=admin.headers).json()
    assert [(entry["day_of_week"], entry["start_time"]) for entry in body["data"]] == [
        ("MONDAY", "08:00"),
        ("MONDAY", "10:00"),
        ("TUESDAY", "08:00"),
    ]

    mondays = client.get("/api/v1/timetable", params={"day_of_week": "MONDAY"}, headers=admin.headers).json()
    assert mondays["pagination"]["total_items"] == 2


def test_only_admins_write_timetable(client, setup, schedule):
    teacher = setup["teachers"][0]
    payload = {
        "academic_year_id": setup["year"],
        "class_id": setup["class"],
        "section_id": setup["section_a"],
        "subject_id": setup["subject"],
        "teacher_id": str(teacher.record_id),
        "day_of_week": "MONDAY",
        "start_time": "09:00",
        "end_time": "09:45",
    }

    response = client.post("/api/v1/timetable", json=payload, headers=teacher.headers)

    assert response.status_code == 403
