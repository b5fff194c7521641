from collections.abc import Iterable

from .models import Role

WILDCARD = "*"

ROLE_PERMISSIONS: dict[Role, frozenset[str]] = {
    Role.SUPER_ADMIN: frozenset({WILDCARD}),
    Role.ADMIN: frozenset(
        {
            "USER_CREATE",
            "USER_UPDATE",
            "USER_DELETE",
            "USER_VIEW",
            "STUDENT_MANAGE",
            "TEACHER_MANAGE",
            "CLASS_MANAGE",
            "SECTION_MANAGE",
            "SUBJECT_MANAGE",
            "DEPARTMENT_MANAGE",
            "ACADEMIC_YEAR_MANAGE",
            "TIMETABLE_MANAGE",
            "FEE_STRUCTURE_MANAGE",
            "NOTICE_PUBLISH",
            "ANNOUNCEMENT_CREATE",
            "REPORT_GENERATE",
            "LEAVE_APPROVE",
            "LIBRARY_MANAGE",
            "EVENT_MANAGE",
        }
    ),
    Role.TEACHER: frozenset(
        {
            "ATTENDANCE_MARK",
            "ATTENDANCE_VIEW",
            "ASSIGNMENT_CREATE",
            "ASSIGNMENT_GRADE",
            "EXAM_CREATE",
            "RESULT_ENTER",
            "STUDENT_PROGRESS_VIEW",
            "PARENT_COMMUNICATE",
            "MESSAGE_SEND",
            "LEAVE_APPLY",
            "RESOURCE_UPLOAD",
            "MATERIAL_UPLOAD",
            "TIMETABLE_VIEW",
            "ONLINE_CLASS_CREATE",
        }
    ),
    Role.STUDENT: frozenset(
        {
            "PROFILE_VIEW_OWN",
            "PROFILE_UPDATE_OWN",
            "ASSIGNMENT_VIEW",
            "ASSIGNMENT_SUBMIT",
            "RESULT_VIEW_OWN",
            "ATTENDANCE_VIEW_OWN",
            "FEE_VIEW_OWN",
            "LEAVE_APPLY",
            "LIBRARY_BORROW",
            "LIBRARY_VIEW",
            "EVENT_VIEW",
            "MATERIAL_DOWNLOAD",
            "MESSAGE_SEND",
            "NOTICE_VIEW",
        }
    ),
    Role.PARENT: frozenset(
        {
            "STUDENT_PROGRESS_VIEW",
            "FEE_PAY",
            "FEE_VIEW_CHILD",
            "TEACHER_COMMUNICATE",
            "MESSAGE_SEND",
            "ATTENDANCE_VIEW_CHILD",
            "LEAVE_APPLY_CHILD",
            "MEETING_SCHEDULE",
            "EVENT_VIEW",
            "NOTICE_VIEW",
        }
    ),
    Role.ACCOUNTANT: frozenset(
        {
            "FEE_COLLECT",
            "FEE_VIEW_ALL",
            "FEE_STRUCTURE_VIEW",
            "EXPENSE_MANAGE",
            "EXPENSE_CREATE",
            "EXPENSE_VIEW",
            "SALARY_PROCESS",
            "SALARY_VIEW",
            "FINANCIAL_REPORT_GENERATE",
            "INVOICE_GENERATE",
            "SCHOLARSHIP_MANAGE",
            "DISCOUNT_APPLY",
        }
    ),
}


def permissions_for(role: Role | str) -> frozenset[str]:
    try:
        return ROLE_PERMISSIONS[Role(role)]
    except ValueError:
        return frozenset()


def has_all(granted: Iterable[str], required: Iterable[str]) -> bool:
    granted = set(granted)
    if WILDCARD in granted:
        return True
    return set(required) <= granted


def has_any(granted: Iterable[str], required: Iterable[str]) -> bool:
    granted = set(granted)
    if WILDCARD in granted:
        return True
    return bool(granted.intersection(required))
