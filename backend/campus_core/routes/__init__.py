from .academic import classes_router, departments_router, sections_router, subjects_router, years_router
from .auth import router as auth_router
from .health import router as health_router
from .institutions import router as institutions_router
from .members import accountants_router, parents_router, students_router, teachers_router
from .timetable import router as timetable_router
from .users import profile_router
from .users import router as users_router

ROUTERS = [
    auth_router,
    users_router,
    profile_router,
    institutions_router,
    teachers_router,
    students_router,
    parents_router,
    accountants_router,
    years_router,
    classes_router,
    sections_router,
    subjects_router,
    departments_router,
    timetable_router,
]

__all__ = ["ROUTERS", "health_router"]
