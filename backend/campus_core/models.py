import enum
import uuid
from datetime import date, datetime, time, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, Query, mapped_column, relationship

from .database import Base


def utcnow() -> datetime:
    # Stored naive, always UTC.
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Role(str, enum.Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    TEACHER = "TEACHER"
    STUDENT = "STUDENT"
    PARENT = "PARENT"
    ACCOUNTANT = "ACCOUNTANT"


class DayOfWeek(str, enum.Enum):
    SUNDAY = "SUNDAY"
    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"

    @property
    def order(self) -> int:
        return list(DayOfWeek).index(self)


class ParentRelationship(str, enum.Enum):
    FATHER = "father"
    MOTHER = "mother"
    GUARDIAN = "guardian"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class SoftDeleteMixin:
    """Rows are never physically removed; ``deleted_at`` marks them gone.

    Every read must go through :func:`not_deleted` (or filter the column
    itself) so deleted rows stay invisible.
    """

    deleted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)

    def soft_delete(self) -> None:
        self.deleted_at = utcnow()


def not_deleted(query: Query, model) -> Query:
    return query.filter(model.deleted_at.is_(None))


def _uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(Uuid, primary_key=True, default=uuid.uuid4)


class Institution(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "institutions"

    id: Mapped[uuid.UUID] = _uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    principal_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    established_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    logo_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class User(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = _uuid_pk()
    email: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True, index=True)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[Role] = mapped_column(Enum(Role, native_enum=False, length=20), nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    refresh_token: Mapped[str | None] = mapped_column(String(500), nullable=True)
    reset_token: Mapped[str | None] = mapped_column(String(500), nullable=True)
    reset_token_expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    profile: Mapped["UserProfile"] = relationship(back_populates="user", uselist=False)

    @property
    def institution_id(self) -> uuid.UUID | None:
        return self.profile.institution_id if self.profile else None


class UserProfile(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "user_profiles"

    id: Mapped[uuid.UUID] = _uuid_pk()
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), unique=True, nullable=False)
    institution_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("institutions.id"), nullable=True, index=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    gender: Mapped[str | None] = mapped_column(String(10), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    profile_image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    employee_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    admission_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    occupation: Mapped[str | None] = mapped_column(String(100), nullable=True)

    user: Mapped[User] = relationship(back_populates="profile")

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


class PersonMixin:
    """Name accessors for role records, read through the owning user's profile."""

    @property
    def first_name(self) -> str:
        profile = self.user.profile if self.user else None
        return profile.first_name if profile else ""

    @property
    def last_name(self) -> str:
        profile = self.user.profile if self.user else None
        return profile.last_name if profile else ""


class Teacher(PersonMixin, TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "teachers"

    id: Mapped[uuid.UUID] = _uuid_pk()
    institution_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("institutions.id"), nullable=False, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), unique=True, nullable=False)
    qualifications: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    joining_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    department_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("departments.id"), nullable=True, index=True)

    user: Mapped[User] = relationship()


class Student(PersonMixin, TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "students"

    id: Mapped[uuid.UUID] = _uuid_pk()
    institution_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("institutions.id"), nullable=False, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), unique=True, nullable=False)
    class_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("classes.id"), nullable=True, index=True)
    section_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("sections.id"), nullable=True, index=True)
    roll_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    admission_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    blood_group: Mapped[str | None] = mapped_column(String(5), nullable=True)
    medical_info: Mapped[str | None] = mapped_column(Text, nullable=True)

    user: Mapped[User] = relationship()


class Parent(PersonMixin, TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "parents"

    id: Mapped[uuid.UUID] = _uuid_pk()
    institution_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("institutions.id"), nullable=False, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), unique=True, nullable=False)
    occupation: Mapped[str | None] = mapped_column(String(100), nullable=True)
    office_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    emergency_contact: Mapped[str | None] = mapped_column(String(20), nullable=True)

    user: Mapped[User] = relationship()


class Accountant(PersonMixin, TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "accountants"

    id: Mapped[uuid.UUID] = _uuid_pk()
    institution_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("institutions.id"), nullable=False, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), unique=True, nullable=False)
    qualification: Mapped[str | None] = mapped_column(String(255), nullable=True)
    joining_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    user: Mapped[User] = relationship()


class ParentStudentRelation(TimestampMixin, Base):
    __tablename__ = "parent_student_relations"
    __table_args__ = (UniqueConstraint("parent_id", "student_id", name="uq_parent_student"),)

    id: Mapped[uuid.UUID] = _uuid_pk()
    parent_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("parents.id"), nullable=False, index=True)
    student_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("students.id"), nullable=False, index=True)
    relationship_type: Mapped[ParentRelationship] = mapped_column(
        "relationship", Enum(ParentRelationship, native_enum=False, length=20), nullable=False
    )
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    parent: Mapped[Parent] = relationship()
    student: Mapped[Student] = relationship()


class AcademicYear(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "academic_years"

    id: Mapped[uuid.UUID] = _uuid_pk()
    institution_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("institutions.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_current: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)


class Department(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "departments"

    id: Mapped[uuid.UUID] = _uuid_pk()
    institution_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("institutions.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    head_of_department_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("teachers.id", use_alter=True, name="fk_department_head"), nullable=True
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    head_of_department: Mapped[Teacher | None] = relationship(foreign_keys=[head_of_department_id])


class SchoolClass(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "classes"

    id: Mapped[uuid.UUID] = _uuid_pk()
    institution_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("institutions.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    section_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    class_teacher_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("teachers.id"), nullable=True)
    capacity: Mapped[int | None] = mapped_column(Integer, nullable=True)

    class_teacher: Mapped[Teacher | None] = relationship()
    sections: Mapped[list["Section"]] = relationship(
        primaryjoin="and_(SchoolClass.id == Section.class_id, Section.deleted_at.is_(None))",
        order_by="Section.name",
        viewonly=True,
    )


class Section(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "sections"

    id: Mapped[uuid.UUID] = _uuid_pk()
    class_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("classes.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    room_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    capacity: Mapped[int | None] = mapped_column(Integer, nullable=True)

    school_class: Mapped[SchoolClass] = relationship()


class Subject(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "subjects"

    id: Mapped[uuid.UUID] = _uuid_pk()
    institution_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("institutions.id"), nullable=False, index=True)
    class_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("classes.id"), nullable=True, index=True)
    teacher_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("teachers.id"), nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_elective: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    credit_hours: Mapped[float | None] = mapped_column(Numeric(4, 2, asdecimal=False), nullable=True)

    school_class: Mapped[SchoolClass | None] = relationship()
    teacher: Mapped[Teacher | None] = relationship()


class TimetableEntry(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "timetables"

    id: Mapped[uuid.UUID] = _uuid_pk()
    institution_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("institutions.id"), nullable=False, index=True)
    academic_year_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("academic_years.id"), nullable=False, index=True)
    class_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("classes.id"), nullable=False, index=True)
    section_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("sections.id"), nullable=False, index=True)
    subject_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("subjects.id"), nullable=False, index=True)
    teacher_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("teachers.id"), nullable=False, index=True)
    day_of_week: Mapped[DayOfWeek] = mapped_column(Enum(DayOfWeek, native_enum=False, length=20), nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    room_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    academic_year: Mapped[AcademicYear] = relationship()
    school_class: Mapped[SchoolClass] = relationship()
    section: Mapped[Section] = relationship()
    subject: Mapped[Subject] = relationship()
    teacher: Mapped[Teacher] = relationship()
