import re
import uuid
from datetime import date, datetime, time

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

from .models import DayOfWeek, ParentRelationship, Role

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")
PHONE_PATTERN = re.compile(r"^\+?[0-9]{7,15}$")
HHMM_PATTERN = re.compile(r"^([01][0-9]|2[0-3]):([0-5][0-9])$")


def normalize_email(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.lower().strip()
    if not EMAIL_PATTERN.match(normalized):
        raise ValueError("Invalid email format")
    return normalized


def normalize_phone(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    normalized = value.strip().replace(" ", "").replace("-", "")
    if not PHONE_PATTERN.match(normalized):
        raise ValueError("Invalid phone format")
    return normalized


def parse_hhmm(value) -> time:
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    match = HHMM_PATTERN.match(str(value).strip())
    if not match:
        raise ValueError("Time must be in HH:MM format")
    return time(int(match.group(1)), int(match.group(2)))


def format_hhmm(value: time) -> str:
    return value.strftime("%H:%M")


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


class EmailPhoneMixin(BaseModel):
    @field_validator("email", mode="before", check_fields=False)
    @classmethod
    def _email(cls, value):
        return normalize_email(_blank_to_none(value))

    @field_validator("phone", mode="before", check_fields=False)
    @classmethod
    def _phone(cls, value):
        return normalize_phone(value)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(EmailPhoneMixin):
    email: str | None = None
    phone: str | None = None
    password: str = Field(min_length=8)

    @model_validator(mode="after")
    def _identifier(self):
        if not self.email and not self.phone:
            raise ValueError("email or phone is required")
        return self


class RefreshTokenRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class ForgotPasswordRequest(EmailPhoneMixin):
    email: str


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=1)
    new_password: str = Field(min_length=8)


class ChangePasswordRequest(BaseModel):
    old_password: str = Field(min_length=1)
    new_password: str = Field(min_length=8)


class ProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    first_name: str
    last_name: str
    full_name: str
    date_of_birth: date | None = None
    gender: str | None = None
    address: str | None = None
    profile_image_url: str | None = None
    institution_id: uuid.UUID | None = None


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str | None = None
    phone: str | None = None
    role: Role
    is_active: bool
    last_login_at: datetime | None = None
    profile: ProfileOut | None = None


class TokenOut(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_at: datetime


class LoginOut(TokenOut):
    user: UserOut


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserCreateBase(EmailPhoneMixin):
    email: str
    phone: str | None = None
    password: str = Field(min_length=8)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    institution_id: uuid.UUID | None = None


class RegisterRequest(UserCreateBase):
    role: Role


class TeacherCreate(UserCreateBase):
    qualifications: list[str] = Field(default_factory=list)
    joining_date: date
    department_id: uuid.UUID | None = None


class StudentCreate(UserCreateBase):
    admission_number: str = Field(min_length=1, max_length=50)
    admission_date: date
    roll_number: int | None = None
    class_id: uuid.UUID | None = None
    section_id: uuid.UUID | None = None
    blood_group: str | None = Field(default=None, max_length=5)
    medical_info: str | None = None


class ParentCreate(UserCreateBase):
    occupation: str | None = Field(default=None, max_length=100)
    office_address: str | None = None
    emergency_contact: str | None = Field(default=None, max_length=20)


class AccountantCreate(UserCreateBase):
    qualification: str | None = Field(default=None, max_length=255)
    joining_date: date


class UserUpdate(EmailPhoneMixin):
    email: str | None = None
    phone: str | None = None
    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    is_active: bool | None = None


class UserStatusUpdate(BaseModel):
    is_active: bool


class ProfileUpdate(BaseModel):
    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    date_of_birth: date | None = None
    gender: str | None = Field(default=None, pattern="^(male|female|other)$")
    address: str | None = None
    profile_image_url: str | None = Field(default=None, max_length=500)


class TeacherUpdate(UserUpdate):
    qualifications: list[str] | None = None
    department_id: uuid.UUID | None = None


class StudentUpdate(UserUpdate):
    class_id: uuid.UUID | None = None
    section_id: uuid.UUID | None = None
    roll_number: int | None = None
    blood_group: str | None = Field(default=None, max_length=5)
    medical_info: str | None = None


class ParentUpdate(UserUpdate):
    occupation: str | None = Field(default=None, max_length=100)
    office_address: str | None = None
    emergency_contact: str | None = Field(default=None, max_length=20)


class AccountantUpdate(UserUpdate):
    qualification: str | None = Field(default=None, max_length=255)


class LinkParentRequest(BaseModel):
    parent_id: uuid.UUID
    relationship: ParentRelationship
    is_primary: bool = False


class TeacherOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    institution_id: uuid.UUID
    user_id: uuid.UUID
    qualifications: list[str] = Field(default_factory=list)
    joining_date: date | None = None
    department_id: uuid.UUID | None = None
    user: UserOut


class StudentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    institution_id: uuid.UUID
    user_id: uuid.UUID
    class_id: uuid.UUID | None = None
    section_id: uuid.UUID | None = None
    roll_number: int | None = None
    admission_date: date | None = None
    blood_group: str | None = None
    medical_info: str | None = None
    user: UserOut


class ParentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    institution_id: uuid.UUID
    user_id: uuid.UUID
    occupation: str | None = None
    office_address: str | None = None
    emergency_contact: str | None = None
    user: UserOut


class AccountantOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    institution_id: uuid.UUID
    user_id: uuid.UUID
    qualification: str | None = None
    joining_date: date | None = None
    user: UserOut


class ParentLinkOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    parent_id: uuid.UUID
    student_id: uuid.UUID
    relationship: ParentRelationship = Field(validation_alias=AliasChoices("relationship_type", "relationship"))
    is_primary: bool
    parent: ParentOut | None = None
    student: StudentOut | None = None


# ---------------------------------------------------------------------------
# Institutions
# ---------------------------------------------------------------------------


class InstitutionCreate(EmailPhoneMixin):
    name: str = Field(min_length=2, max_length=255)
    code: str = Field(min_length=2, max_length=50)
    address: str | None = None
    phone: str | None = None
    email: str | None = None
    principal_name: str | None = Field(default=None, max_length=255)
    established_year: int | None = Field(default=None, ge=1800, le=2100)
    logo_url: str | None = Field(default=None, max_length=500)


class InstitutionUpdate(EmailPhoneMixin):
    name: str | None = Field(default=None, min_length=2, max_length=255)
    code: str | None = Field(default=None, min_length=2, max_length=50)
    address: str | None = None
    phone: str | None = None
    email: str | None = None
    principal_name: str | None = Field(default=None, max_length=255)
    established_year: int | None = Field(default=None, ge=1800, le=2100)
    logo_url: str | None = Field(default=None, max_length=500)
    is_active: bool | None = None


class InstitutionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    code: str
    address: str | None = None
    phone: str | None = None
    email: str | None = None
    principal_name: str | None = None
    established_year: int | None = None
    logo_url: str | None = None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class InstitutionStats(BaseModel):
    total_students: int
    total_teachers: int
    total_parents: int
    total_classes: int
    active_users: int


# ---------------------------------------------------------------------------
# Academic structure
# ---------------------------------------------------------------------------


class AcademicYearCreate(BaseModel):
    name: str = Field(min_length=3, max_length=50)
    start_date: date
    end_date: date
    is_current: bool = False
    description: str | None = Field(default=None, max_length=500)


class AcademicYearUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=3, max_length=50)
    start_date: date | None = None
    end_date: date | None = None
    is_current: bool | None = None
    description: str | None = Field(default=None, max_length=500)


class AcademicYearOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    institution_id: uuid.UUID
    name: str
    start_date: date
    end_date: date
    is_current: bool
    description: str | None = None
    created_at: datetime
    updated_at: datetime


class TeacherBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    first_name: str
    last_name: str


class ClassBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str


class SectionBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str


class SubjectBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    code: str | None = None


class ClassCreate(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    class_teacher_id: uuid.UUID | None = None
    capacity: int | None = Field(default=None, ge=1, le=500)


class ClassUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=50)
    class_teacher_id: uuid.UUID | None = None
    capacity: int | None = Field(default=None, ge=1, le=500)


class SectionCreate(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    room_number: str | None = Field(default=None, max_length=20)
    capacity: int | None = Field(default=None, ge=1, le=100)


class SectionUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=50)
    room_number: str | None = Field(default=None, max_length=20)
    capacity: int | None = Field(default=None, ge=1, le=100)


class SectionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    class_id: uuid.UUID
    name: str
    room_number: str | None = None
    capacity: int | None = None
    created_at: datetime
    updated_at: datetime


class ClassOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    institution_id: uuid.UUID
    name: str
    section_count: int
    class_teacher_id: uuid.UUID | None = None
    class_teacher: TeacherBrief | None = None
    capacity: int | None = None
    sections: list[SectionOut] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class SubjectCreate(BaseModel):
    class_id: uuid.UUID | None = None
    teacher_id: uuid.UUID | None = None
    name: str = Field(min_length=1, max_length=100)
    code: str | None = Field(default=None, max_length=20)
    is_elective: bool = False
    credit_hours: float | None = Field(default=None, ge=0, le=10)

    @field_validator("code", mode="before")
    @classmethod
    def _code(cls, value):
        return _blank_to_none(value)


class SubjectUpdate(BaseModel):
    class_id: uuid.UUID | None = None
    teacher_id: uuid.UUID | None = None
    name: str | None = Field(default=None, min_length=1, max_length=100)
    code: str | None = Field(default=None, max_length=20)
    is_elective: bool | None = None
    credit_hours: float | None = Field(default=None, ge=0, le=10)


class AssignTeacherRequest(BaseModel):
    teacher_id: uuid.UUID


class SubjectOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    institution_id: uuid.UUID
    class_id: uuid.UUID | None = None
    teacher_id: uuid.UUID | None = None
    name: str
    code: str | None = None
    is_elective: bool
    credit_hours: float | None = None
    school_class: ClassBrief | None = Field(
        default=None, validation_alias=AliasChoices("school_class", "class"), serialization_alias="class"
    )
    teacher: TeacherBrief | None = None
    created_at: datetime
    updated_at: datetime


class DepartmentCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    head_of_department_id: uuid.UUID | None = None
    description: str | None = Field(default=None, max_length=500)


class DepartmentUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    head_of_department_id: uuid.UUID | None = None
    description: str | None = Field(default=None, max_length=500)


class DepartmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    institution_id: uuid.UUID
    name: str
    head_of_department_id: uuid.UUID | None = None
    head_of_department: TeacherBrief | None = None
    description: str | None = None
    staff_count: int = 0
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Timetable
# ---------------------------------------------------------------------------


class _TimeFields(BaseModel):
    @field_validator("start_time", "end_time", mode="before", check_fields=False)
    @classmethod
    def _hhmm(cls, value):
        if value is None:
            return None
        return parse_hhmm(value)

    @field_validator("room_number", mode="before", check_fields=False)
    @classmethod
    def _room(cls, value):
        value = _blank_to_none(value)
        return value.strip() if isinstance(value, str) else value


class TimetableCreate(_TimeFields):
    academic_year_id: uuid.UUID
    class_id: uuid.UUID
    section_id: uuid.UUID
    subject_id: uuid.UUID
    teacher_id: uuid.UUID
    day_of_week: DayOfWeek
    start_time: time
    end_time: time
    room_number: str | None = Field(default=None, max_length=50)


class TimetableUpdate(_TimeFields):
    academic_year_id: uuid.UUID | None = None
    class_id: uuid.UUID | None = None
    section_id: uuid.UUID | None = None
    subject_id: uuid.UUID | None = None
    teacher_id: uuid.UUID | None = None
    day_of_week: DayOfWeek | None = None
    start_time: time | None = None
    end_time: time | None = None
    room_number: str | None = Field(default=None, max_length=50)
    is_active: bool | None = None


class TimetableOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    institution_id: uuid.UUID
    academic_year_id: uuid.UUID
    class_id: uuid.UUID
    section_id: uuid.UUID
    subject_id: uuid.UUID
    teacher_id: uuid.UUID
    day_of_week: DayOfWeek
    start_time: time
    end_time: time
    room_number: str | None = None
    is_active: bool
    school_class: ClassBrief | None = Field(
        default=None, validation_alias=AliasChoices("school_class", "class"), serialization_alias="class"
    )
    section: SectionBrief | None = None
    subject: SubjectBrief | None = None
    teacher: TeacherBrief | None = None
    created_at: datetime
    updated_at: datetime

    @field_serializer("start_time", "end_time")
    def _hhmm(self, value: time) -> str:
        return format_hhmm(value)


class DayTimetable(BaseModel):
    day: DayOfWeek
    entries: list[TimetableOut]


class WeekTimetable(BaseModel):
    days: list[DayTimetable]
