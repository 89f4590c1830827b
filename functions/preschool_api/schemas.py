"""
Pydantic schemas for the preschool FastAPI service.

Request bodies use snake_case; routes convert them to the camelCase field
names stored in documents. Extra fields on entity payloads are kept.
"""

from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from preschool_common.constants import MAX_MESSAGE_SUBJECT_LENGTH


class DocumentPayload(BaseModel):
    model_config = ConfigDict(extra="allow")


class ItemResponse(BaseModel):
    item: Optional[Dict[str, Any]] = None


class ItemsResponse(BaseModel):
    items: List[Dict[str, Any]]


class StatusResponse(BaseModel):
    status: str = "ok"


# Organizations -------------------------------------------------------------


class OrganizationCreate(DocumentPayload):
    name: str
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    allow_public_registration: bool = False


class OrganizationUpdate(DocumentPayload):
    name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    allow_public_registration: Optional[bool] = None


# Students and staff --------------------------------------------------------


class StudentCreate(DocumentPayload):
    first_name: str
    last_name: str
    date_of_birth: Optional[str] = None
    age_group: Optional[str] = None
    status: Optional[str] = None
    guardian_id: Optional[str] = None
    guardian_name: Optional[str] = None
    guardian_email: Optional[str] = None
    guardian_phone: Optional[str] = None
    allergies: Optional[List[str]] = None
    notes: Optional[str] = None


class StudentUpdate(DocumentPayload):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    date_of_birth: Optional[str] = None
    age_group: Optional[str] = None
    status: Optional[str] = None
    guardian_id: Optional[str] = None
    guardian_name: Optional[str] = None
    notes: Optional[str] = None


class StaffCreate(DocumentPayload):
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    position: Optional[str] = None
    department: Optional[str] = None
    status: Optional[str] = None


class StaffUpdate(DocumentPayload):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    position: Optional[str] = None
    department: Optional[str] = None
    status: Optional[str] = None


class StaffScheduleCreate(BaseModel):
    staff_id: str
    date: dt.date
    shift_start: str = Field(..., pattern=r"^\d{2}:\d{2}$")
    shift_end: str = Field(..., pattern=r"^\d{2}:\d{2}$")
    notes: Optional[str] = None


# Curriculum, classes, programs --------------------------------------------


class CurriculumCreate(DocumentPayload):
    title: str
    age_group: str
    subject: Optional[str] = None
    description: Optional[str] = None
    objectives: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    status: Optional[Literal["draft", "published", "archived"]] = None


class CurriculumUpdate(DocumentPayload):
    title: Optional[str] = None
    age_group: Optional[str] = None
    subject: Optional[str] = None
    description: Optional[str] = None
    objectives: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    status: Optional[Literal["draft", "published", "archived"]] = None


class ClassCreate(DocumentPayload):
    name: str
    age_group: str
    teacher_id: Optional[str] = None
    room: Optional[str] = None
    capacity: Optional[int] = None
    status: Optional[str] = None
    active: Optional[bool] = None


class ClassUpdate(DocumentPayload):
    name: Optional[str] = None
    age_group: Optional[str] = None
    teacher_id: Optional[str] = None
    room: Optional[str] = None
    capacity: Optional[int] = None
    status: Optional[str] = None
    active: Optional[bool] = None


class EnrollmentCreate(DocumentPayload):
    start_date: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None


class ProgramCreate(DocumentPayload):
    name: str
    start_date: str
    end_date: str
    age_range: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    active: Optional[bool] = None


class ProgramUpdate(DocumentPayload):
    name: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    age_range: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    active: Optional[bool] = None


# Guardians -----------------------------------------------------------------


class StudentGuardianCreate(DocumentPayload):
    user_id: Optional[str] = None
    full_name: Optional[str] = None
    relationship: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class GuardianCreate(DocumentPayload):
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    student_ids: List[str] = Field(default_factory=list)


class GuardianUpdate(DocumentPayload):
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class GuardianLinkRequest(BaseModel):
    student_id: str


# Attendance ----------------------------------------------------------------


class AttendanceEntry(DocumentPayload):
    status: Literal["present", "absent", "tardy", "excused"]
    timestamp: Optional[str] = None
    notes: Optional[str] = None
    recorded_by: Optional[str] = None


class AttendanceRollRequest(BaseModel):
    # Keyed by student ID.
    students: Dict[str, AttendanceEntry] = Field(default_factory=dict)
    notes: Optional[str] = None


class AttendanceRecordRequest(BaseModel):
    date: dt.date
    check_in: Optional[str] = None
    check_in_by: Optional[str] = None
    check_out: Optional[str] = None
    check_out_by: Optional[str] = None
    notes: Optional[str] = None


class CheckInOutRequest(BaseModel):
    notes: Optional[str] = None


# Meals and calendar --------------------------------------------------------


class MealRequest(DocumentPayload):
    breakfast: Optional[str] = None
    lunch: Optional[str] = None
    snack: Optional[str] = None
    notes: Optional[str] = None


class EventCreate(DocumentPayload):
    title: str
    date: dt.date
    description: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    location: Optional[str] = None


class LessonCreate(DocumentPayload):
    title: str
    teacher_id: str
    date: dt.date
    class_id: Optional[str] = None
    description: Optional[str] = None


# Waitlist and public registration -----------------------------------------


class PublicRegistrationRequest(DocumentPayload):
    organization_id: str
    first_name: str
    last_name: str
    date_of_birth: Optional[str] = None
    age_group: Optional[str] = None
    guardian_name: Optional[str] = None
    guardian_email: Optional[str] = None
    guardian_phone: Optional[str] = None
    notes: Optional[str] = None


class WaitlistApproval(BaseModel):
    class_id: str
    start_date: str


class WaitlistRejection(BaseModel):
    reason: str = ""


# Messages ------------------------------------------------------------------


class MessageParticipant(BaseModel):
    id: str
    name: str
    role: Optional[str] = None


class MessageCreate(BaseModel):
    recipients: List[MessageParticipant]
    subject: str = Field(..., max_length=MAX_MESSAGE_SUBJECT_LENGTH)
    content: str
    sender_name: Optional[str] = None
    sender_role: Optional[str] = None


# Members, permissions and storage -----------------------------------------


class ModulePermissionModel(BaseModel):
    view: bool = False
    create: bool = False
    edit: bool = False
    delete: bool = False


class MemberCreate(BaseModel):
    user_id: str
    role: Literal["admin", "teacher", "staff", "parent"]
    email: Optional[str] = None
    full_name: Optional[str] = None


class RoleUpdate(BaseModel):
    role: Literal["admin", "teacher", "staff", "parent"]
    reset_permissions: bool = False


class PermissionsUpdate(BaseModel):
    permissions: Dict[str, ModulePermissionModel]
    merge: bool = False


class StorageConfigRequest(DocumentPayload):
    type: Literal["google", "firebase"]
    bucket: Optional[str] = None


class UploadedFileResponse(BaseModel):
    name: str
    url: str
    type: str
    size: int
    path: str
