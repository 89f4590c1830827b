"""
HTTP routes for the preschool administration API.

Organization-scoped routes live under ``/organizations/{org_id}`` and each
declares the (module, action) permission it needs.
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from pydantic import BaseModel

from preschool_api.dependencies import (
    CurrentUser,
    get_current_user,
    get_services,
    get_student_documents,
    require_permission,
)
from preschool_api.documents import StudentDocuments
from preschool_api.schemas import (
    AttendanceRecordRequest,
    AttendanceRollRequest,
    CheckInOutRequest,
    ClassCreate,
    ClassUpdate,
    CurriculumCreate,
    CurriculumUpdate,
    EnrollmentCreate,
    EventCreate,
    GuardianCreate,
    GuardianLinkRequest,
    GuardianUpdate,
    ItemResponse,
    ItemsResponse,
    LessonCreate,
    MealRequest,
    MemberCreate,
    MessageCreate,
    OrganizationCreate,
    OrganizationUpdate,
    PermissionsUpdate,
    ProgramCreate,
    ProgramUpdate,
    PublicRegistrationRequest,
    RoleUpdate,
    StaffCreate,
    StaffScheduleCreate,
    StaffUpdate,
    StatusResponse,
    StorageConfigRequest,
    StudentCreate,
    StudentGuardianCreate,
    StudentUpdate,
    UploadedFileResponse,
    WaitlistApproval,
    WaitlistRejection,
)
from preschool_api.services import PreschoolServices
from preschool_common.errors import NotFoundError
from preschool_common.json_utils import convert_keys

router = APIRouter()

ORG = "/organizations/{org_id}"


def _document(payload: BaseModel) -> dict:
    return convert_keys(payload.model_dump(exclude_unset=True), "snake_to_camel")


def _found(item: Optional[dict], label: str) -> dict:
    if item is None:
        raise NotFoundError(f"{label} not found")
    return item


# Public registration ---------------------------------------------------------


@router.get("/public/organizations", response_model=ItemsResponse)
def list_public_organizations(services: PreschoolServices = Depends(get_services)):
    organizations = services.get_public_organizations()
    # Only what the registration form needs.
    return ItemsResponse(
        items=[{"id": o["id"], "name": o.get("name")} for o in organizations]
    )


@router.post("/public/registrations", response_model=ItemResponse, status_code=201)
def create_public_registration(
    payload: PublicRegistrationRequest,
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(item=services.create_public_registration(_document(payload)))


@router.get(
    "/public/registrations/{org_id}/{student_id}", response_model=ItemResponse
)
def get_registration_status(
    org_id: str, student_id: str, services: PreschoolServices = Depends(get_services)
):
    return ItemResponse(item=services.get_registration_status(org_id, student_id))


# Organizations ---------------------------------------------------------------


@router.post("/organizations", response_model=ItemResponse, status_code=201)
def create_organization(
    payload: OrganizationCreate,
    user: CurrentUser = Depends(get_current_user),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(
        item=services.create_organization(user.uid, _document(payload), user.email)
    )


@router.get("/organizations", response_model=ItemsResponse)
def list_user_organizations(
    user: CurrentUser = Depends(get_current_user),
    services: PreschoolServices = Depends(get_services),
):
    return ItemsResponse(items=services.get_user_organizations(user.uid))


@router.get(ORG, response_model=ItemResponse)
def get_organization(
    org_id: str,
    _: CurrentUser = Depends(require_permission("dashboard", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(item=_found(services.get_organization(org_id), "Organization"))


@router.patch(ORG, response_model=ItemResponse)
def update_organization(
    org_id: str,
    payload: OrganizationUpdate,
    _: CurrentUser = Depends(require_permission("settings", "edit")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(item=services.update_organization(org_id, _document(payload)))


@router.get(ORG + "/me")
def get_my_access(
    org_id: str,
    user: CurrentUser = Depends(get_current_user),
    services: PreschoolServices = Depends(get_services),
):
    access = services.resolve_access(org_id, user.uid, user.email)
    return {
        "role": access.role.value if access.role else None,
        "permissions": access.permissions.as_dict(),
    }


# Students --------------------------------------------------------------------


@router.get(ORG + "/students", response_model=ItemsResponse)
def list_students(
    org_id: str,
    status: Optional[str] = None,
    age_group: Optional[str] = None,
    search: Optional[str] = None,
    _: CurrentUser = Depends(require_permission("students", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemsResponse(
        items=services.get_students(
            org_id, status=status, age_group=age_group, search_term=search
        )
    )


@router.post(ORG + "/students", response_model=ItemResponse, status_code=201)
def create_student(
    org_id: str,
    payload: StudentCreate,
    _: CurrentUser = Depends(require_permission("students", "create")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(item=services.create_student(org_id, _document(payload)))


@router.get(ORG + "/students/{student_id}", response_model=ItemResponse)
def get_student(
    org_id: str,
    student_id: str,
    _: CurrentUser = Depends(require_permission("students", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(item=_found(services.get_student(org_id, student_id), "Student"))


@router.patch(ORG + "/students/{student_id}", response_model=ItemResponse)
def update_student(
    org_id: str,
    student_id: str,
    payload: StudentUpdate,
    _: CurrentUser = Depends(require_permission("students", "edit")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(
        item=services.update_student(org_id, student_id, _document(payload))
    )


@router.delete(ORG + "/students/{student_id}", response_model=StatusResponse)
def delete_student(
    org_id: str,
    student_id: str,
    _: CurrentUser = Depends(require_permission("students", "delete")),
    services: PreschoolServices = Depends(get_services),
):
    services.delete_student(org_id, student_id)
    return StatusResponse()


# Student documents -----------------------------------------------------------


@router.get(ORG + "/storage-config")
def get_storage_status(
    org_id: str,
    _: CurrentUser = Depends(require_permission("settings", "view")),
    documents: StudentDocuments = Depends(get_student_documents),
):
    return {"configured": documents.is_storage_configured(org_id)}


@router.put(ORG + "/storage-config", response_model=StatusResponse)
def configure_storage(
    org_id: str,
    payload: StorageConfigRequest,
    _: CurrentUser = Depends(require_permission("settings", "edit")),
    documents: StudentDocuments = Depends(get_student_documents),
):
    documents.configure_storage(org_id, payload.model_dump(exclude_none=True))
    return StatusResponse()


@router.get(ORG + "/students/{student_id}/documents", response_model=ItemsResponse)
def list_student_documents(
    org_id: str,
    student_id: str,
    _: CurrentUser = Depends(require_permission("students", "view")),
    documents: StudentDocuments = Depends(get_student_documents),
):
    files = documents.get_student_documents(org_id, student_id)
    return ItemsResponse(items=[asdict(f) for f in files])


@router.post(
    ORG + "/students/{student_id}/documents",
    response_model=UploadedFileResponse,
    status_code=201,
)
async def upload_student_document(
    org_id: str,
    student_id: str,
    file: UploadFile = File(...),
    document_type: str = Form(...),
    _: CurrentUser = Depends(require_permission("students", "edit")),
    documents: StudentDocuments = Depends(get_student_documents),
):
    data = await file.read()
    uploaded = documents.upload_student_document(
        org_id,
        student_id,
        filename=file.filename or "",
        data=data,
        content_type=file.content_type or "application/octet-stream",
        document_type=document_type,
    )
    return UploadedFileResponse(**asdict(uploaded))


@router.delete(ORG + "/documents", response_model=StatusResponse)
def delete_student_document(
    org_id: str,
    path: str = Query(...),
    _: CurrentUser = Depends(require_permission("students", "delete")),
    documents: StudentDocuments = Depends(get_student_documents),
):
    documents.delete_student_document(org_id, path)
    return StatusResponse()


# Student guardians, check-ins and meals -------------------------------------


@router.get(ORG + "/students/{student_id}/guardians", response_model=ItemsResponse)
def list_student_guardians(
    org_id: str,
    student_id: str,
    _: CurrentUser = Depends(require_permission("guardians", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemsResponse(items=services.get_student_guardians(org_id, student_id))


@router.post(
    ORG + "/students/{student_id}/guardians",
    response_model=ItemResponse,
    status_code=201,
)
def add_student_guardian(
    org_id: str,
    student_id: str,
    payload: StudentGuardianCreate,
    _: CurrentUser = Depends(require_permission("guardians", "create")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(
        item=services.add_student_guardian(org_id, student_id, _document(payload))
    )


@router.get(ORG + "/students/{student_id}/attendance", response_model=ItemsResponse)
def list_student_attendance(
    org_id: str,
    student_id: str,
    start: date,
    end: date,
    _: CurrentUser = Depends(require_permission("attendance", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemsResponse(
        items=services.get_student_attendance(org_id, student_id, start, end)
    )


@router.post(ORG + "/students/{student_id}/attendance", response_model=ItemResponse)
def record_student_attendance(
    org_id: str,
    student_id: str,
    payload: AttendanceRecordRequest,
    _: CurrentUser = Depends(require_permission("attendance", "create")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(
        item=services.record_attendance(org_id, student_id, _document(payload))
    )


@router.post(ORG + "/students/{student_id}/check-in", response_model=ItemResponse)
def check_in_student(
    org_id: str,
    student_id: str,
    payload: CheckInOutRequest,
    user: CurrentUser = Depends(require_permission("attendance", "create")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(
        item=services.check_in_student(
            org_id, student_id, user.uid, notes=payload.notes or ""
        )
    )


@router.post(ORG + "/students/{student_id}/check-out", response_model=ItemResponse)
def check_out_student(
    org_id: str,
    student_id: str,
    payload: CheckInOutRequest,
    user: CurrentUser = Depends(require_permission("attendance", "create")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(
        item=services.check_out_student(
            org_id, student_id, user.uid, notes=payload.notes
        )
    )


@router.get(ORG + "/students/{student_id}/meals", response_model=ItemsResponse)
def list_student_meals(
    org_id: str,
    student_id: str,
    start: date,
    end: date,
    _: CurrentUser = Depends(require_permission("meals", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemsResponse(
        items=services.get_student_meals(org_id, student_id, start, end)
    )


@router.put(ORG + "/students/{student_id}/meals/{day}", response_model=ItemResponse)
def record_student_meal(
    org_id: str,
    student_id: str,
    day: date,
    payload: MealRequest,
    _: CurrentUser = Depends(require_permission("meals", "create")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(
        item=services.record_student_meal(org_id, student_id, day, _document(payload))
    )


# Staff -----------------------------------------------------------------------


@router.get(ORG + "/staff", response_model=ItemsResponse)
def list_staff(
    org_id: str,
    status: Optional[str] = None,
    department: Optional[str] = None,
    search: Optional[str] = None,
    _: CurrentUser = Depends(require_permission("staff", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemsResponse(
        items=services.get_staff(
            org_id, status=status, department=department, search_term=search
        )
    )


@router.post(ORG + "/staff", response_model=ItemResponse, status_code=201)
def create_staff_member(
    org_id: str,
    payload: StaffCreate,
    _: CurrentUser = Depends(require_permission("staff", "create")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(item=services.create_staff_member(org_id, _document(payload)))


@router.get(ORG + "/staff/{staff_id}", response_model=ItemResponse)
def get_staff_member(
    org_id: str,
    staff_id: str,
    _: CurrentUser = Depends(require_permission("staff", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(
        item=_found(services.get_staff_member(org_id, staff_id), "Staff member")
    )


@router.patch(ORG + "/staff/{staff_id}", response_model=ItemResponse)
def update_staff_member(
    org_id: str,
    staff_id: str,
    payload: StaffUpdate,
    _: CurrentUser = Depends(require_permission("staff", "edit")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(
        item=services.update_staff_member(org_id, staff_id, _document(payload))
    )


@router.delete(ORG + "/staff/{staff_id}", response_model=StatusResponse)
def delete_staff_member(
    org_id: str,
    staff_id: str,
    _: CurrentUser = Depends(require_permission("staff", "delete")),
    services: PreschoolServices = Depends(get_services),
):
    services.delete_staff_member(org_id, staff_id)
    return StatusResponse()


@router.get(ORG + "/staff-schedules", response_model=ItemsResponse)
def list_staff_schedules(
    org_id: str,
    start: date,
    end: date,
    staff_id: Optional[str] = None,
    _: CurrentUser = Depends(require_permission("staff", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemsResponse(
        items=services.get_staff_schedules(org_id, start, end, staff_id=staff_id)
    )


@router.post(ORG + "/staff-schedules", response_model=ItemResponse, status_code=201)
def create_staff_schedule(
    org_id: str,
    payload: StaffScheduleCreate,
    _: CurrentUser = Depends(require_permission("staff", "create")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(
        item=services.create_staff_schedule(org_id, _document(payload))
    )


@router.delete(ORG + "/staff-schedules/{schedule_id}", response_model=StatusResponse)
def delete_staff_schedule(
    org_id: str,
    schedule_id: str,
    _: CurrentUser = Depends(require_permission("staff", "delete")),
    services: PreschoolServices = Depends(get_services),
):
    services.delete_staff_schedule(org_id, schedule_id)
    return StatusResponse()


# Curriculum ------------------------------------------------------------------


@router.get(ORG + "/curriculum", response_model=ItemsResponse)
def list_curriculum(
    org_id: str,
    status: Optional[str] = None,
    age_group: Optional[str] = None,
    subject: Optional[str] = None,
    search: Optional[str] = None,
    _: CurrentUser = Depends(require_permission("curriculum", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemsResponse(
        items=services.get_curriculum(
            org_id,
            status=status,
            age_group=age_group,
            subject=subject,
            search_term=search,
        )
    )


@router.post(ORG + "/curriculum", response_model=ItemResponse, status_code=201)
def create_curriculum_item(
    org_id: str,
    payload: CurriculumCreate,
    user: CurrentUser = Depends(require_permission("curriculum", "create")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(
        item=services.create_curriculum_item(org_id, _document(payload), user.uid)
    )


@router.get(ORG + "/curriculum/{item_id}", response_model=ItemResponse)
def get_curriculum_item(
    org_id: str,
    item_id: str,
    _: CurrentUser = Depends(require_permission("curriculum", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(
        item=_found(services.get_curriculum_item(org_id, item_id), "Curriculum item")
    )


@router.patch(ORG + "/curriculum/{item_id}", response_model=ItemResponse)
def update_curriculum_item(
    org_id: str,
    item_id: str,
    payload: CurriculumUpdate,
    _: CurrentUser = Depends(require_permission("curriculum", "edit")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(
        item=services.update_curriculum_item(org_id, item_id, _document(payload))
    )


@router.delete(ORG + "/curriculum/{item_id}", response_model=StatusResponse)
def delete_curriculum_item(
    org_id: str,
    item_id: str,
    _: CurrentUser = Depends(require_permission("curriculum", "delete")),
    services: PreschoolServices = Depends(get_services),
):
    services.delete_curriculum_item(org_id, item_id)
    return StatusResponse()


# Classes and enrollments -----------------------------------------------------


@router.get(ORG + "/classes", response_model=ItemsResponse)
def list_classes(
    org_id: str,
    status: Optional[str] = None,
    age_group: Optional[str] = None,
    search: Optional[str] = None,
    page: Optional[int] = Query(default=None, ge=1),
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    _: CurrentUser = Depends(require_permission("classes", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemsResponse(
        items=services.get_classes(
            org_id,
            status=status,
            age_group=age_group,
            search_term=search,
            page=page,
            limit=limit,
        )
    )


@router.post(ORG + "/classes", response_model=ItemResponse, status_code=201)
def create_class(
    org_id: str,
    payload: ClassCreate,
    _: CurrentUser = Depends(require_permission("classes", "create")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(item=services.create_class(org_id, _document(payload)))


@router.get(ORG + "/classes/{class_id}", response_model=ItemResponse)
def get_class(
    org_id: str,
    class_id: str,
    _: CurrentUser = Depends(require_permission("classes", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(item=_found(services.get_class(org_id, class_id), "Class"))


@router.patch(ORG + "/classes/{class_id}", response_model=ItemResponse)
def update_class(
    org_id: str,
    class_id: str,
    payload: ClassUpdate,
    _: CurrentUser = Depends(require_permission("classes", "edit")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(
        item=services.update_class(org_id, class_id, _document(payload))
    )


@router.delete(ORG + "/classes/{class_id}", response_model=StatusResponse)
def delete_class(
    org_id: str,
    class_id: str,
    _: CurrentUser = Depends(require_permission("classes", "delete")),
    services: PreschoolServices = Depends(get_services),
):
    services.delete_class(org_id, class_id)
    return StatusResponse()


@router.get(ORG + "/classes/{class_id}/enrollments", response_model=ItemsResponse)
def list_class_enrollments(
    org_id: str,
    class_id: str,
    _: CurrentUser = Depends(require_permission("classes", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemsResponse(items=services.get_class_enrollments(org_id, class_id))


@router.put(
    ORG + "/classes/{class_id}/enrollments/{student_id}", response_model=ItemResponse
)
def enroll_student(
    org_id: str,
    class_id: str,
    student_id: str,
    payload: EnrollmentCreate,
    _: CurrentUser = Depends(require_permission("classes", "edit")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(
        item=services.enroll_student(org_id, class_id, student_id, _document(payload))
    )


@router.delete(
    ORG + "/classes/{class_id}/enrollments/{student_id}", response_model=StatusResponse
)
def unenroll_student(
    org_id: str,
    class_id: str,
    student_id: str,
    hard_delete: bool = False,
    _: CurrentUser = Depends(require_permission("classes", "edit")),
    services: PreschoolServices = Depends(get_services),
):
    services.unenroll_student(org_id, class_id, student_id, hard_delete=hard_delete)
    return StatusResponse()


@router.get(ORG + "/teachers/{teacher_id}/classes", response_model=ItemsResponse)
def list_teacher_classes(
    org_id: str,
    teacher_id: str,
    _: CurrentUser = Depends(require_permission("classes", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemsResponse(items=services.get_teacher_classes(org_id, teacher_id))


# Programs --------------------------------------------------------------------


@router.get(ORG + "/programs", response_model=ItemsResponse)
def list_programs(
    org_id: str,
    status: Optional[str] = None,
    age_range: Optional[str] = None,
    search: Optional[str] = None,
    page: Optional[int] = Query(default=None, ge=1),
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    _: CurrentUser = Depends(require_permission("classes", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemsResponse(
        items=services.get_programs(
            org_id,
            status=status,
            age_range=age_range,
            search_term=search,
            page=page,
            limit=limit,
        )
    )


@router.post(ORG + "/programs", response_model=ItemResponse, status_code=201)
def create_program(
    org_id: str,
    payload: ProgramCreate,
    _: CurrentUser = Depends(require_permission("classes", "create")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(item=services.create_program(org_id, _document(payload)))


@router.get(ORG + "/programs/{program_id}", response_model=ItemResponse)
def get_program(
    org_id: str,
    program_id: str,
    _: CurrentUser = Depends(require_permission("classes", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(
        item=_found(services.get_program(org_id, program_id), "Program")
    )


@router.patch(ORG + "/programs/{program_id}", response_model=ItemResponse)
def update_program(
    org_id: str,
    program_id: str,
    payload: ProgramUpdate,
    _: CurrentUser = Depends(require_permission("classes", "edit")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(
        item=services.update_program(org_id, program_id, _document(payload))
    )


@router.delete(ORG + "/programs/{program_id}", response_model=StatusResponse)
def delete_program(
    org_id: str,
    program_id: str,
    _: CurrentUser = Depends(require_permission("classes", "delete")),
    services: PreschoolServices = Depends(get_services),
):
    services.delete_program(org_id, program_id)
    return StatusResponse()


# Guardians and parents -------------------------------------------------------


@router.get(ORG + "/guardians", response_model=ItemsResponse)
def get_guardian_directory(
    org_id: str,
    _: CurrentUser = Depends(require_permission("guardians", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemsResponse(items=services.get_guardian_directory(org_id))


@router.get(ORG + "/guardians/search", response_model=ItemsResponse)
def search_guardians(
    org_id: str,
    q: str = Query(..., min_length=1),
    _: CurrentUser = Depends(require_permission("guardians", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemsResponse(items=services.search_guardians(org_id, q))


@router.post(ORG + "/guardians", response_model=ItemResponse, status_code=201)
def create_guardian(
    org_id: str,
    payload: GuardianCreate,
    _: CurrentUser = Depends(require_permission("guardians", "create")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(item=services.create_guardian(org_id, _document(payload)))


@router.get(ORG + "/guardians/{guardian_id}", response_model=ItemResponse)
def get_guardian(
    org_id: str,
    guardian_id: str,
    _: CurrentUser = Depends(require_permission("guardians", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(
        item=_found(services.get_guardian(org_id, guardian_id), "Guardian")
    )


@router.patch(ORG + "/guardians/{guardian_id}", response_model=ItemResponse)
def update_guardian(
    org_id: str,
    guardian_id: str,
    payload: GuardianUpdate,
    _: CurrentUser = Depends(require_permission("guardians", "edit")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(
        item=services.update_guardian(org_id, guardian_id, _document(payload))
    )


@router.post(ORG + "/guardians/{guardian_id}/students", response_model=ItemResponse)
def link_guardian_student(
    org_id: str,
    guardian_id: str,
    payload: GuardianLinkRequest,
    _: CurrentUser = Depends(require_permission("guardians", "edit")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(
        item=services.link_guardian_student(org_id, guardian_id, payload.student_id)
    )


@router.get(ORG + "/parents/{parent_id}/students", response_model=ItemsResponse)
def list_parent_students(
    org_id: str,
    parent_id: str,
    _: CurrentUser = Depends(require_permission("students", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemsResponse(items=services.get_parent_students(org_id, parent_id))


@router.get(ORG + "/parents/{parent_id}/children", response_model=ItemsResponse)
def list_parent_children(
    org_id: str,
    parent_id: str,
    _: CurrentUser = Depends(require_permission("students", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemsResponse(items=services.get_parent_children(org_id, parent_id))


@router.get(ORG + "/parents/{parent_id}/attendance", response_model=ItemsResponse)
def list_children_attendance(
    org_id: str,
    parent_id: str,
    day: date = Query(..., alias="date"),
    _: CurrentUser = Depends(require_permission("attendance", "view")),
    services: PreschoolServices = Depends(get_services),
):
    children = services.get_parent_children(org_id, parent_id)
    return ItemsResponse(
        items=services.get_children_attendance(
            org_id, [c["id"] for c in children], day
        )
    )


# Attendance ------------------------------------------------------------------


@router.get(ORG + "/attendance/{day}/{class_id}", response_model=ItemResponse)
def get_attendance(
    org_id: str,
    day: date,
    class_id: str,
    _: CurrentUser = Depends(require_permission("attendance", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(item=services.get_attendance(org_id, day, class_id))


@router.put(ORG + "/attendance/{day}/{class_id}", response_model=ItemResponse)
def save_attendance(
    org_id: str,
    day: date,
    class_id: str,
    payload: AttendanceRollRequest,
    user: CurrentUser = Depends(require_permission("attendance", "create")),
    services: PreschoolServices = Depends(get_services),
):
    # Student IDs are map keys and must not be case-converted.
    data: dict = {
        "students": {
            student_id: convert_keys(
                entry.model_dump(exclude_none=True), "snake_to_camel"
            )
            for student_id, entry in payload.students.items()
        }
    }
    if payload.notes is not None:
        data["notes"] = payload.notes
    return ItemResponse(
        item=services.save_attendance(org_id, day, class_id, data, user_id=user.uid)
    )


@router.get(ORG + "/attendance-stats", response_model=ItemResponse)
def get_attendance_stats(
    org_id: str,
    start: date,
    end: date,
    class_id: Optional[str] = None,
    _: CurrentUser = Depends(require_permission("reports", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(
        item=services.get_attendance_stats(org_id, start, end, class_id=class_id)
    )


@router.get(ORG + "/checkin-board", response_model=ItemsResponse)
def get_checkin_board(
    org_id: str,
    day: Optional[date] = Query(default=None, alias="date"),
    _: CurrentUser = Depends(require_permission("attendance", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemsResponse(
        items=services.get_checkin_board(org_id, day or services.now().date())
    )


# Meals -----------------------------------------------------------------------


@router.get(ORG + "/meal-plans/{day}", response_model=ItemResponse)
def get_meal_plan(
    org_id: str,
    day: date,
    _: CurrentUser = Depends(require_permission("meals", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(item=services.get_meal_plan(org_id, day))


@router.put(ORG + "/meal-plans/{day}", response_model=ItemResponse)
def save_meal_plan(
    org_id: str,
    day: date,
    payload: MealRequest,
    _: CurrentUser = Depends(require_permission("meals", "create")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(item=services.save_meal_plan(org_id, day, _document(payload)))


@router.get(ORG + "/meal-report", response_model=ItemResponse)
def get_daily_meal_report(
    org_id: str,
    day: Optional[date] = Query(default=None, alias="date"),
    _: CurrentUser = Depends(require_permission("meals", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(
        item=services.get_daily_meal_report(org_id, day or services.now().date())
    )


# Calendar --------------------------------------------------------------------


@router.post(ORG + "/events", response_model=ItemResponse, status_code=201)
def create_event(
    org_id: str,
    payload: EventCreate,
    _: CurrentUser = Depends(require_permission("calendar", "create")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(item=services.create_event(org_id, _document(payload)))


@router.get(ORG + "/events/upcoming", response_model=ItemsResponse)
def list_upcoming_events(
    org_id: str,
    _: CurrentUser = Depends(require_permission("calendar", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemsResponse(items=services.get_upcoming_events(org_id))


@router.post(ORG + "/lessons", response_model=ItemResponse, status_code=201)
def create_lesson(
    org_id: str,
    payload: LessonCreate,
    _: CurrentUser = Depends(require_permission("calendar", "create")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(item=services.create_lesson(org_id, _document(payload)))


@router.get(ORG + "/teachers/{teacher_id}/lessons", response_model=ItemsResponse)
def list_teacher_lessons(
    org_id: str,
    teacher_id: str,
    _: CurrentUser = Depends(require_permission("calendar", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemsResponse(items=services.get_teacher_lessons(org_id, teacher_id))


# Waitlist --------------------------------------------------------------------


@router.get(ORG + "/waitlist", response_model=ItemsResponse)
def list_waitlist(
    org_id: str,
    _: CurrentUser = Depends(require_permission("students", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemsResponse(items=services.get_waitlist(org_id))


@router.post(ORG + "/waitlist/{student_id}/approve", response_model=ItemResponse)
def approve_waitlist_entry(
    org_id: str,
    student_id: str,
    payload: WaitlistApproval,
    _: CurrentUser = Depends(require_permission("students", "edit")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(
        item=services.approve_waitlist_entry(
            org_id, student_id, payload.class_id, payload.start_date
        )
    )


@router.post(ORG + "/waitlist/{student_id}/reject", response_model=StatusResponse)
def reject_waitlist_entry(
    org_id: str,
    student_id: str,
    payload: WaitlistRejection,
    _: CurrentUser = Depends(require_permission("students", "edit")),
    services: PreschoolServices = Depends(get_services),
):
    services.reject_waitlist_entry(org_id, student_id, payload.reason)
    return StatusResponse()


# Notifications and messages --------------------------------------------------


@router.get(ORG + "/notifications", response_model=ItemsResponse)
def list_notifications(
    org_id: str,
    unread_only: bool = False,
    _: CurrentUser = Depends(require_permission("dashboard", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemsResponse(
        items=services.get_notifications(org_id, unread_only=unread_only)
    )


@router.post(
    ORG + "/notifications/{notification_id}/read", response_model=StatusResponse
)
def mark_notification_read(
    org_id: str,
    notification_id: str,
    _: CurrentUser = Depends(require_permission("dashboard", "view")),
    services: PreschoolServices = Depends(get_services),
):
    services.mark_notification_read(org_id, notification_id)
    return StatusResponse()


@router.get(ORG + "/messages", response_model=ItemsResponse)
def list_messages(
    org_id: str,
    search: Optional[str] = None,
    _: CurrentUser = Depends(require_permission("messages", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemsResponse(items=services.get_messages(org_id, search_term=search))


@router.get(ORG + "/messages/unread-count")
def count_unread_messages(
    org_id: str,
    _: CurrentUser = Depends(require_permission("messages", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return {"count": services.count_unread_messages(org_id)}


@router.post(ORG + "/messages", response_model=ItemResponse, status_code=201)
def send_message(
    org_id: str,
    payload: MessageCreate,
    user: CurrentUser = Depends(require_permission("messages", "create")),
    services: PreschoolServices = Depends(get_services),
):
    sender = {
        "id": user.uid,
        "name": payload.sender_name or user.email or user.uid,
        "role": payload.sender_role,
    }
    return ItemResponse(
        item=services.send_message(
            org_id,
            sender,
            [r.model_dump() for r in payload.recipients],
            payload.subject,
            payload.content,
        )
    )


@router.post(ORG + "/messages/{message_id}/read", response_model=StatusResponse)
def mark_message_read(
    org_id: str,
    message_id: str,
    _: CurrentUser = Depends(require_permission("messages", "view")),
    services: PreschoolServices = Depends(get_services),
):
    services.mark_message_read(org_id, message_id)
    return StatusResponse()


@router.delete(ORG + "/messages/{message_id}", response_model=StatusResponse)
def delete_message(
    org_id: str,
    message_id: str,
    _: CurrentUser = Depends(require_permission("messages", "delete")),
    services: PreschoolServices = Depends(get_services),
):
    services.delete_message(org_id, message_id)
    return StatusResponse()


# Members and permissions -----------------------------------------------------


@router.get(ORG + "/members", response_model=ItemsResponse)
def list_members(
    org_id: str,
    _: CurrentUser = Depends(require_permission("permissions", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemsResponse(items=services.get_members(org_id))


@router.post(ORG + "/members", response_model=ItemResponse, status_code=201)
def create_member(
    org_id: str,
    payload: MemberCreate,
    _: CurrentUser = Depends(require_permission("permissions", "create")),
    services: PreschoolServices = Depends(get_services),
):
    return ItemResponse(
        item=services.create_member(
            org_id,
            payload.user_id,
            payload.role,
            email=payload.email,
            full_name=payload.full_name,
        )
    )


@router.get(ORG + "/members/{user_id}/permissions")
def get_user_permissions(
    org_id: str,
    user_id: str,
    _: CurrentUser = Depends(require_permission("permissions", "view")),
    services: PreschoolServices = Depends(get_services),
):
    return services.get_user_permissions(org_id, user_id)


@router.put(ORG + "/members/{user_id}/role", response_model=StatusResponse)
def update_user_role(
    org_id: str,
    user_id: str,
    payload: RoleUpdate,
    _: CurrentUser = Depends(require_permission("permissions", "edit")),
    services: PreschoolServices = Depends(get_services),
):
    services.update_user_role(
        org_id, user_id, payload.role, reset_permissions=payload.reset_permissions
    )
    return StatusResponse()


@router.put(ORG + "/members/{user_id}/permissions", response_model=StatusResponse)
def update_user_permissions(
    org_id: str,
    user_id: str,
    payload: PermissionsUpdate,
    _: CurrentUser = Depends(require_permission("permissions", "edit")),
    services: PreschoolServices = Depends(get_services),
):
    permissions = {
        module: flags.model_dump() for module, flags in payload.permissions.items()
    }
    services.update_user_permissions(
        org_id, user_id, permissions, merge=payload.merge
    )
    return StatusResponse()
