"""
Data-access façade for the preschool administration API.

Every operation is a handful of sequential document store calls. Records
are returned as plain dicts of the shape ``{"id": ..., **fields}`` with
camelCase field names, the way they are stored.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time as dt_time, timezone
from typing import Any, Callable, Iterable, Optional, Sequence

from preschool_api.attendance import daily_stat, iter_days, stats_as_dict, summarize
from preschool_api.store import DocumentStore, Filter
from preschool_common.constants import (
    ATTENDANCE_COLLECTION,
    CLASSES_COLLECTION,
    CURRICULUM_COLLECTION,
    DATE_FORMAT,
    DEFAULT_ADMIN_EMAILS,
    ENROLLMENTS_COLLECTION,
    EVENTS_COLLECTION,
    GUARDIAN_SEARCH_LIMIT,
    GUARDIANS_COLLECTION,
    LESSONS_COLLECTION,
    MAX_MESSAGE_CONTENT_LENGTH,
    MAX_MESSAGE_SUBJECT_LENGTH,
    MEAL_PLANS_COLLECTION,
    MEALS_COLLECTION,
    MEMBERS_COLLECTION,
    MESSAGES_COLLECTION,
    NOTIFICATIONS_COLLECTION,
    ORGANIZATIONS_COLLECTION,
    PREFIX_SEARCH_SENTINEL,
    PROGRAMS_COLLECTION,
    STAFF_COLLECTION,
    STAFF_SCHEDULES_COLLECTION,
    STUDENTS_COLLECTION,
    TIME_FORMAT,
    UPCOMING_LIMIT,
    USERS_COLLECTION,
    WAITLIST_COLLECTION,
)
from preschool_common.errors import NotFoundError, ValidationError
from preschool_common.permissions import (
    Access,
    default_permissions,
    merge_permissions,
    parse_permissions,
    parse_role,
    resolve_access,
)
from preschool_common.types import (
    CurriculumStatus,
    EnrollmentStatus,
    NotificationType,
    StudentStatus,
    UserRole,
)

logger = logging.getLogger(__name__)

ALL = "all"
MEAL_TYPES = ("breakfast", "lunch", "snack")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def org_path(org_id: str, *parts: str) -> str:
    return "/".join((ORGANIZATIONS_COLLECTION, org_id) + parts)


def to_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value), DATE_FORMAT).date()
    except ValueError as e:
        raise ValidationError(f"Invalid date: {value!r}") from e


def day_key(value: Any) -> str:
    """``YYYY-MM-DD`` key used for per-day documents."""
    return to_date(value).strftime(DATE_FORMAT)


def time_key(value: Any) -> str:
    """Normalize a time of day (``9:00``, ``09:00`` or a ``time``) to ``HH:MM``."""
    if isinstance(value, dt_time):
        return value.strftime(TIME_FORMAT)
    try:
        return datetime.strptime(str(value).strip(), TIME_FORMAT).strftime(TIME_FORMAT)
    except ValueError as e:
        raise ValidationError(f"Invalid time: {value!r}") from e


def day_start(value: Any) -> datetime:
    return datetime.combine(to_date(value), dt_time.min, tzinfo=timezone.utc)


def parse_timestamp(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise ValidationError(f"Invalid timestamp: {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _require(value: Any, message: str) -> None:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(message)


def _fields(data: Optional[dict]) -> dict:
    return {k: v for k, v in (data or {}).items() if k != "id"}


def _matches(record: dict, term: str, fields: Sequence[str]) -> bool:
    for name in fields:
        value = record.get(name)
        if isinstance(value, str) and term in value.lower():
            return True
        if isinstance(value, list) and any(
            isinstance(item, str) and term in item.lower() for item in value
        ):
            return True
    return False


def search_records(
    records: list[dict], search_term: Optional[str], fields: Sequence[str]
) -> list[dict]:
    """Case-insensitive substring search over the given fields."""
    if not search_term:
        return records
    term = search_term.lower()
    return [r for r in records if _matches(r, term, fields)]


def _is_set(value: Any) -> bool:
    return value not in (None, "", ALL)


def _first_equality(*candidates: tuple[str, Any]) -> list[Filter]:
    """At most one equality filter: the first candidate with a value wins."""
    for field_name, value in candidates:
        if _is_set(value):
            return [(field_name, "==", value)]
    return []


def _prefix_filters(field_name: str, prefix: Optional[str]) -> list[Filter]:
    if not prefix:
        return []
    return [
        (field_name, ">=", prefix),
        (field_name, "<=", prefix + PREFIX_SEARCH_SENTINEL),
    ]


def _page_offset(page: Optional[int], limit: Optional[int]) -> tuple[Optional[int], int]:
    if page and limit:
        return limit, (page - 1) * limit
    return None, 0


def _full_name(first: Optional[str], last: Optional[str]) -> str:
    return f"{first or ''} {last or ''}".strip()


class PreschoolServices:
    """CRUD operations for one document store, namespaced by organization."""

    def __init__(
        self,
        store: DocumentStore,
        admin_emails: Iterable[str] = DEFAULT_ADMIN_EMAILS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.admin_emails = tuple(admin_emails)
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _get_record(self, path: str) -> Optional[dict]:
        doc = self.store.get(path)
        return doc.as_record() if doc else None

    def _require_record(self, path: str, label: str) -> dict:
        record = self._get_record(path)
        if record is None:
            raise NotFoundError(f"{label} not found")
        return record

    def _query(self, org_id: str, collection: str, **kwargs) -> list[dict]:
        _require(org_id, "Organization ID is required")
        docs = self.store.query(org_path(org_id, collection), **kwargs)
        return [d.as_record() for d in docs]

    def _create(self, org_id: str, collection: str, data: dict) -> dict:
        _require(org_id, "Organization ID is required")
        now = self.now()
        payload = {**_fields(data), "createdAt": now, "updatedAt": now}
        return self.store.add(org_path(org_id, collection), payload).as_record()

    def _update(self, org_id: str, collection: str, doc_id: str, data: dict) -> dict:
        _require(doc_id, "Document ID is required")
        updates = {**_fields(data), "updatedAt": self.now()}
        self.store.update(org_path(org_id, collection, doc_id), updates)
        return {"id": doc_id, **updates}

    # ------------------------------------------------------------------
    # Organizations and membership
    # ------------------------------------------------------------------
    def get_organization(self, org_id: str) -> Optional[dict]:
        _require(org_id, "Organization ID is required")
        return self._get_record(org_path(org_id))

    def get_user_organizations(self, user_id: str) -> list[dict]:
        _require(user_id, "User ID is required")
        try:
            user = self._get_record(f"{USERS_COLLECTION}/{user_id}") or {}
            organizations = []
            for org_id in user.get("organizations") or []:
                org = self.get_organization(org_id)
                if org:
                    organizations.append(org)
            return organizations
        except Exception as e:
            logger.error("Error getting user organizations: %s", e)
            raise

    def get_user_membership(self, org_id: str, user_id: str) -> Optional[dict]:
        _require(org_id, "Organization ID is required")
        _require(user_id, "User ID is required")
        return self._get_record(org_path(org_id, MEMBERS_COLLECTION, user_id))

    def _add_user_organization(self, user_id: str, org_id: str) -> None:
        path = f"{USERS_COLLECTION}/{user_id}"
        user = self._get_record(path) or {}
        organizations = list(user.get("organizations") or [])
        if org_id not in organizations:
            organizations.append(org_id)
        self.store.set(
            path,
            {"organizations": organizations, "updatedAt": self.now()},
            merge=True,
        )

    def create_organization(
        self, owner_id: str, data: dict, owner_email: Optional[str] = None
    ) -> dict:
        """
        Create an organization owned by `owner_id`.

        The owner becomes an admin member with the default admin permissions
        and the organization is added to the owner's user document.
        """
        _require(owner_id, "Owner ID is required")
        _require(data.get("name"), "Organization name is required")
        now = self.now()
        try:
            doc = self.store.add(
                ORGANIZATIONS_COLLECTION,
                {
                    "allowPublicRegistration": False,
                    **_fields(data),
                    "ownerId": owner_id,
                    "createdAt": now,
                    "updatedAt": now,
                },
            )
            self.store.set(
                org_path(doc.id, MEMBERS_COLLECTION, owner_id),
                {
                    "role": UserRole.ADMIN.value,
                    "permissions": default_permissions(UserRole.ADMIN).as_dict(),
                    "email": owner_email,
                    "createdAt": now,
                    "updatedAt": now,
                },
            )
            self._add_user_organization(owner_id, doc.id)
        except Exception as e:
            logger.error("Error creating organization: %s", e)
            raise
        return doc.as_record()

    def update_organization(self, org_id: str, data: dict) -> dict:
        path = org_path(org_id)
        self._require_record(path, "Organization")
        try:
            self.store.set(path, {**_fields(data), "updatedAt": self.now()}, merge=True)
        except Exception as e:
            logger.error("Error updating organization %s: %s", org_id, e)
            raise
        return self._get_record(path)

    def get_public_organizations(self) -> list[dict]:
        try:
            docs = self.store.query(
                ORGANIZATIONS_COLLECTION,
                filters=[("allowPublicRegistration", "==", True)],
            )
        except Exception as e:
            logger.error("Error getting public organizations: %s", e)
            return []
        return [d.as_record() for d in docs]

    # ------------------------------------------------------------------
    # Students
    # ------------------------------------------------------------------
    def get_students(
        self,
        org_id: str,
        status: Optional[str] = None,
        age_group: Optional[str] = None,
        search_term: Optional[str] = None,
    ) -> list[dict]:
        students = self._query(
            org_id,
            STUDENTS_COLLECTION,
            filters=_first_equality(("status", status), ("ageGroup", age_group)),
        )
        students.sort(key=lambda s: str(s.get("fullName") or "").casefold())
        return search_records(
            students, search_term, ("fullName", "ageGroup", "guardianName")
        )

    def get_student(self, org_id: str, student_id: str) -> Optional[dict]:
        _require(org_id, "Organization ID is required")
        _require(student_id, "Student ID is required")
        return self._get_record(org_path(org_id, STUDENTS_COLLECTION, student_id))

    def create_student(self, org_id: str, data: dict) -> dict:
        if not data.get("firstName") or not data.get("lastName"):
            raise ValidationError("First name and last name are required")
        student = {
            "status": StudentStatus.ACTIVE.value,
            **_fields(data),
            "fullName": _full_name(data["firstName"], data["lastName"]),
        }
        try:
            return self._create(org_id, STUDENTS_COLLECTION, student)
        except Exception as e:
            logger.error("Error creating student: %s", e)
            raise

    def update_student(self, org_id: str, student_id: str, data: dict) -> dict:
        updates = _fields(data)
        if "firstName" in updates or "lastName" in updates:
            current = self._require_record(
                org_path(org_id, STUDENTS_COLLECTION, student_id), "Student"
            )
            updates["fullName"] = _full_name(
                updates.get("firstName", current.get("firstName")),
                updates.get("lastName", current.get("lastName")),
            )
        try:
            return self._update(org_id, STUDENTS_COLLECTION, student_id, updates)
        except Exception as e:
            logger.error("Error updating student: %s", e)
            raise

    def delete_student(self, org_id: str, student_id: str) -> bool:
        _require(student_id, "Student ID is required")
        self.store.delete(org_path(org_id, STUDENTS_COLLECTION, student_id))
        return True

    # ------------------------------------------------------------------
    # Staff and schedules
    # ------------------------------------------------------------------
    def get_staff(
        self,
        org_id: str,
        status: Optional[str] = None,
        department: Optional[str] = None,
        search_term: Optional[str] = None,
    ) -> list[dict]:
        staff = self._query(
            org_id,
            STAFF_COLLECTION,
            filters=_first_equality(("status", status), ("department", department)),
            order_by=[("lastName", "asc")],
        )
        return search_records(
            staff,
            search_term,
            ("firstName", "lastName", "fullName", "position", "department"),
        )

    def get_staff_member(self, org_id: str, staff_id: str) -> Optional[dict]:
        _require(staff_id, "Staff ID is required")
        return self._get_record(org_path(org_id, STAFF_COLLECTION, staff_id))

    def create_staff_member(self, org_id: str, data: dict) -> dict:
        if not data.get("firstName") or not data.get("lastName"):
            raise ValidationError("First name and last name are required")
        member = {
            "status": "active",
            **_fields(data),
            "fullName": _full_name(data["firstName"], data["lastName"]),
        }
        try:
            return self._create(org_id, STAFF_COLLECTION, member)
        except Exception as e:
            logger.error("Error creating staff member: %s", e)
            raise

    def update_staff_member(self, org_id: str, staff_id: str, data: dict) -> dict:
        updates = _fields(data)
        if "firstName" in updates or "lastName" in updates:
            current = self._require_record(
                org_path(org_id, STAFF_COLLECTION, staff_id), "Staff member"
            )
            updates["fullName"] = _full_name(
                updates.get("firstName", current.get("firstName")),
                updates.get("lastName", current.get("lastName")),
            )
        try:
            return self._update(org_id, STAFF_COLLECTION, staff_id, updates)
        except Exception as e:
            logger.error("Error updating staff member: %s", e)
            raise

    def delete_staff_member(self, org_id: str, staff_id: str) -> bool:
        _require(staff_id, "Staff ID is required")
        self.store.delete(org_path(org_id, STAFF_COLLECTION, staff_id))
        return True

    def create_staff_schedule(self, org_id: str, data: dict) -> dict:
        for name in ("staffId", "date", "shiftStart", "shiftEnd"):
            _require(data.get(name), f"{name} is required")
        schedule = {
            **_fields(data),
            "date": day_key(data["date"]),
            "shiftStart": time_key(data["shiftStart"]),
            "shiftEnd": time_key(data["shiftEnd"]),
        }
        # Zero-padded HH:MM strings order chronologically.
        if schedule["shiftEnd"] <= schedule["shiftStart"]:
            raise ValidationError("Shift end must be after shift start")
        try:
            return self._create(org_id, STAFF_SCHEDULES_COLLECTION, schedule)
        except Exception as e:
            logger.error("Error creating staff schedule: %s", e)
            raise

    def get_staff_schedules(
        self,
        org_id: str,
        start: Any,
        end: Any,
        staff_id: Optional[str] = None,
    ) -> list[dict]:
        filters: list[Filter] = [
            ("date", ">=", day_key(start)),
            ("date", "<=", day_key(end)),
        ]
        if staff_id:
            filters.append(("staffId", "==", staff_id))
        return self._query(
            org_id,
            STAFF_SCHEDULES_COLLECTION,
            filters=filters,
            order_by=[("date", "asc")],
        )

    def delete_staff_schedule(self, org_id: str, schedule_id: str) -> bool:
        _require(schedule_id, "Schedule ID is required")
        self.store.delete(org_path(org_id, STAFF_SCHEDULES_COLLECTION, schedule_id))
        return True

    # ------------------------------------------------------------------
    # Curriculum
    # ------------------------------------------------------------------
    def get_curriculum(
        self,
        org_id: str,
        status: Optional[str] = None,
        age_group: Optional[str] = None,
        subject: Optional[str] = None,
        search_term: Optional[str] = None,
    ) -> list[dict]:
        filters: list[Filter] = []
        for field_name, value in (
            ("status", status),
            ("ageGroup", age_group),
            ("subject", subject),
        ):
            if _is_set(value):
                filters.append((field_name, "==", value))
        items = self._query(
            org_id,
            CURRICULUM_COLLECTION,
            filters=filters,
            order_by=[("createdAt", "desc")],
        )
        return search_records(
            items,
            search_term,
            ("title", "description", "subject", "objectives", "tags"),
        )

    def get_curriculum_item(self, org_id: str, item_id: str) -> Optional[dict]:
        _require(item_id, "Curriculum ID is required")
        return self._get_record(org_path(org_id, CURRICULUM_COLLECTION, item_id))

    def create_curriculum_item(
        self, org_id: str, data: dict, user_id: Optional[str] = None
    ) -> dict:
        if not data.get("title") or not data.get("ageGroup"):
            raise ValidationError("Title and age group are required")
        item = {
            "status": CurriculumStatus.DRAFT.value,
            **_fields(data),
            "createdBy": user_id,
        }
        try:
            return self._create(org_id, CURRICULUM_COLLECTION, item)
        except Exception as e:
            logger.error("Error creating curriculum item: %s", e)
            raise

    def update_curriculum_item(self, org_id: str, item_id: str, data: dict) -> dict:
        try:
            return self._update(org_id, CURRICULUM_COLLECTION, item_id, data)
        except Exception as e:
            logger.error("Error updating curriculum item: %s", e)
            raise

    def delete_curriculum_item(self, org_id: str, item_id: str) -> bool:
        _require(item_id, "Curriculum ID is required")
        self.store.delete(org_path(org_id, CURRICULUM_COLLECTION, item_id))
        return True

    # ------------------------------------------------------------------
    # Classes and enrollments
    # ------------------------------------------------------------------
    def get_classes(
        self,
        org_id: str,
        status: Optional[str] = None,
        age_group: Optional[str] = None,
        search_term: Optional[str] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        """
        List classes ordered by name. `search_term` is a case-sensitive name
        prefix; `page` and `limit` paginate only when both are given.
        """
        filters: list[Filter] = []
        if _is_set(status):
            filters.append(("status", "==", status))
        if _is_set(age_group):
            filters.append(("ageGroup", "==", age_group))
        filters.extend(_prefix_filters("name", search_term))
        page_limit, offset = _page_offset(page, limit)
        try:
            return self._query(
                org_id,
                CLASSES_COLLECTION,
                filters=filters,
                order_by=[("name", "asc")],
                limit=page_limit,
                offset=offset,
            )
        except Exception as e:
            logger.error("Error fetching classes: %s", e)
            raise

    def get_class(self, org_id: str, class_id: str) -> Optional[dict]:
        _require(class_id, "Class ID is required")
        return self._get_record(org_path(org_id, CLASSES_COLLECTION, class_id))

    def create_class(self, org_id: str, data: dict) -> dict:
        if not data.get("name") or not data.get("ageGroup"):
            raise ValidationError("Class name and age group are required")
        try:
            return self._create(
                org_id, CLASSES_COLLECTION, {"active": True, **_fields(data)}
            )
        except Exception as e:
            logger.error("Error creating class: %s", e)
            raise

    def update_class(self, org_id: str, class_id: str, data: dict) -> dict:
        try:
            return self._update(org_id, CLASSES_COLLECTION, class_id, data)
        except Exception as e:
            logger.error("Error updating class: %s", e)
            raise

    def delete_class(self, org_id: str, class_id: str) -> bool:
        _require(class_id, "Class ID is required")
        self.store.delete(org_path(org_id, CLASSES_COLLECTION, class_id))
        return True

    def get_class_enrollments(self, org_id: str, class_id: str) -> list[dict]:
        _require(class_id, "Class ID is required")
        try:
            docs = self.store.list_documents(
                org_path(org_id, CLASSES_COLLECTION, class_id, ENROLLMENTS_COLLECTION)
            )
            enrollments = []
            for doc in docs:
                enrollment = doc.as_record()
                student_id = enrollment.get("studentId") or doc.id
                enrollment["student"] = self.get_student(org_id, student_id)
                enrollments.append(enrollment)
            return enrollments
        except Exception as e:
            logger.error("Error getting class enrollments: %s", e)
            raise

    def enroll_student(
        self,
        org_id: str,
        class_id: str,
        student_id: str,
        data: Optional[dict] = None,
    ) -> dict:
        _require(class_id, "Class ID is required")
        _require(student_id, "Student ID is required")
        now = self.now()
        enrollment = {
            "studentId": student_id,
            "enrollmentDate": now,
            "status": EnrollmentStatus.ACTIVE.value,
            **_fields(data),
            "createdAt": now,
            "updatedAt": now,
        }
        try:
            self.store.set(
                org_path(
                    org_id, CLASSES_COLLECTION, class_id, ENROLLMENTS_COLLECTION, student_id
                ),
                enrollment,
            )
        except Exception as e:
            logger.error("Error enrolling student: %s", e)
            raise
        return {"id": student_id, **enrollment}

    def unenroll_student(
        self,
        org_id: str,
        class_id: str,
        student_id: str,
        hard_delete: bool = False,
    ) -> bool:
        path = org_path(
            org_id, CLASSES_COLLECTION, class_id, ENROLLMENTS_COLLECTION, student_id
        )
        try:
            if hard_delete:
                self.store.delete(path)
            else:
                now = self.now()
                self.store.update(
                    path,
                    {
                        "status": EnrollmentStatus.INACTIVE.value,
                        "exitDate": now,
                        "updatedAt": now,
                    },
                )
        except Exception as e:
            logger.error("Error unenrolling student: %s", e)
            raise
        return True

    def get_teacher_classes(self, org_id: str, teacher_id: str) -> list[dict]:
        _require(teacher_id, "Teacher ID is required")
        return self._query(
            org_id, CLASSES_COLLECTION, filters=[("teacherId", "==", teacher_id)]
        )

    # ------------------------------------------------------------------
    # Programs
    # ------------------------------------------------------------------
    def get_programs(
        self,
        org_id: str,
        status: Optional[str] = None,
        age_range: Optional[str] = None,
        search_term: Optional[str] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        filters: list[Filter] = []
        if _is_set(status):
            filters.append(("status", "==", status))
        if _is_set(age_range):
            filters.append(("ageRange", "==", age_range))
        filters.extend(_prefix_filters("name", search_term))
        page_limit, offset = _page_offset(page, limit)
        return self._query(
            org_id,
            PROGRAMS_COLLECTION,
            filters=filters,
            order_by=[("name", "asc")],
            limit=page_limit,
            offset=offset,
        )

    def get_program(self, org_id: str, program_id: str) -> Optional[dict]:
        _require(program_id, "Program ID is required")
        return self._get_record(org_path(org_id, PROGRAMS_COLLECTION, program_id))

    def create_program(self, org_id: str, data: dict) -> dict:
        if not data.get("name") or not data.get("startDate") or not data.get("endDate"):
            raise ValidationError("Program name, start date, and end date are required")
        try:
            return self._create(
                org_id, PROGRAMS_COLLECTION, {"active": True, **_fields(data)}
            )
        except Exception as e:
            logger.error("Error creating program: %s", e)
            raise

    def update_program(self, org_id: str, program_id: str, data: dict) -> dict:
        try:
            return self._update(org_id, PROGRAMS_COLLECTION, program_id, data)
        except Exception as e:
            logger.error("Error updating program: %s", e)
            raise

    def delete_program(self, org_id: str, program_id: str) -> bool:
        _require(program_id, "Program ID is required")
        self.store.delete(org_path(org_id, PROGRAMS_COLLECTION, program_id))
        return True

    # ------------------------------------------------------------------
    # Guardians
    # ------------------------------------------------------------------
    def get_student_guardians(self, org_id: str, student_id: str) -> list[dict]:
        _require(student_id, "Student ID is required")
        docs = self.store.list_documents(
            org_path(org_id, STUDENTS_COLLECTION, student_id, GUARDIANS_COLLECTION)
        )
        return [d.as_record() for d in docs]

    def add_student_guardian(self, org_id: str, student_id: str, data: dict) -> dict:
        _require(student_id, "Student ID is required")
        now = self.now()
        guardian = {
            **_fields(data),
            "relationship": data.get("relationship") or "parent",
            "createdAt": now,
            "updatedAt": now,
        }
        try:
            doc = self.store.add(
                org_path(org_id, STUDENTS_COLLECTION, student_id, GUARDIANS_COLLECTION),
                guardian,
            )
        except Exception as e:
            logger.error("Error adding student guardian: %s", e)
            raise
        return doc.as_record()

    def create_guardian(self, org_id: str, data: dict) -> dict:
        _require(data.get("fullName"), "Guardian name is required")
        try:
            return self._create(
                org_id, GUARDIANS_COLLECTION, {"studentIds": [], **_fields(data)}
            )
        except Exception as e:
            logger.error("Error creating guardian: %s", e)
            raise

    def get_guardian(self, org_id: str, guardian_id: str) -> Optional[dict]:
        _require(guardian_id, "Guardian ID is required")
        return self._get_record(org_path(org_id, GUARDIANS_COLLECTION, guardian_id))

    def update_guardian(self, org_id: str, guardian_id: str, data: dict) -> dict:
        try:
            return self._update(org_id, GUARDIANS_COLLECTION, guardian_id, data)
        except Exception as e:
            logger.error("Error updating guardian: %s", e)
            raise

    def search_guardians(self, org_id: str, search_term: str) -> list[dict]:
        """Guardians whose full name starts with `search_term` (case-sensitive)."""
        if not search_term:
            return []
        return self._query(
            org_id,
            GUARDIANS_COLLECTION,
            filters=_prefix_filters("fullName", search_term),
            order_by=[("fullName", "asc")],
            limit=GUARDIAN_SEARCH_LIMIT,
        )

    def link_guardian_student(
        self, org_id: str, guardian_id: str, student_id: str
    ) -> dict:
        _require(student_id, "Student ID is required")
        path = org_path(org_id, GUARDIANS_COLLECTION, guardian_id)
        guardian = self._require_record(path, "Guardian")
        student_ids = list(guardian.get("studentIds") or [])
        if student_id in student_ids:
            return guardian
        student_ids.append(student_id)
        updates = {"studentIds": student_ids, "updatedAt": self.now()}
        try:
            self.store.update(path, updates)
        except Exception as e:
            logger.error("Error linking guardian to student: %s", e)
            raise
        return {**guardian, **updates}

    def _students_by_guardian_user(self, org_id: str) -> dict[str, list[tuple[dict, dict]]]:
        linked: dict[str, list[tuple[dict, dict]]] = {}
        for student_doc in self.store.list_documents(org_path(org_id, STUDENTS_COLLECTION)):
            for link in self.store.list_documents(
                f"{student_doc.path}/{GUARDIANS_COLLECTION}"
            ):
                user_id = link.data.get("userId")
                if user_id:
                    linked.setdefault(user_id, []).append(
                        (student_doc.as_record(), link.data)
                    )
        return linked

    def get_guardian_directory(self, org_id: str) -> list[dict]:
        """
        Parent members of the organization with the students they are linked
        to. A guardian is active when any linked student is active.
        """
        try:
            parents = self._query(
                org_id,
                MEMBERS_COLLECTION,
                filters=[("role", "==", UserRole.PARENT.value)],
            )
            linked = self._students_by_guardian_user(org_id)
        except Exception as e:
            logger.error("Error getting guardian directory: %s", e)
            raise

        directory = []
        for parent in parents:
            students = [
                {
                    "id": student["id"],
                    "fullName": student.get("fullName"),
                    "status": student.get("status"),
                    "relationship": link.get("relationship") or "parent",
                }
                for student, link in linked.get(parent["id"], [])
            ]
            directory.append(
                {
                    "id": parent["id"],
                    "fullName": parent.get("fullName"),
                    "email": parent.get("email"),
                    "phone": parent.get("phone"),
                    "students": students,
                    "active": any(
                        s["status"] == StudentStatus.ACTIVE.value for s in students
                    ),
                }
            )
        directory.sort(key=lambda g: str(g.get("fullName") or "").casefold())
        return directory

    def get_parent_students(self, org_id: str, parent_id: str) -> list[dict]:
        try:
            linked = self._students_by_guardian_user(org_id).get(parent_id, [])
        except Exception as e:
            logger.error("Error getting parent students: %s", e)
            return []
        return [
            {**student, "guardianRelationship": link.get("relationship") or "parent"}
            for student, link in linked
        ]

    def get_parent_children(self, org_id: str, parent_id: str) -> list[dict]:
        _require(parent_id, "Parent ID is required")
        return self._query(
            org_id, STUDENTS_COLLECTION, filters=[("guardianId", "==", parent_id)]
        )

    # ------------------------------------------------------------------
    # Attendance: class rolls
    # ------------------------------------------------------------------
    def _roll_collection(self, org_id: str, day: str) -> str:
        return org_path(org_id, ATTENDANCE_COLLECTION, day, CLASSES_COLLECTION)

    def get_attendance(self, org_id: str, day: str, class_id: str) -> Optional[dict]:
        """
        Return the roll for one class on `day`, or ``None``. With
        ``class_id == "all"`` the student maps of every class are merged.
        """
        _require(org_id, "Organization ID is required")
        _require(day, "Date is required")
        _require(class_id, "Class ID is required")
        day = day_key(day)
        try:
            if class_id == ALL:
                students: dict = {}
                for doc in self.store.list_documents(self._roll_collection(org_id, day)):
                    students.update(doc.data.get("students") or {})
                return {"students": students}
            return self._get_record(f"{self._roll_collection(org_id, day)}/{class_id}")
        except Exception as e:
            logger.error("Error getting attendance: %s", e)
            raise

    def save_attendance(
        self,
        org_id: str,
        day: str,
        class_id: str,
        data: dict,
        user_id: Optional[str] = None,
    ) -> dict:
        _require(org_id, "Organization ID is required")
        _require(day, "Date is required")
        _require(class_id, "Class ID is required")
        if class_id == ALL:
            raise ValidationError("Attendance must be saved for a single class")
        day = day_key(day)
        path = f"{self._roll_collection(org_id, day)}/{class_id}"
        now = self.now()

        roll = {
            **_fields(data),
            "date": day_start(day),
            "classId": class_id,
            "updatedBy": user_id,
            "updatedAt": now,
        }
        students = {}
        for student_id, record in (roll.get("students") or {}).items():
            record = dict(record)
            if isinstance(record.get("timestamp"), str):
                record["timestamp"] = parse_timestamp(record["timestamp"])
            if not record.get("recordedBy"):
                record["recordedBy"] = user_id
            students[student_id] = record
        if "students" in roll:
            roll["students"] = students

        try:
            if self.store.get(path) is None:
                roll["createdBy"] = user_id
                roll["createdAt"] = now
                self.store.set(path, roll)
            else:
                self.store.update(path, roll)
        except Exception as e:
            logger.error("Error saving attendance: %s", e)
            raise
        return {"id": class_id, **roll}

    def get_attendance_stats(
        self,
        org_id: str,
        start: Any,
        end: Any,
        class_id: Optional[str] = None,
    ) -> dict:
        _require(org_id, "Organization ID is required")
        start_day, end_day = to_date(start), to_date(end)
        daily = []
        try:
            for current in iter_days(start_day, end_day):
                key = day_key(current)
                if class_id and class_id != ALL:
                    roll = self.store.get(f"{self._roll_collection(org_id, key)}/{class_id}")
                    rolls = [roll.data] if roll else []
                else:
                    rolls = [
                        d.data
                        for d in self.store.list_documents(
                            self._roll_collection(org_id, key)
                        )
                    ]
                if rolls:
                    daily.append(daily_stat(key, rolls))
        except Exception as e:
            logger.error("Error getting attendance stats: %s", e)
            raise
        return stats_as_dict(summarize(daily))

    # ------------------------------------------------------------------
    # Attendance: per-student check-in records
    # ------------------------------------------------------------------
    def _checkin_path(self, org_id: str, student_id: str, day: Any) -> str:
        return org_path(
            org_id, STUDENTS_COLLECTION, student_id, ATTENDANCE_COLLECTION, day_key(day)
        )

    def record_attendance(self, org_id: str, student_id: str, data: dict) -> dict:
        _require(student_id, "Student ID is required")
        _require(data.get("date"), "Date is required")
        path = self._checkin_path(org_id, student_id, data["date"])
        now = self.now()
        record = {**_fields(data), "date": day_start(data["date"]), "updatedAt": now}
        try:
            if self.store.get(path) is None:
                record["createdAt"] = now
                self.store.set(path, record)
            else:
                self.store.update(path, record)
        except Exception as e:
            logger.error("Error recording attendance: %s", e)
            raise
        return {"id": day_key(data["date"]), **record}

    def get_student_attendance(
        self, org_id: str, student_id: str, start: Any, end: Any
    ) -> list[dict]:
        _require(student_id, "Student ID is required")
        return self._query(
            org_id,
            f"{STUDENTS_COLLECTION}/{student_id}/{ATTENDANCE_COLLECTION}",
            filters=[("date", ">=", day_start(start)), ("date", "<=", day_start(end))],
            order_by=[("date", "desc")],
        )

    def check_in_student(
        self,
        org_id: str,
        student_id: str,
        checked_in_by: Optional[str],
        now: Optional[datetime] = None,
        notes: str = "",
    ) -> dict:
        now = now or self.now()
        return self.record_attendance(
            org_id,
            student_id,
            {
                "date": now.date(),
                "checkIn": now.strftime(TIME_FORMAT),
                "checkInBy": checked_in_by,
                "checkOut": None,
                "notes": notes,
            },
        )

    def check_out_student(
        self,
        org_id: str,
        student_id: str,
        checked_out_by: Optional[str],
        now: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> dict:
        now = now or self.now()
        path = self._checkin_path(org_id, student_id, now)
        current = self._get_record(path)
        if not current or not current.get("checkIn"):
            raise ValidationError("Student is not checked in today")
        updates = {
            "checkOut": now.strftime(TIME_FORMAT),
            "checkOutBy": checked_out_by,
            "updatedAt": self.now(),
        }
        if notes is not None:
            updates["notes"] = notes
        try:
            self.store.update(path, updates)
        except Exception as e:
            logger.error("Error checking out student: %s", e)
            raise
        return {**current, **updates}

    def get_checkin_board(self, org_id: str, day: Any) -> list[dict]:
        """Active students by name with their check-in state for `day`."""
        students = self.get_students(org_id, status=StudentStatus.ACTIVE.value)
        board = []
        for student in students:
            record = self._get_record(self._checkin_path(org_id, student["id"], day))
            checked_in = bool(record and record.get("checkIn") and not record.get("checkOut"))
            board.append(
                {
                    "id": student["id"],
                    "fullName": student.get("fullName"),
                    "ageGroup": student.get("ageGroup"),
                    "checkedIn": checked_in,
                    "lastCheckIn": (
                        {"time": record["checkIn"], "by": record.get("checkInBy")}
                        if record and record.get("checkIn")
                        else None
                    ),
                    "lastCheckOut": (
                        {"time": record["checkOut"], "by": record.get("checkOutBy")}
                        if record and record.get("checkOut")
                        else None
                    ),
                    "notes": (record or {}).get("notes"),
                }
            )
        return board

    def get_children_attendance(
        self, org_id: str, student_ids: Sequence[str], day: Any
    ) -> list[dict]:
        if not student_ids:
            return []
        try:
            records = []
            for student_id in student_ids:
                record = self._get_record(self._checkin_path(org_id, student_id, day))
                if record:
                    records.append({**record, "studentId": student_id})
            return records
        except Exception as e:
            logger.error("Error getting children attendance: %s", e)
            return []

    # ------------------------------------------------------------------
    # Meals
    # ------------------------------------------------------------------
    def save_meal_plan(self, org_id: str, day: Any, plan: dict) -> dict:
        _require(org_id, "Organization ID is required")
        key = day_key(day)
        now = self.now()
        data = {**_fields(plan), "date": day_start(key), "updatedAt": now}
        path = org_path(org_id, MEAL_PLANS_COLLECTION, key)
        try:
            self.store.set(path, data, merge=True)
        except Exception as e:
            logger.error("Error saving meal plan: %s", e)
            raise
        return {"id": key, **data}

    def get_meal_plan(self, org_id: str, day: Any) -> Optional[dict]:
        _require(org_id, "Organization ID is required")
        return self._get_record(org_path(org_id, MEAL_PLANS_COLLECTION, day_key(day)))

    def record_student_meal(
        self, org_id: str, student_id: str, day: Any, meal: dict
    ) -> dict:
        _require(student_id, "Student ID is required")
        key = day_key(day)
        data = {**_fields(meal), "date": day_start(key), "updatedAt": self.now()}
        path = org_path(org_id, STUDENTS_COLLECTION, student_id, MEALS_COLLECTION, key)
        try:
            self.store.set(path, data, merge=True)
        except Exception as e:
            logger.error("Error recording student meal: %s", e)
            raise
        return {"id": key, **data}

    def get_student_meals(
        self, org_id: str, student_id: str, start: Any, end: Any
    ) -> list[dict]:
        _require(student_id, "Student ID is required")
        return self._query(
            org_id,
            f"{STUDENTS_COLLECTION}/{student_id}/{MEALS_COLLECTION}",
            filters=[("date", ">=", day_start(start)), ("date", "<=", day_start(end))],
            order_by=[("date", "desc")],
        )

    def get_daily_meal_report(self, org_id: str, day: Any) -> dict:
        key = day_key(day)
        students = self.get_students(org_id, status=StudentStatus.ACTIVE.value)
        totals = {meal: 0 for meal in MEAL_TYPES}
        rows = []
        for student in students:
            record = (
                self._get_record(
                    org_path(
                        org_id, STUDENTS_COLLECTION, student["id"], MEALS_COLLECTION, key
                    )
                )
                or {}
            )
            for meal in MEAL_TYPES:
                if record.get(meal):
                    totals[meal] += 1
            rows.append(
                {
                    "id": student["id"],
                    "fullName": student.get("fullName"),
                    **{meal: record.get(meal) for meal in MEAL_TYPES},
                    "notes": record.get("notes"),
                }
            )
        return {
            "date": key,
            "plan": self.get_meal_plan(org_id, key),
            "students": rows,
            "totals": totals,
        }

    # ------------------------------------------------------------------
    # Calendar
    # ------------------------------------------------------------------
    def create_event(self, org_id: str, data: dict) -> dict:
        _require(data.get("title"), "Event title is required")
        _require(data.get("date"), "Event date is required")
        try:
            return self._create(
                org_id, EVENTS_COLLECTION, {**_fields(data), "date": day_key(data["date"])}
            )
        except Exception as e:
            logger.error("Error creating event: %s", e)
            raise

    def get_upcoming_events(self, org_id: str, today: Optional[date] = None) -> list[dict]:
        today = today or self.now().date()
        return self._query(
            org_id,
            EVENTS_COLLECTION,
            filters=[("date", ">=", day_key(today))],
            order_by=[("date", "asc")],
            limit=UPCOMING_LIMIT,
        )

    def create_lesson(self, org_id: str, data: dict) -> dict:
        _require(data.get("title"), "Lesson title is required")
        _require(data.get("teacherId"), "Teacher ID is required")
        _require(data.get("date"), "Lesson date is required")
        try:
            return self._create(
                org_id, LESSONS_COLLECTION, {**_fields(data), "date": day_key(data["date"])}
            )
        except Exception as e:
            logger.error("Error creating lesson: %s", e)
            raise

    def get_teacher_lessons(
        self, org_id: str, teacher_id: str, today: Optional[date] = None
    ) -> list[dict]:
        _require(teacher_id, "Teacher ID is required")
        today = today or self.now().date()
        return self._query(
            org_id,
            LESSONS_COLLECTION,
            filters=[("teacherId", "==", teacher_id), ("date", ">=", day_key(today))],
            order_by=[("date", "asc")],
            limit=UPCOMING_LIMIT,
        )

    # ------------------------------------------------------------------
    # Waitlist and public registration
    # ------------------------------------------------------------------
    def create_public_registration(self, data: dict) -> dict:
        """
        Register a child from the public form. The student is created with
        status ``waitlist`` and a waitlist entry plus an admin notification
        are written alongside it. Only organizations that allow public
        registration accept it; any other organization ID is not found.
        """
        if not data.get("firstName") or not data.get("lastName"):
            raise ValidationError("First name and last name are required")
        org_id = data.get("organizationId")
        _require(org_id, "Organization ID is required")
        organization = self._get_record(org_path(org_id))
        # Private and unknown organizations look the same to the public.
        if not organization or organization.get("allowPublicRegistration") is not True:
            raise NotFoundError("Organization not found")

        student = {
            **_fields(data),
            "fullName": _full_name(data["firstName"], data["lastName"]),
            "status": StudentStatus.WAITLIST.value,
        }
        try:
            created = self._create(org_id, STUDENTS_COLLECTION, student)
            self.store.set(
                org_path(org_id, WAITLIST_COLLECTION, created["id"]),
                {"studentId": created["id"], "createdAt": self.now(), "reviewed": False},
            )
        except Exception as e:
            logger.error("Error creating public registration: %s", e)
            raise

        self._send_waitlist_notification(org_id, created)
        return created

    def _send_waitlist_notification(self, org_id: str, student: dict) -> None:
        guardian_name = student.get("guardianName") or "A guardian"
        try:
            self.store.add(
                org_path(org_id, NOTIFICATIONS_COLLECTION),
                {
                    "type": NotificationType.WAITLIST.value,
                    "title": "New Waitlist Registration",
                    "message": (
                        f"{guardian_name} has registered {student['fullName']} "
                        "for the waitlist."
                    ),
                    "data": {
                        "studentName": student["fullName"],
                        "studentId": student["id"],
                        "guardianName": student.get("guardianName"),
                        "guardianEmail": student.get("guardianEmail"),
                    },
                    "createdAt": self.now(),
                    "read": False,
                },
            )
        except Exception as e:
            # Registration already succeeded.
            logger.error("Error sending waitlist notification: %s", e)

    def get_waitlist(self, org_id: str) -> list[dict]:
        try:
            entries = self._query(
                org_id, WAITLIST_COLLECTION, order_by=[("createdAt", "desc")]
            )
            for entry in entries:
                entry["student"] = self.get_student(
                    org_id, entry.get("studentId") or entry["id"]
                )
            return entries
        except Exception as e:
            logger.error("Error getting waitlist: %s", e)
            return []

    def _require_pending_entry(self, org_id: str, student_id: str) -> None:
        # Both documents must exist before any write happens.
        _require(student_id, "Student ID is required")
        self._require_record(
            org_path(org_id, WAITLIST_COLLECTION, student_id), "Waitlist entry"
        )
        self._require_record(org_path(org_id, STUDENTS_COLLECTION, student_id), "Student")

    def approve_waitlist_entry(
        self, org_id: str, student_id: str, class_id: str, start_date: str
    ) -> Optional[dict]:
        _require(class_id, "Class ID is required")
        _require(start_date, "Start date is required")
        self._require_pending_entry(org_id, student_id)
        now = self.now()
        try:
            self.store.update(
                org_path(org_id, STUDENTS_COLLECTION, student_id),
                {"status": StudentStatus.ACTIVE.value, "updatedAt": now},
            )
            self.enroll_student(
                org_id,
                class_id,
                student_id,
                {"startDate": start_date, "status": EnrollmentStatus.ACTIVE.value},
            )
            self.store.update(
                org_path(org_id, WAITLIST_COLLECTION, student_id),
                {"reviewed": True, "approved": True, "reviewedAt": now},
            )
        except Exception as e:
            logger.error("Error approving waitlist entry: %s", e)
            raise
        return self.get_student(org_id, student_id)

    def reject_waitlist_entry(
        self, org_id: str, student_id: str, reason: str = ""
    ) -> bool:
        self._require_pending_entry(org_id, student_id)
        now = self.now()
        try:
            self.store.update(
                org_path(org_id, STUDENTS_COLLECTION, student_id),
                {
                    "status": StudentStatus.REJECTED.value,
                    "rejectionReason": reason,
                    "updatedAt": now,
                },
            )
            self.store.update(
                org_path(org_id, WAITLIST_COLLECTION, student_id),
                {
                    "reviewed": True,
                    "approved": False,
                    "rejectionReason": reason,
                    "reviewedAt": now,
                },
            )
        except Exception as e:
            logger.error("Error rejecting waitlist entry: %s", e)
            raise
        return True

    def get_registration_status(self, org_id: str, student_id: str) -> dict:
        student = self._require_record(
            org_path(org_id, STUDENTS_COLLECTION, student_id), "Registration"
        )
        entry = self._get_record(org_path(org_id, WAITLIST_COLLECTION, student_id))
        return {
            "studentId": student_id,
            "fullName": student.get("fullName"),
            "status": student.get("status"),
            "reviewed": bool(entry and entry.get("reviewed")),
            "approved": entry.get("approved") if entry else None,
            "rejectionReason": student.get("rejectionReason"),
        }

    # ------------------------------------------------------------------
    # Notifications and messages
    # ------------------------------------------------------------------
    def get_notifications(self, org_id: str, unread_only: bool = False) -> list[dict]:
        filters: list[Filter] = [("read", "==", False)] if unread_only else []
        return self._query(
            org_id,
            NOTIFICATIONS_COLLECTION,
            filters=filters,
            order_by=[("createdAt", "desc")],
        )

    def mark_notification_read(self, org_id: str, notification_id: str) -> bool:
        _require(notification_id, "Notification ID is required")
        self.store.update(
            org_path(org_id, NOTIFICATIONS_COLLECTION, notification_id),
            {"read": True, "readAt": self.now()},
        )
        return True

    def send_message(
        self,
        org_id: str,
        sender: dict,
        recipients: Sequence[dict],
        subject: str,
        content: str,
    ) -> dict:
        _require(subject, "Subject is required")
        _require(content, "Message content is required")
        if len(subject) > MAX_MESSAGE_SUBJECT_LENGTH:
            raise ValidationError("Subject is too long")
        if len(content) > MAX_MESSAGE_CONTENT_LENGTH:
            raise ValidationError("Message content is too long")
        if not recipients:
            raise ValidationError("At least one recipient is required")
        message = {
            "sender": dict(sender),
            "recipients": [dict(r) for r in recipients],
            "subject": subject,
            "content": content,
            "read": False,
        }
        try:
            return self._create(org_id, MESSAGES_COLLECTION, message)
        except Exception as e:
            logger.error("Error sending message: %s", e)
            raise

    def get_messages(self, org_id: str, search_term: Optional[str] = None) -> list[dict]:
        messages = self._query(
            org_id, MESSAGES_COLLECTION, order_by=[("createdAt", "desc")]
        )
        if not search_term:
            return messages
        term = search_term.lower()
        return [
            m
            for m in messages
            if _matches(m, term, ("subject", "content"))
            or term in str((m.get("sender") or {}).get("name") or "").lower()
        ]

    def mark_message_read(self, org_id: str, message_id: str) -> bool:
        _require(message_id, "Message ID is required")
        self.store.update(
            org_path(org_id, MESSAGES_COLLECTION, message_id),
            {"read": True, "updatedAt": self.now()},
        )
        return True

    def delete_message(self, org_id: str, message_id: str) -> bool:
        _require(message_id, "Message ID is required")
        self.store.delete(org_path(org_id, MESSAGES_COLLECTION, message_id))
        return True

    def count_unread_messages(self, org_id: str) -> int:
        return len(
            self._query(org_id, MESSAGES_COLLECTION, filters=[("read", "==", False)])
        )

    # ------------------------------------------------------------------
    # Members and permissions
    # ------------------------------------------------------------------
    def get_members(self, org_id: str) -> list[dict]:
        members = self._query(org_id, MEMBERS_COLLECTION)
        members.sort(key=lambda m: str(m.get("email") or m["id"]).casefold())
        return members

    def create_member(
        self,
        org_id: str,
        user_id: str,
        role: str,
        email: Optional[str] = None,
        full_name: Optional[str] = None,
    ) -> dict:
        """Add a member with the role's default permissions, or change the role of an existing one."""
        _require(user_id, "User ID is required")
        parsed = parse_role(role)
        if parsed is None:
            raise ValidationError(f"Unknown role: {role}")
        path = org_path(org_id, MEMBERS_COLLECTION, user_id)
        now = self.now()
        try:
            if self.store.get(path) is not None:
                self.store.update(path, {"role": parsed.value, "updatedAt": now})
            else:
                self.store.set(
                    path,
                    {
                        "role": parsed.value,
                        "permissions": default_permissions(parsed).as_dict(),
                        "email": email,
                        "fullName": full_name,
                        "createdAt": now,
                        "updatedAt": now,
                    },
                )
                self._add_user_organization(user_id, org_id)
        except Exception as e:
            logger.error("Error creating member: %s", e)
            raise
        return self._get_record(path)

    def update_user_role(
        self,
        org_id: str,
        user_id: str,
        role: str,
        reset_permissions: bool = False,
    ) -> bool:
        parsed = parse_role(role)
        if parsed is None:
            raise ValidationError(f"Unknown role: {role}")
        updates: dict = {"role": parsed.value, "updatedAt": self.now()}
        if reset_permissions:
            updates["permissions"] = default_permissions(parsed).as_dict()
        try:
            self.store.update(org_path(org_id, MEMBERS_COLLECTION, user_id), updates)
        except Exception as e:
            logger.error("Error updating user role: %s", e)
            raise
        return True

    def update_user_permissions(
        self,
        org_id: str,
        user_id: str,
        permissions: dict,
        merge: bool = False,
    ) -> bool:
        path = org_path(org_id, MEMBERS_COLLECTION, user_id)
        parsed = parse_permissions(permissions)
        if merge:
            member = self._require_record(path, "User")
            parsed = merge_permissions(parse_permissions(member.get("permissions")), parsed)
        try:
            self.store.update(
                path, {"permissions": parsed.as_dict(), "updatedAt": self.now()}
            )
        except Exception as e:
            logger.error("Error updating user permissions: %s", e)
            raise
        return True

    def get_user_permissions(self, org_id: str, user_id: str) -> dict:
        member = self._require_record(
            org_path(org_id, MEMBERS_COLLECTION, user_id), "User"
        )
        role = parse_role(member.get("role")) or UserRole.STAFF
        stored = member.get("permissions")
        permissions = parse_permissions(stored) if stored else default_permissions(role)
        return {"role": role.value, "permissions": permissions.as_dict()}

    def resolve_access(
        self, org_id: str, user_id: str, email: Optional[str] = None
    ) -> Access:
        member = self.get_user_membership(org_id, user_id)
        return resolve_access(email, member, self.admin_emails)
