import unittest
from datetime import date, datetime, timedelta, timezone
from unittest.mock import patch

from preschool_api.services import PreschoolServices, day_key
from preschool_api.store import InMemoryDocumentStore
from preschool_common.errors import (
    DocumentNotFoundError,
    NotFoundError,
    ValidationError,
)
from preschool_common.types import UserRole

ORG = "org1"


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class ServicesTestCase(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryDocumentStore()
        self.clock = FakeClock(datetime(2025, 1, 6, 8, 0, tzinfo=timezone.utc))
        self.services = PreschoolServices(self.store, clock=self.clock)

    def open_registration(self, org_id=ORG):
        self.store.set(
            f"organizations/{org_id}", {"name": "Little Oaks", "allowPublicRegistration": True}
        )

    def add_student(self, first, last, **extra):
        return self.services.create_student(
            ORG, {"firstName": first, "lastName": last, **extra}
        )


class OrganizationServiceTests(ServicesTestCase):
    def test_create_organization_adds_admin_member_and_user_link(self):
        org = self.services.create_organization(
            "owner1", {"name": "Little Oaks"}, owner_email="owner@example.com"
        )
        self.assertEqual(org["name"], "Little Oaks")
        self.assertFalse(org["allowPublicRegistration"])

        member = self.services.get_user_membership(org["id"], "owner1")
        self.assertEqual(member["role"], "admin")
        self.assertTrue(member["permissions"]["billing"]["delete"])

        orgs = self.services.get_user_organizations("owner1")
        self.assertEqual([o["id"] for o in orgs], [org["id"]])

    def test_create_organization_requires_name(self):
        with self.assertRaises(ValidationError):
            self.services.create_organization("owner1", {})

    def test_user_organizations_skip_missing(self):
        self.store.set("users/u1", {"organizations": ["gone"]})
        self.assertEqual(self.services.get_user_organizations("u1"), [])
        self.assertEqual(self.services.get_user_organizations("nobody"), [])

    def test_update_organization_merges_settings(self):
        org = self.services.create_organization("owner1", {"name": "Little Oaks"})
        updated = self.services.update_organization(
            org["id"], {"allowPublicRegistration": True}
        )
        self.assertTrue(updated["allowPublicRegistration"])
        self.assertEqual(updated["name"], "Little Oaks")

        with self.assertRaises(NotFoundError):
            self.services.update_organization("missing", {"name": "x"})

    def test_public_organizations(self):
        self.store.set("organizations/a", {"name": "A", "allowPublicRegistration": True})
        self.store.set("organizations/b", {"name": "B"})
        public = self.services.get_public_organizations()
        self.assertEqual([o["id"] for o in public], ["a"])

    def test_public_organizations_return_empty_on_error(self):
        with patch.object(self.store, "query", side_effect=RuntimeError("down")):
            self.assertEqual(self.services.get_public_organizations(), [])


class StudentServiceTests(ServicesTestCase):
    def test_create_student_computes_full_name(self):
        student = self.add_student("Ada", "Lovelace", ageGroup="Pre-K")
        self.assertEqual(student["fullName"], "Ada Lovelace")
        self.assertEqual(student["status"], "active")
        self.assertEqual(student["createdAt"], self.clock.now)
        self.assertEqual(self.services.get_student(ORG, student["id"])["ageGroup"], "Pre-K")

    def test_create_student_requires_names(self):
        with self.assertRaises(ValidationError):
            self.services.create_student(ORG, {"firstName": "Ada"})

    def test_update_student_recomputes_full_name(self):
        student = self.add_student("Ada", "Lovelace")
        updated = self.services.update_student(ORG, student["id"], {"lastName": "Byron"})
        self.assertEqual(updated["fullName"], "Ada Byron")
        self.assertEqual(self.services.get_student(ORG, student["id"])["fullName"], "Ada Byron")

    def test_update_missing_student(self):
        with self.assertRaises(NotFoundError):
            self.services.update_student(ORG, "missing", {"firstName": "X"})
        with self.assertRaises(DocumentNotFoundError):
            self.services.update_student(ORG, "missing", {"notes": "x"})

    def test_get_students_filters_sorts_and_searches(self):
        self.add_student("zoe", "Young", ageGroup="Toddler")
        self.add_student("Ben", "Adams", ageGroup="Pre-K", guardianName="Carla Adams")
        self.add_student("Ann", "Moss", ageGroup="Pre-K", status="inactive")

        names = [s["fullName"] for s in self.services.get_students(ORG)]
        self.assertEqual(names, ["Ann Moss", "Ben Adams", "zoe Young"])

        active = self.services.get_students(ORG, status="active", age_group="Toddler")
        # Status takes precedence over age group.
        self.assertEqual([s["fullName"] for s in active], ["Ben Adams", "zoe Young"])

        pre_k = self.services.get_students(ORG, status="all", age_group="Pre-K")
        self.assertEqual(len(pre_k), 2)

        found = self.services.get_students(ORG, search_term="carla")
        self.assertEqual([s["fullName"] for s in found], ["Ben Adams"])

    def test_delete_student(self):
        student = self.add_student("Ada", "Lovelace")
        self.assertTrue(self.services.delete_student(ORG, student["id"]))
        self.assertIsNone(self.services.get_student(ORG, student["id"]))


class StaffServiceTests(ServicesTestCase):
    def test_staff_crud_and_listing(self):
        a = self.services.create_staff_member(
            ORG, {"firstName": "Tom", "lastName": "Zed", "department": "Kitchen"}
        )
        self.services.create_staff_member(
            ORG, {"firstName": "Amy", "lastName": "Bell", "position": "Lead Teacher"}
        )
        self.assertEqual(a["status"], "active")
        names = [s["lastName"] for s in self.services.get_staff(ORG)]
        self.assertEqual(names, ["Bell", "Zed"])
        self.assertEqual(
            [s["lastName"] for s in self.services.get_staff(ORG, search_term="teacher")],
            ["Bell"],
        )
        self.assertEqual(
            [s["lastName"] for s in self.services.get_staff(ORG, department="Kitchen")],
            ["Zed"],
        )

        self.services.update_staff_member(ORG, a["id"], {"firstName": "Thomas"})
        self.assertEqual(
            self.services.get_staff_member(ORG, a["id"])["fullName"], "Thomas Zed"
        )
        self.services.delete_staff_member(ORG, a["id"])
        self.assertIsNone(self.services.get_staff_member(ORG, a["id"]))

    def test_staff_schedules_range(self):
        for day in ("2025-01-05", "2025-01-07", "2025-01-06", "2025-01-09"):
            self.services.create_staff_schedule(
                ORG,
                {"staffId": "st1", "date": day, "shiftStart": "08:00", "shiftEnd": "16:00"},
            )
        schedules = self.services.get_staff_schedules(ORG, "2025-01-06", "2025-01-08")
        self.assertEqual([s["date"] for s in schedules], ["2025-01-06", "2025-01-07"])

        self.services.delete_staff_schedule(ORG, schedules[0]["id"])
        self.assertEqual(
            len(self.services.get_staff_schedules(ORG, "2025-01-06", "2025-01-08")), 1
        )

    def test_staff_schedule_validation(self):
        with self.assertRaises(ValidationError):
            self.services.create_staff_schedule(ORG, {"staffId": "st1", "date": "2025-01-06"})
        with self.assertRaises(ValidationError):
            self.services.create_staff_schedule(
                ORG,
                {"staffId": "st1", "date": "2025-01-06", "shiftStart": "16:00", "shiftEnd": "08:00"},
            )
        with self.assertRaises(ValidationError):
            self.services.create_staff_schedule(
                ORG,
                {"staffId": "st1", "date": "2025-01-06", "shiftStart": "noon", "shiftEnd": "17:00"},
            )

    def test_staff_schedule_times_are_normalized(self):
        schedule = self.services.create_staff_schedule(
            ORG,
            {"staffId": "st1", "date": "2025-01-06", "shiftStart": "9:00", "shiftEnd": "17:00"},
        )
        self.assertEqual(schedule["shiftStart"], "09:00")
        self.assertEqual(schedule["shiftEnd"], "17:00")


class CurriculumServiceTests(ServicesTestCase):
    def test_curriculum_defaults_and_ordering(self):
        first = self.services.create_curriculum_item(
            ORG, {"title": "Colors", "ageGroup": "Toddler"}, user_id="t1"
        )
        self.clock.advance(minutes=5)
        self.services.create_curriculum_item(
            ORG,
            {"title": "Counting", "ageGroup": "Pre-K", "tags": ["Math"], "status": "published"},
            user_id="t1",
        )
        self.assertEqual(first["status"], "draft")
        self.assertEqual(first["createdBy"], "t1")

        titles = [c["title"] for c in self.services.get_curriculum(ORG)]
        self.assertEqual(titles, ["Counting", "Colors"])
        self.assertEqual(
            [c["title"] for c in self.services.get_curriculum(ORG, search_term="math")],
            ["Counting"],
        )
        self.assertEqual(
            [c["title"] for c in self.services.get_curriculum(ORG, status="draft")],
            ["Colors"],
        )

    def test_curriculum_requires_title_and_age_group(self):
        with self.assertRaises(ValidationError):
            self.services.create_curriculum_item(ORG, {"title": "Colors"})


class ClassServiceTests(ServicesTestCase):
    def test_classes_prefix_search_and_pagination(self):
        for name in ("Robins", "Owls", "Rabbits", "Bears"):
            self.services.create_class(ORG, {"name": name, "ageGroup": "Pre-K"})
        self.assertEqual(
            [c["name"] for c in self.services.get_classes(ORG)],
            ["Bears", "Owls", "Rabbits", "Robins"],
        )
        self.assertEqual(
            [c["name"] for c in self.services.get_classes(ORG, search_term="R")],
            ["Rabbits", "Robins"],
        )
        page = self.services.get_classes(ORG, page=2, limit=2)
        self.assertEqual([c["name"] for c in page], ["Rabbits", "Robins"])
        self.assertTrue(page[0]["active"])

    def test_enrollment_lifecycle(self):
        klass = self.services.create_class(ORG, {"name": "Robins", "ageGroup": "Pre-K"})
        student = self.add_student("Ada", "Lovelace")

        enrollment = self.services.enroll_student(
            ORG, klass["id"], student["id"], {"status": "pending"}
        )
        self.assertEqual(enrollment["status"], "pending")
        self.assertEqual(enrollment["enrollmentDate"], self.clock.now)

        enrollments = self.services.get_class_enrollments(ORG, klass["id"])
        self.assertEqual(enrollments[0]["student"]["fullName"], "Ada Lovelace")

        self.services.unenroll_student(ORG, klass["id"], student["id"])
        enrollments = self.services.get_class_enrollments(ORG, klass["id"])
        self.assertEqual(enrollments[0]["status"], "inactive")
        self.assertIn("exitDate", enrollments[0])

        self.services.unenroll_student(ORG, klass["id"], student["id"], hard_delete=True)
        self.assertEqual(self.services.get_class_enrollments(ORG, klass["id"]), [])

    def test_teacher_classes(self):
        self.services.create_class(ORG, {"name": "Robins", "ageGroup": "Pre-K", "teacherId": "t1"})
        self.services.create_class(ORG, {"name": "Owls", "ageGroup": "Pre-K", "teacherId": "t2"})
        self.assertEqual(
            [c["name"] for c in self.services.get_teacher_classes(ORG, "t1")], ["Robins"]
        )

    def test_programs(self):
        with self.assertRaises(ValidationError):
            self.services.create_program(ORG, {"name": "Summer"})
        program = self.services.create_program(
            ORG,
            {"name": "Summer", "startDate": "2025-06-01", "endDate": "2025-08-31", "ageRange": "3-5"},
        )
        self.assertTrue(program["active"])
        self.assertEqual(
            len(self.services.get_programs(ORG, age_range="3-5")), 1
        )
        self.services.update_program(ORG, program["id"], {"active": False})
        self.assertFalse(self.services.get_program(ORG, program["id"])["active"])
        self.services.delete_program(ORG, program["id"])
        self.assertIsNone(self.services.get_program(ORG, program["id"]))


class GuardianServiceTests(ServicesTestCase):
    def test_guardian_records_and_linking(self):
        guardian = self.services.create_guardian(ORG, {"fullName": "Carla Adams"})
        self.assertEqual(guardian["studentIds"], [])
        linked = self.services.link_guardian_student(ORG, guardian["id"], "s1")
        self.services.link_guardian_student(ORG, guardian["id"], "s1")
        self.assertEqual(linked["studentIds"], ["s1"])
        self.assertEqual(self.services.get_guardian(ORG, guardian["id"])["studentIds"], ["s1"])

        with self.assertRaises(NotFoundError):
            self.services.link_guardian_student(ORG, "missing", "s1")

    def test_search_guardians_is_a_prefix_search(self):
        for name in ("Carla Adams", "Carl Berg", "Dana Cole"):
            self.services.create_guardian(ORG, {"fullName": name})
        self.services.create_guardian("org2", {"fullName": "Carlos Other"})
        found = [g["fullName"] for g in self.services.search_guardians(ORG, "Carl")]
        self.assertEqual(found, ["Carl Berg", "Carla Adams"])
        self.assertEqual(self.services.search_guardians(ORG, ""), [])

    def test_parent_students_and_directory(self):
        active = self.add_student("Ada", "Lovelace")
        inactive = self.add_student("Ben", "Adams", status="inactive")
        self.services.add_student_guardian(ORG, active["id"], {"userId": "p1"})
        self.services.add_student_guardian(
            ORG, inactive["id"], {"userId": "p2", "relationship": "grandparent"}
        )
        self.services.create_member(ORG, "p1", "parent", full_name="Pat One")
        self.services.create_member(ORG, "p2", "parent", full_name="Pam Two")
        self.services.create_member(ORG, "t1", "teacher", full_name="Tess")

        guardians = self.services.get_student_guardians(ORG, active["id"])
        self.assertEqual(guardians[0]["relationship"], "parent")

        students = self.services.get_parent_students(ORG, "p2")
        self.assertEqual(students[0]["id"], inactive["id"])
        self.assertEqual(students[0]["guardianRelationship"], "grandparent")

        directory = self.services.get_guardian_directory(ORG)
        self.assertEqual([g["fullName"] for g in directory], ["Pam Two", "Pat One"])
        self.assertFalse(directory[0]["active"])
        self.assertTrue(directory[1]["active"])

    def test_parent_students_return_empty_on_error(self):
        with patch.object(self.store, "list_documents", side_effect=RuntimeError("down")):
            self.assertEqual(self.services.get_parent_students(ORG, "p1"), [])

    def test_parent_children(self):
        self.add_student("Ada", "Lovelace", guardianId="p1")
        self.add_student("Ben", "Adams", guardianId="p2")
        children = self.services.get_parent_children(ORG, "p1")
        self.assertEqual([c["fullName"] for c in children], ["Ada Lovelace"])


class ClassAttendanceServiceTests(ServicesTestCase):
    def test_save_and_get_attendance(self):
        saved = self.services.save_attendance(
            ORG,
            "2025-01-06",
            "c1",
            {
                "students": {
                    "s1": {"status": "present", "timestamp": "2025-01-06T08:05:00Z"},
                    "s2": {"status": "absent", "recordedBy": "t2"},
                }
            },
            user_id="t1",
        )
        self.assertEqual(saved["createdBy"], "t1")
        self.assertEqual(
            saved["students"]["s1"]["timestamp"],
            datetime(2025, 1, 6, 8, 5, tzinfo=timezone.utc),
        )
        self.assertEqual(saved["students"]["s1"]["recordedBy"], "t1")
        self.assertEqual(saved["students"]["s2"]["recordedBy"], "t2")

        roll = self.services.get_attendance(ORG, "2025-01-06", "c1")
        self.assertEqual(roll["classId"], "c1")
        self.assertEqual(roll["date"], datetime(2025, 1, 6, tzinfo=timezone.utc))
        self.assertIsNone(self.services.get_attendance(ORG, "2025-01-06", "c2"))

    def test_second_save_updates_without_resetting_creator(self):
        self.services.save_attendance(
            ORG, "2025-01-06", "c1", {"students": {"s1": {"status": "present"}}}, "t1"
        )
        self.clock.advance(hours=1)
        self.services.save_attendance(
            ORG, "2025-01-06", "c1", {"students": {"s1": {"status": "tardy"}}}, "t2"
        )
        roll = self.services.get_attendance(ORG, "2025-01-06", "c1")
        self.assertEqual(roll["createdBy"], "t1")
        self.assertEqual(roll["updatedBy"], "t2")
        self.assertEqual(roll["students"]["s1"]["status"], "tardy")

    def test_all_classes_are_merged(self):
        self.services.save_attendance(
            ORG, "2025-01-06", "c1", {"students": {"s1": {"status": "present"}}}, "t1"
        )
        self.services.save_attendance(
            ORG, "2025-01-06", "c2", {"students": {"s2": {"status": "absent"}}}, "t1"
        )
        merged = self.services.get_attendance(ORG, "2025-01-06", "all")
        self.assertEqual(set(merged["students"]), {"s1", "s2"})

    def test_required_arguments(self):
        with self.assertRaises(ValidationError):
            self.services.get_attendance("", "2025-01-06", "c1")
        with self.assertRaises(ValidationError):
            self.services.save_attendance(ORG, "2025-01-06", "", {})
        with self.assertRaises(ValidationError):
            self.services.get_attendance(ORG, "06/01/2025", "c1")

    def test_attendance_stats(self):
        self.services.save_attendance(
            ORG,
            "2025-01-06",
            "c1",
            {"students": {"s1": {"status": "present"}, "s2": {"status": "absent"}}},
            "t1",
        )
        self.services.save_attendance(
            ORG,
            "2025-01-08",
            "c2",
            {"students": {"s3": {"status": "present"}, "s4": {"status": "unknown"}}},
            "t1",
        )
        stats = self.services.get_attendance_stats(ORG, "2025-01-05", "2025-01-09")
        self.assertEqual(stats["totalDays"], 2)
        self.assertEqual(stats["presentCount"], 2)
        self.assertEqual(stats["absentCount"], 1)
        self.assertEqual(stats["attendanceRate"], 67)
        self.assertEqual(
            [d["date"] for d in stats["dailyStats"]], ["2025-01-06", "2025-01-08"]
        )

        only_c1 = self.services.get_attendance_stats(
            ORG, "2025-01-05", "2025-01-09", class_id="c1"
        )
        self.assertEqual(only_c1["totalDays"], 1)
        self.assertEqual(only_c1["attendanceRate"], 50)

        inverted = self.services.get_attendance_stats(ORG, "2025-01-09", "2025-01-05")
        self.assertEqual(inverted["totalDays"], 0)
        self.assertEqual(inverted["attendanceRate"], 0)


class CheckInServiceTests(ServicesTestCase):
    def test_check_in_and_out(self):
        student = self.add_student("Ada", "Lovelace")
        record = self.services.check_in_student(ORG, student["id"], "t1")
        self.assertEqual(record["id"], "2025-01-06")
        self.assertEqual(record["checkIn"], "08:00")

        board = self.services.get_checkin_board(ORG, date(2025, 1, 6))
        self.assertTrue(board[0]["checkedIn"])
        self.assertEqual(board[0]["lastCheckIn"], {"time": "08:00", "by": "t1"})

        self.clock.advance(hours=8, minutes=30)
        out = self.services.check_out_student(ORG, student["id"], "t2")
        self.assertEqual(out["checkOut"], "16:30")

        board = self.services.get_checkin_board(ORG, date(2025, 1, 6))
        self.assertFalse(board[0]["checkedIn"])
        self.assertEqual(board[0]["lastCheckOut"], {"time": "16:30", "by": "t2"})

    def test_check_out_requires_check_in(self):
        student = self.add_student("Ada", "Lovelace")
        with self.assertRaises(ValidationError):
            self.services.check_out_student(ORG, student["id"], "t1")

    def test_board_lists_active_students_only(self):
        self.add_student("Zed", "Young")
        self.add_student("Amy", "Bell")
        self.add_student("Old", "Timer", status="inactive")
        board = self.services.get_checkin_board(ORG, date(2025, 1, 6))
        self.assertEqual([b["fullName"] for b in board], ["Amy Bell", "Zed Young"])
        self.assertFalse(any(b["checkedIn"] for b in board))

    def test_student_attendance_range_newest_first(self):
        for day in (3, 4, 5, 8):
            self.services.record_attendance(
                ORG, "s1", {"date": date(2025, 1, day), "checkIn": "08:00"}
            )
        records = self.services.get_student_attendance(
            ORG, "s1", date(2025, 1, 4), date(2025, 1, 5)
        )
        self.assertEqual([r["id"] for r in records], ["2025-01-05", "2025-01-04"])

    def test_record_attendance_updates_existing(self):
        self.services.record_attendance(ORG, "s1", {"date": date(2025, 1, 6), "checkIn": "08:00"})
        self.services.record_attendance(ORG, "s1", {"date": date(2025, 1, 6), "checkOut": "15:00"})
        record = self.store.get("organizations/org1/students/s1/attendance/2025-01-06").data
        self.assertEqual(record["checkIn"], "08:00")
        self.assertEqual(record["checkOut"], "15:00")

    def test_children_attendance(self):
        self.assertEqual(self.services.get_children_attendance(ORG, [], date(2025, 1, 6)), [])
        self.services.check_in_student(ORG, "s1", "t1")
        records = self.services.get_children_attendance(
            ORG, ["s1", "s2"], date(2025, 1, 6)
        )
        self.assertEqual([r["studentId"] for r in records], ["s1"])

        with patch.object(self.store, "get", side_effect=RuntimeError("down")):
            self.assertEqual(
                self.services.get_children_attendance(ORG, ["s1"], date(2025, 1, 6)), []
            )


class MealServiceTests(ServicesTestCase):
    def test_meal_plan_and_report(self):
        self.services.save_meal_plan(ORG, date(2025, 1, 6), {"breakfast": "Oats"})
        self.services.save_meal_plan(ORG, date(2025, 1, 6), {"lunch": "Soup"})
        plan = self.services.get_meal_plan(ORG, "2025-01-06")
        self.assertEqual((plan["breakfast"], plan["lunch"]), ("Oats", "Soup"))

        ada = self.add_student("Ada", "Lovelace")
        self.add_student("Ben", "Adams")
        self.services.record_student_meal(ORG, ada["id"], "2025-01-06", {"breakfast": "all"})
        self.services.record_student_meal(ORG, ada["id"], "2025-01-06", {"lunch": "some"})

        report = self.services.get_daily_meal_report(ORG, "2025-01-06")
        self.assertEqual(report["totals"], {"breakfast": 1, "lunch": 1, "snack": 0})
        rows = {r["fullName"]: r for r in report["students"]}
        self.assertEqual(rows["Ada Lovelace"]["breakfast"], "all")
        self.assertIsNone(rows["Ben Adams"]["lunch"])

        meals = self.services.get_student_meals(ORG, ada["id"], "2025-01-01", "2025-01-31")
        self.assertEqual(len(meals), 1)


class CalendarServiceTests(ServicesTestCase):
    def test_upcoming_events_window(self):
        for offset in (-1, 0, 3, 1, 2, 4, 5):
            self.services.create_event(
                ORG,
                {"title": f"E{offset}", "date": date(2025, 1, 6) + timedelta(days=offset)},
            )
        upcoming = self.services.get_upcoming_events(ORG)
        self.assertEqual([e["title"] for e in upcoming], ["E0", "E1", "E2", "E3", "E4"])

    def test_teacher_lessons(self):
        self.services.create_lesson(ORG, {"title": "Art", "teacherId": "t1", "date": "2025-01-07"})
        self.services.create_lesson(ORG, {"title": "Old", "teacherId": "t1", "date": "2025-01-01"})
        self.services.create_lesson(ORG, {"title": "Music", "teacherId": "t2", "date": "2025-01-07"})
        lessons = self.services.get_teacher_lessons(ORG, "t1")
        self.assertEqual([l["title"] for l in lessons], ["Art"])


class WaitlistServiceTests(ServicesTestCase):
    def setUp(self):
        super().setUp()
        self.open_registration()

    def register(self):
        return self.services.create_public_registration(
            {
                "organizationId": ORG,
                "firstName": "Ada",
                "lastName": "Lovelace",
                "guardianName": "Anne",
            }
        )

    def test_registration_creates_waitlist_entry_and_notification(self):
        student = self.register()
        self.assertEqual(student["status"], "waitlist")
        waitlist = self.services.get_waitlist(ORG)
        self.assertEqual(waitlist[0]["studentId"], student["id"])
        self.assertEqual(waitlist[0]["student"]["fullName"], "Ada Lovelace")

        notifications = self.services.get_notifications(ORG, unread_only=True)
        self.assertEqual(notifications[0]["type"], "waitlist")
        self.assertIn("Anne has registered Ada Lovelace", notifications[0]["message"])

    def test_registration_validation(self):
        with self.assertRaises(ValidationError):
            self.services.create_public_registration({"firstName": "A", "lastName": "B"})
        with self.assertRaises(ValidationError):
            self.services.create_public_registration({"organizationId": ORG, "firstName": "A"})

    def test_registration_for_unknown_organization(self):
        with self.assertRaises(NotFoundError):
            self.services.create_public_registration(
                {"organizationId": "does-not-exist", "firstName": "A", "lastName": "B"}
            )
        self.assertEqual(self.store.list_documents("organizations/does-not-exist/students"), [])

    def test_registration_for_private_organization(self):
        self.store.set("organizations/org2", {"name": "Private", "allowPublicRegistration": False})
        with self.assertRaises(NotFoundError):
            self.services.create_public_registration(
                {"organizationId": "org2", "firstName": "A", "lastName": "B"}
            )
        self.assertEqual(self.store.list_documents("organizations/org2/students"), [])
        self.assertEqual(self.store.list_documents("organizations/org2/notifications"), [])

    def test_notification_failure_does_not_fail_registration(self):
        store_add = self.store.add

        def add(collection_path, data):
            if collection_path.endswith("/notifications"):
                raise RuntimeError("notifications down")
            return store_add(collection_path, data)

        with patch.object(self.store, "add", side_effect=add):
            student = self.register()
        self.assertEqual(student["status"], "waitlist")
        self.assertEqual(self.services.get_notifications(ORG), [])

    def test_approve(self):
        student = self.register()
        approved = self.services.approve_waitlist_entry(ORG, student["id"], "c1", "2025-02-01")
        self.assertEqual(approved["status"], "active")
        enrollment = self.services.get_class_enrollments(ORG, "c1")[0]
        self.assertEqual(enrollment["startDate"], "2025-02-01")
        status = self.services.get_registration_status(ORG, student["id"])
        self.assertTrue(status["reviewed"])
        self.assertTrue(status["approved"])

    def test_reject(self):
        student = self.register()
        self.services.reject_waitlist_entry(ORG, student["id"], "Full")
        status = self.services.get_registration_status(ORG, student["id"])
        self.assertEqual(status["status"], "rejected")
        self.assertFalse(status["approved"])
        self.assertEqual(status["rejectionReason"], "Full")

    def test_approve_without_waitlist_entry_writes_nothing(self):
        student = self.add_student("Ada", "L", status="inactive")
        with self.assertRaises(NotFoundError):
            self.services.approve_waitlist_entry(ORG, student["id"], "c1", "2025-02-01")
        self.assertEqual(self.services.get_student(ORG, student["id"])["status"], "inactive")
        self.assertEqual(self.services.get_class_enrollments(ORG, "c1"), [])

    def test_reject_without_waitlist_entry_writes_nothing(self):
        student = self.add_student("Ada", "L", status="inactive")
        with self.assertRaises(NotFoundError):
            self.services.reject_waitlist_entry(ORG, student["id"], "Full")
        self.assertEqual(self.services.get_student(ORG, student["id"])["status"], "inactive")

    def test_unknown_registration(self):
        with self.assertRaises(NotFoundError):
            self.services.get_registration_status(ORG, "missing")

    def test_waitlist_returns_empty_on_error(self):
        with patch.object(self.store, "query", side_effect=RuntimeError("down")):
            self.assertEqual(self.services.get_waitlist(ORG), [])


class MessageServiceTests(ServicesTestCase):
    sender = {"id": "u1", "name": "Tess Teacher", "role": "teacher"}
    recipients = [{"id": "p1", "name": "Pat"}]

    def test_send_list_and_read(self):
        first = self.services.send_message(
            ORG, self.sender, self.recipients, "Field trip", "Bring boots"
        )
        self.clock.advance(minutes=1)
        self.services.send_message(ORG, self.sender, self.recipients, "Lunch", "Pizza day")
        self.assertFalse(first["read"])
        self.assertEqual(
            [m["subject"] for m in self.services.get_messages(ORG)], ["Lunch", "Field trip"]
        )
        self.assertEqual(
            [m["subject"] for m in self.services.get_messages(ORG, search_term="boots")],
            ["Field trip"],
        )
        self.assertEqual(len(self.services.get_messages(ORG, search_term="tess")), 2)

        self.assertEqual(self.services.count_unread_messages(ORG), 2)
        self.services.mark_message_read(ORG, first["id"])
        self.assertEqual(self.services.count_unread_messages(ORG), 1)
        self.services.delete_message(ORG, first["id"])
        self.assertEqual(len(self.services.get_messages(ORG)), 1)

    def test_validation(self):
        with self.assertRaises(ValidationError):
            self.services.send_message(ORG, self.sender, self.recipients, "", "x")
        with self.assertRaises(ValidationError):
            self.services.send_message(ORG, self.sender, [], "Hi", "x")
        with self.assertRaises(ValidationError):
            self.services.send_message(ORG, self.sender, self.recipients, "x" * 201, "x")

    def test_mark_notification_read(self):
        self.open_registration()
        self.services.create_public_registration(
            {"organizationId": ORG, "firstName": "Ada", "lastName": "L"}
        )
        notification = self.services.get_notifications(ORG)[0]
        self.services.mark_notification_read(ORG, notification["id"])
        self.assertEqual(self.services.get_notifications(ORG, unread_only=True), [])


class MemberServiceTests(ServicesTestCase):
    def test_create_member_uses_role_defaults(self):
        member = self.services.create_member(ORG, "u1", "Teacher", email="t@example.com")
        self.assertEqual(member["role"], "teacher")
        self.assertTrue(member["permissions"]["curriculum"]["create"])
        self.assertFalse(member["permissions"]["billing"]["view"])
        self.assertEqual(self.services.get_user_organizations("u1"), [])

    def test_existing_member_only_changes_role(self):
        self.services.create_member(ORG, "u1", "teacher")
        self.services.update_user_permissions(
            ORG, "u1", {"billing": {"view": True, "create": False, "edit": False, "delete": False}}
        )
        member = self.services.create_member(ORG, "u1", "staff")
        self.assertEqual(member["role"], "staff")
        self.assertEqual(list(member["permissions"]), ["billing"])

    def test_unknown_role_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.services.create_member(ORG, "u1", "principal")

    def test_update_role_and_reset_permissions(self):
        self.services.create_member(ORG, "u1", "teacher")
        self.services.update_user_role(ORG, "u1", "parent")
        self.assertTrue(
            self.services.get_user_permissions(ORG, "u1")["permissions"]["classes"]["view"]
        )
        self.services.update_user_role(ORG, "u1", "parent", reset_permissions=True)
        result = self.services.get_user_permissions(ORG, "u1")
        self.assertEqual(result["role"], "parent")
        self.assertFalse(result["permissions"]["classes"]["view"])

    def test_merge_permissions(self):
        self.services.create_member(ORG, "u1", "staff")
        self.services.update_user_permissions(
            ORG,
            "u1",
            {"classes": {"view": True, "create": True, "edit": False, "delete": False}},
            merge=True,
        )
        permissions = self.services.get_user_permissions(ORG, "u1")["permissions"]
        self.assertTrue(permissions["classes"]["create"])
        self.assertTrue(permissions["students"]["view"])

    def test_missing_member(self):
        with self.assertRaises(NotFoundError):
            self.services.get_user_permissions(ORG, "ghost")

    def test_resolve_access(self):
        self.services.create_member(ORG, "u1", "teacher")
        self.assertEqual(self.services.resolve_access(ORG, "u1").role, UserRole.TEACHER)
        self.assertIsNone(self.services.resolve_access(ORG, "ghost").role)
        admin = self.services.resolve_access(ORG, "ghost", "admin@preschoolpro.com")
        self.assertTrue(admin.is_admin)


class HelperTests(unittest.TestCase):
    def test_day_key(self):
        self.assertEqual(day_key(date(2025, 1, 6)), "2025-01-06")
        self.assertEqual(
            day_key(datetime(2025, 1, 6, 23, 59, tzinfo=timezone.utc)), "2025-01-06"
        )
        with self.assertRaises(ValidationError):
            day_key("yesterday")


if __name__ == "__main__":
    unittest.main()
