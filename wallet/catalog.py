import logging
from decimal import Decimal
from typing import Optional

from .errors import (
    CategoryNotFound,
    ConcurrencyConflict,
    CourseNotFound,
    CustomerNotFound,
    DocumentExists,
    DocumentNotFound,
    EmailAlreadyRegistered,
    TeacherNotFound,
)
from .models import (
    CatalogEntry,
    Category,
    Course,
    CreateCourseRequest,
    Customer,
    ProfileUpdateRequest,
    RegisterCustomerRequest,
    Teacher,
)
from .store import (
    CATEGORIES,
    COURSES,
    CUSTOMER_EMAILS,
    CUSTOMERS,
    ENROLLMENTS,
    TEACHERS,
    DocumentStore,
    InMemoryDocumentStore,
)

logger = logging.getLogger(__name__)

DEMO_TEACHERS = [
    {"name": "Maya Patel", "bio": "Hatha teacher focused on alignment and breath"},
    {"name": "Arjun Rao", "bio": "Dynamic vinyasa and strength sequences"},
    {"name": "Lena Hart", "bio": "Yin and restorative practice"},
]

DEMO_CATEGORIES = ["Hatha", "Vinyasa", "Yin"]

DEMO_COURSES = [
    {"name": "Morning Hatha Flow", "price": Decimal("20.00"), "teacher_id": 1, "category_id": 1,
     "level": "Beginner", "duration": "60 min", "room": "Lotus Room"},
    {"name": "Power Vinyasa", "price": Decimal("35.00"), "teacher_id": 2, "category_id": 2,
     "level": "Intermediate", "duration": "75 min", "room": "Sun Room"},
    {"name": "Restorative Yin", "price": Decimal("15.00"), "teacher_id": 3, "category_id": 3,
     "level": "All levels", "duration": "45 min", "room": "Moon Room"},
]


class CatalogService:
    """Customers, courses and course ownership. Never touches balances."""

    def __init__(self, store: Optional[DocumentStore] = None):
        self.store = store or InMemoryDocumentStore()

    def register_customer(self, request: RegisterCustomerRequest) -> Customer:
        email = _normalize_email(request.email)
        if self.store.get(CUSTOMER_EMAILS, email) is not None:
            raise EmailAlreadyRegistered(f"Email {email} is already registered")

        customer = Customer(
            customer_id=self.store.next_sequence(CUSTOMERS),
            name=request.name.strip(),
            email=email,
            phone=request.phone,
            dob=request.dob,
            image=request.image,
        )
        key = str(customer.customer_id)
        try:
            (self.store.batch()
                .create(CUSTOMER_EMAILS, email, {"customerId": customer.customer_id})
                .create(CUSTOMERS, key, customer.to_document())
                .commit())
        except DocumentExists as e:
            if e.collection == CUSTOMER_EMAILS:
                raise EmailAlreadyRegistered(f"Email {email} is already registered")
            raise ConcurrencyConflict(f"Customer id {customer.customer_id} already used")

        logger.info("Registered customer %s", customer.customer_id)
        return customer

    def get_customer(self, customer_id: int) -> Customer:
        snapshot = self.store.find_one(CUSTOMERS, "customerId", customer_id)
        if snapshot is None:
            raise CustomerNotFound(f"Customer {customer_id} not found")
        return Customer.from_document(snapshot.data)

    def update_profile(self, customer_id: int, request: ProfileUpdateRequest) -> Customer:
        snapshot = self.store.find_one(CUSTOMERS, "customerId", customer_id)
        if snapshot is None:
            raise CustomerNotFound(f"Customer {customer_id} not found")

        changes = request.model_dump(by_alias=True, exclude_unset=True, exclude_none=True)
        if not changes:
            return Customer.from_document(snapshot.data)

        batch = self.store.batch()
        old_email = snapshot.data["email"]
        if "email" in changes:
            changes["email"] = _normalize_email(changes["email"])
            if changes["email"] != old_email:
                batch.create(CUSTOMER_EMAILS, changes["email"], {"customerId": customer_id})
                batch.delete(CUSTOMER_EMAILS, old_email)
        batch.update(CUSTOMERS, snapshot.key, changes)

        try:
            batch.commit()
        except DocumentExists:
            raise EmailAlreadyRegistered(f"Email {changes['email']} is already registered")
        except DocumentNotFound:
            raise ConcurrencyConflict(f"Customer {customer_id} was removed during profile update")

        logger.info("Updated profile fields %s for customer %s", sorted(changes), customer_id)
        return self.get_customer(customer_id)

    def add_teacher(self, name: str, bio: Optional[str] = None, image_url: Optional[str] = None) -> Teacher:
        teacher = Teacher(teacher_id=self.store.next_sequence(TEACHERS), name=name, bio=bio, image_url=image_url)
        self.store.batch().create(TEACHERS, str(teacher.teacher_id), teacher.to_document()).commit()
        return teacher

    def add_category(self, name: str) -> Category:
        category = Category(category_id=self.store.next_sequence(CATEGORIES), name=name.strip())
        self.store.batch().create(CATEGORIES, str(category.category_id), category.to_document()).commit()
        return category

    def list_teachers(self, search: Optional[str] = None) -> list[Teacher]:
        """Teachers ordered by id, optionally matching search in name or bio."""
        teachers = sorted(
            (Teacher.from_document(s.data) for s in self.store.scan(TEACHERS)),
            key=lambda t: t.teacher_id,
        )
        query = (search or "").strip().lower()
        if not query:
            return teachers
        return [t for t in teachers if query in t.name.lower() or query in (t.bio or "").lower()]

    def list_categories(self) -> list[Category]:
        return sorted(
            (Category.from_document(s.data) for s in self.store.scan(CATEGORIES)),
            key=lambda c: c.category_id,
        )

    def add_course(self, request: CreateCourseRequest) -> Course:
        if request.teacher_id is not None and self.store.get(TEACHERS, str(request.teacher_id)) is None:
            raise TeacherNotFound(f"Teacher {request.teacher_id} not found")
        if request.category_id is not None and self.store.get(CATEGORIES, str(request.category_id)) is None:
            raise CategoryNotFound(f"Category {request.category_id} not found")

        course = Course(course_id=self.store.next_sequence(COURSES), **request.model_dump())
        self.store.batch().create(COURSES, str(course.course_id), course.to_document()).commit()
        logger.info("Added course %s (%s)", course.course_id, course.name)
        return self._resolve([course])[0]

    def get_course(self, course_id: int) -> Course:
        snapshot = self.store.find_one(COURSES, "courseId", course_id)
        if snapshot is None:
            raise CourseNotFound(f"Course {course_id} not found")
        return self._resolve([Course.from_document(snapshot.data)])[0]

    def list_courses(self, category: Optional[str] = None, search: Optional[str] = None) -> list[Course]:
        """Courses ordered by id.

        category matches the category name exactly; search is a
        case-insensitive substring of the course name, instructor or category.
        """
        courses = self._resolve(sorted(
            (Course.from_document(s.data) for s in self.store.scan(COURSES)),
            key=lambda c: c.course_id,
        ))
        if category:
            courses = [c for c in courses if c.category == category]
        query = (search or "").strip().lower()
        if query:
            courses = [
                c for c in courses
                if any(query in (value or "").lower() for value in (c.name, c.instructor, c.category))
            ]
        return courses

    def browse_courses(
        self,
        customer_id: Optional[int] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
    ) -> list[CatalogEntry]:
        """The marketplace listing, with the viewer's own courses flagged."""
        owned_ids = self._owned_course_ids(customer_id) if customer_id is not None else set()
        return [
            CatalogEntry(**course.model_dump(), owned=course.course_id in owned_ids)
            for course in self.list_courses(category, search)
        ]

    def list_owned_courses(self, customer_id: int) -> list[Course]:
        owned_ids = self._owned_course_ids(customer_id)
        return [course for course in self.list_courses() if course.course_id in owned_ids]

    def seed_demo_data(self) -> bool:
        """Fill an empty store with a demo catalog and one customer."""
        if self.store.scan(COURSES) or self.store.scan(CUSTOMERS):
            return False
        for teacher in DEMO_TEACHERS:
            self.add_teacher(**teacher)
        for name in DEMO_CATEGORIES:
            self.add_category(name)
        for course in DEMO_COURSES:
            self.add_course(CreateCourseRequest(**course))
        self.register_customer(RegisterCustomerRequest(name="Demo Student", email="student@example.com"))
        logger.info("Seeded demo catalog with %d courses", len(DEMO_COURSES))
        return True

    def _owned_course_ids(self, customer_id: int) -> set[int]:
        self.get_customer(customer_id)
        return {s.data["courseId"] for s in self.store.find(ENROLLMENTS, "customerId", customer_id)}

    def _resolve(self, courses: list[Course]) -> list[Course]:
        # Teacher and category names come from their collections when the course references them
        teachers = {t.teacher_id: t.name for t in self.list_teachers()}
        categories = {c.category_id: c.name for c in self.list_categories()}
        resolved = []
        for course in courses:
            updates = {}
            if course.teacher_id in teachers:
                updates["instructor"] = teachers[course.teacher_id]
            if course.category_id in categories:
                updates["category"] = categories[course.category_id]
            resolved.append(course.model_copy(update=updates) if updates else course)
        return resolved


def _normalize_email(email: str) -> str:
    return email.strip().lower()
