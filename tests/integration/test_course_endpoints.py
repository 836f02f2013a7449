import uuid
from decimal import Decimal

import pytest

from conftest import auth_headers
from marketplace.models import CourseStatus, Payment, PaymentStatus, User, UserRole

pytestmark = pytest.mark.integration


@pytest.fixture
async def instructor(make_user):
    return await make_user(email="instructor@example.com", role=UserRole.INSTRUCTOR)


@pytest.fixture
async def admin(make_user):
    return await make_user(email="admin@example.com", role=UserRole.ADMIN)


def course_body(category_id, **overrides):
    body = {
        "title": "Intro to Python",
        "description": "Variables, loops and functions",
        "categoryId": str(category_id),
        "price": 49.99,
        "level": "beginner",
    }
    body.update(overrides)
    return body


class TestCourseListing:
    async def test_lists_only_published_courses(self, client, instructor, make_course):
        published = await make_course(instructor, title="Published")
        await make_course(instructor, title="Draft", status=CourseStatus.DRAFT)

        response = await client.get("/courses")

        assert response.status_code == 200
        data = response.json()
        assert [c["id"] for c in data["courses"]] == [str(published.id)]
        assert data["courses"][0]["instructor"]["id"] == str(instructor.id)
        assert data["courses"][0]["category"]["id"] == str(published.category_id)
        assert data["pagination"] == {
            "currentPage": 1,
            "totalPages": 1,
            "totalItems": 1,
            "hasNextPage": False,
            "hasPrevPage": False,
        }

    async def test_search_and_filters(self, client, instructor, make_course, make_category):
        web = await make_category("Web")
        await make_course(instructor, title="Django for APIs", price="30.00", category=web, level="advanced")
        await make_course(instructor, title="Flask basics", price="10.00", category=web, level="beginner")
        await make_course(instructor, title="Django ORM deep dive", price="80.00")

        search = await client.get("/courses", params={"search": "django"})
        by_category = await client.get("/courses", params={"categoryId": str(web.id)})
        by_level = await client.get("/courses", params={"level": "beginner"})
        by_price = await client.get("/courses", params={"minPrice": 20, "maxPrice": 50})

        assert sorted(c["title"] for c in search.json()["courses"]) == ["Django ORM deep dive", "Django for APIs"]
        assert len(by_category.json()["courses"]) == 2
        assert [c["title"] for c in by_level.json()["courses"]] == ["Flask basics"]
        assert [c["title"] for c in by_price.json()["courses"]] == ["Django for APIs"]

    async def test_sort_by_price(self, client, instructor, make_course):
        await make_course(instructor, title="Mid", price="20.00")
        await make_course(instructor, title="Cheap", price="5.00")
        await make_course(instructor, title="Pricey", price="99.00")

        response = await client.get("/courses", params={"sortBy": "price", "order": "asc"})

        assert [c["title"] for c in response.json()["courses"]] == ["Cheap", "Mid", "Pricey"]

    async def test_pagination(self, client, instructor, make_course):
        for _ in range(3):
            await make_course(instructor)

        response = await client.get("/courses", params={"page": 2, "limit": 2})

        data = response.json()
        assert len(data["courses"]) == 1
        assert data["pagination"]["totalPages"] == 2
        assert data["pagination"]["hasPrevPage"] is True
        assert data["pagination"]["hasNextPage"] is False

    async def test_invalid_pagination(self, client):
        assert (await client.get("/courses", params={"page": 0})).status_code == 422
        assert (await client.get("/courses", params={"limit": 101})).status_code == 422

    async def test_get_course(self, client, instructor, make_course):
        course = await make_course(instructor, price="50.00", discount_price="40.00")

        response = await client.get(f"/courses/{course.id}")

        assert response.status_code == 200
        data = response.json()
        assert data["price"] == 50.0
        assert data["discountPrice"] == 40.0
        assert data["enrollmentCount"] == 0
        assert data["instructor"]["firstName"] == instructor.first_name

    async def test_get_unknown_course(self, client):
        response = await client.get("/courses/00000000-0000-0000-0000-000000000000")

        assert response.status_code == 404
        assert response.json()["detail"] == "Course not found"


class TestCourseCreate:
    async def test_instructor_creates_draft(self, client, instructor, make_category):
        category = await make_category()

        response = await client.post("/courses/create", json=course_body(category.id), headers=auth_headers(instructor))

        assert response.status_code == 201
        data = response.json()
        assert data["slug"] == "intro-to-python"
        assert data["status"] == "DRAFT"
        assert data["instructorId"] == str(instructor.id)
        assert data["price"] == 49.99

    async def test_slug_made_unique(self, client, instructor, make_category):
        category = await make_category()
        headers = auth_headers(instructor)

        first = await client.post("/courses/create", json=course_body(category.id), headers=headers)
        second = await client.post("/courses/create", json=course_body(category.id), headers=headers)

        assert first.json()["slug"] == "intro-to-python"
        assert second.json()["slug"] == "intro-to-python-2"

    async def test_student_cannot_create(self, client, make_user, make_category):
        student = await make_user()
        category = await make_category()

        response = await client.post("/courses/create", json=course_body(category.id), headers=auth_headers(student))

        assert response.status_code == 403
        assert response.json()["detail"] == "Insufficient permissions"

    async def test_unverified_instructor_cannot_create(self, client, make_user, make_category):
        unverified = await make_user(role=UserRole.INSTRUCTOR, verified=False)
        category = await make_category()

        response = await client.post("/courses/create", json=course_body(category.id), headers=auth_headers(unverified))

        assert response.status_code == 403
        assert response.json()["detail"] == "Email verification required"

    async def test_unknown_category(self, client, instructor):
        body = course_body(uuid.uuid4())

        response = await client.post("/courses/create", json=body, headers=auth_headers(instructor))

        assert response.status_code == 404
        assert response.json()["detail"] == "Category not found"

    async def test_discount_above_price_rejected(self, client, instructor, make_category):
        category = await make_category()

        response = await client.post(
            "/courses/create",
            json=course_body(category.id, price=10, discountPrice=20),
            headers=auth_headers(instructor),
        )

        assert response.status_code == 422


class TestCourseUpdate:
    async def test_owner_publishes_course(self, client, instructor, make_course):
        course = await make_course(instructor, status=CourseStatus.DRAFT)

        response = await client.patch(
            f"/courses/{course.id}", json={"status": "PUBLISHED", "price": 25}, headers=auth_headers(instructor)
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "PUBLISHED"
        assert data["publishedAt"] is not None
        assert data["price"] == 25.0

    async def test_other_instructor_forbidden(self, client, instructor, make_user, make_course):
        course = await make_course(instructor)
        rival = await make_user(role=UserRole.INSTRUCTOR)

        response = await client.patch(f"/courses/{course.id}", json={"title": "Mine now"}, headers=auth_headers(rival))

        assert response.status_code == 403

    async def test_admin_can_edit_any_course(self, client, instructor, admin, make_course):
        course = await make_course(instructor)

        response = await client.patch(f"/courses/{course.id}", json={"title": "Edited"}, headers=auth_headers(admin))

        assert response.status_code == 200
        assert response.json()["title"] == "Edited"

    async def test_discount_cannot_exceed_existing_price(self, client, instructor, make_course):
        course = await make_course(instructor, price="20.00")

        response = await client.patch(
            f"/courses/{course.id}", json={"discountPrice": 30}, headers=auth_headers(instructor)
        )

        assert response.status_code == 400


class TestInstructorCourses:
    async def test_own_courses_with_revenue(self, client, session_factory, instructor, make_user, make_course):
        sold = await make_course(instructor, title="Sold")
        await make_course(instructor, title="Draft", status=CourseStatus.DRAFT)
        other_instructor = await make_user(role=UserRole.INSTRUCTOR)
        await make_course(other_instructor, title="Not mine")
        buyer = await make_user()
        async with session_factory() as session:
            for intent_id, status in (("pi_a", PaymentStatus.COMPLETED), ("pi_b", PaymentStatus.PENDING)):
                session.add(Payment(
                    user_id=buyer.id,
                    course_id=sold.id,
                    amount=Decimal("50.00"),
                    platform_fee=Decimal("5.00"),
                    instructor_amount=Decimal("45.00"),
                    stripe_payment_intent_id=intent_id,
                    status=status,
                ))
            await session.commit()

        response = await client.get("/courses/instructor", headers=auth_headers(instructor))

        assert response.status_code == 200
        courses = {c["title"]: c for c in response.json()["courses"]}
        assert set(courses) == {"Sold", "Draft"}
        assert courses["Sold"]["totalRevenue"] == 50.0
        assert courses["Draft"]["totalRevenue"] == 0

    async def test_students_forbidden(self, client, make_user):
        student = await make_user()

        response = await client.get("/courses/instructor", headers=auth_headers(student))

        assert response.status_code == 403

    async def test_demoted_instructor_loses_access(self, client, session_factory, instructor):
        headers = auth_headers(instructor)
        async with session_factory() as session:
            db_user = await session.get(User, instructor.id)
            db_user.role = UserRole.STUDENT
            await session.commit()

        response = await client.get("/courses/instructor", headers=headers)

        assert response.status_code == 403


class TestCategories:
    async def test_list_with_published_counts(self, client, instructor, make_course, make_category):
        busy = await make_category("Busy")
        await make_category("Empty")
        await make_course(instructor, category=busy)
        await make_course(instructor, category=busy, status=CourseStatus.DRAFT)

        response = await client.get("/categories")

        assert response.status_code == 200
        counts = {c["name"]: c["courseCount"] for c in response.json()}
        assert counts == {"Busy": 1, "Empty": 0}

    async def test_admin_creates_category(self, client, admin):
        response = await client.post(
            "/categories", json={"name": "Data Science", "description": "Numbers"}, headers=auth_headers(admin)
        )

        assert response.status_code == 201
        assert response.json()["slug"] == "data-science"

    async def test_duplicate_category(self, client, admin, make_category):
        await make_category("Design")

        response = await client.post("/categories", json={"name": "design"}, headers=auth_headers(admin))

        assert response.status_code == 400

    async def test_non_admin_cannot_create_category(self, client, instructor):
        response = await client.post("/categories", json={"name": "Nope"}, headers=auth_headers(instructor))
        assert response.status_code == 403
