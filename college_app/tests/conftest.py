import itertools
from datetime import date, timedelta
from decimal import Decimal
from unittest import mock

import pytest
from rest_framework.test import APIClient

from college_app import identity
from college_app.models import (
    User, Department, Batch, Subject, Enrollment, Fee, Complaint, CollegeSettings,
)

_uid_counter = itertools.count(1)


@pytest.fixture(autouse=True)
def fake_identity():
    """Replace every identity provider call; no test talks to Firebase"""
    with mock.patch.object(identity, 'create_account') as create_account, \
            mock.patch.object(identity, 'delete_account') as delete_account, \
            mock.patch.object(identity, 'update_account') as update_account, \
            mock.patch.object(identity, 'verify_token') as verify_token:
        create_account.side_effect = lambda email, password, display_name=None: f'uid-{email}'
        yield mock.Mock(
            create_account=create_account,
            delete_account=delete_account,
            update_account=update_account,
            verify_token=verify_token,
        )


@pytest.fixture
def make_user(db):
    def _make_user(role, department=None, **extra):
        n = next(_uid_counter)
        return User.objects.create(
            firebase_uid=extra.pop('firebase_uid', f'firebase-{n}'),
            email=extra.pop('email', f'user{n}@college.edu'),
            full_name=extra.pop('full_name', f'{role.title()} {n}'),
            role=role,
            department=department,
            **extra,
        )
    return _make_user


@pytest.fixture
def department(db):
    return Department.objects.create(name='Computer Science', code='CSE')


@pytest.fixture
def other_department(db):
    return Department.objects.create(name='Mechanical Engineering', code='MECH')


@pytest.fixture
def college(db):
    return CollegeSettings.objects.create(college_name='Test College', academic_year='2025-2026')


@pytest.fixture
def principal(make_user):
    return make_user(User.PRINCIPAL, email='principal@college.edu')


@pytest.fixture
def hod(make_user, department):
    user = make_user(User.HOD, department=department, email='hod@college.edu')
    department.hod = user
    department.save()
    return user


@pytest.fixture
def other_hod(make_user, other_department):
    return make_user(User.HOD, department=other_department, email='hod.mech@college.edu')


@pytest.fixture
def faculty(make_user, department):
    return make_user(User.FACULTY, department=department, email='faculty@college.edu')


@pytest.fixture
def batch(department):
    return Batch.objects.create(name='CSE 2025', year=1, semester=1, department=department)


@pytest.fixture
def other_batch(other_department):
    return Batch.objects.create(name='MECH 2025', year=1, semester=1, department=other_department)


@pytest.fixture
def subject(batch, faculty):
    return Subject.objects.create(
        name='Data Structures', code='CS201', department=batch.department, batch=batch, faculty=faculty
    )


@pytest.fixture
def student(make_user, department, batch):
    user = make_user(User.STUDENT, department=department, email='student@college.edu', student_id='CSE001')
    Enrollment.objects.create(student=user, batch=batch, academic_year='2025-2026')
    return user


@pytest.fixture
def other_student(make_user, other_department, other_batch):
    user = make_user(User.STUDENT, department=other_department, email='mech.student@college.edu',
                     student_id='MECH001')
    Enrollment.objects.create(student=user, batch=other_batch, academic_year='2025-2026')
    return user


@pytest.fixture
def make_fee(db):
    def _make_fee(student, amount='1000.00', **extra):
        return Fee.objects.create(
            student=student,
            amount=Decimal(amount),
            due_date=extra.pop('due_date', date.today() + timedelta(days=30)),
            fee_type=extra.pop('fee_type', 'TUITION'),
            academic_year=extra.pop('academic_year', '2025-2026'),
            **extra,
        )
    return _make_fee


@pytest.fixture
def make_complaint(db):
    def _make_complaint(student, **extra):
        return Complaint.objects.create(
            student=student,
            title=extra.pop('title', 'Broken projector'),
            description=extra.pop('description', 'The projector in room 101 does not work.'),
            **extra,
        )
    return _make_complaint


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def client_for():
    def _client_for(user):
        client = APIClient()
        client.force_authenticate(user=user)
        return client
    return _client_for
