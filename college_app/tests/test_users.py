from io import BytesIO

import openpyxl
import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from rest_framework.exceptions import ValidationError

from college_app import identity, services
from college_app.models import User, Enrollment, Department, AuditLog


def _new_user_payload(**overrides):
    payload = {
        'email': 'new.faculty@college.edu',
        'password': 'secret123',
        'full_name': 'New Faculty',
        'role': 'FACULTY',
    }
    payload.update(overrides)
    return payload


@pytest.mark.django_db
class TestUserCreation:
    def test_principal_creates_user(self, client_for, principal, department, fake_identity):
        response = client_for(principal).post(
            '/api/admin/users/', _new_user_payload(department=department.id), format='json'
        )
        assert response.status_code == 201
        assert response.data['email'] == 'new.faculty@college.edu'
        assert response.data['department']['code'] == 'CSE'

        user = User.objects.get(email='new.faculty@college.edu')
        assert user.firebase_uid == 'uid-new.faculty@college.edu'
        fake_identity.create_account.assert_called_once_with(
            'new.faculty@college.edu', 'secret123', display_name='New Faculty'
        )
        assert AuditLog.objects.filter(event_type='USER_CREATE', record_id=user.id).exists()

    def test_student_with_batch_is_enrolled(self, client_for, principal, batch, college):
        response = client_for(principal).post('/api/admin/users/', _new_user_payload(
            email='fresher@college.edu', role='STUDENT', batch=batch.id, student_id='CSE099',
        ), format='json')
        assert response.status_code == 201
        enrollment = Enrollment.objects.get(student__email='fresher@college.edu')
        assert enrollment.batch == batch
        assert enrollment.academic_year == '2025-2026'
        assert enrollment.student.department == batch.department

    def test_local_duplicate_email_is_a_conflict(self, client_for, principal, faculty, fake_identity):
        response = client_for(principal).post(
            '/api/admin/users/', _new_user_payload(email=faculty.email), format='json'
        )
        assert response.status_code == 409
        fake_identity.create_account.assert_not_called()

    def test_provider_duplicate_email_is_a_conflict(self, client_for, principal, fake_identity):
        fake_identity.create_account.side_effect = identity.EmailAlreadyExists('already registered')
        response = client_for(principal).post('/api/admin/users/', _new_user_payload(), format='json')
        assert response.status_code == 409
        assert not User.objects.filter(email='new.faculty@college.edu').exists()

    def test_provider_outage_is_a_bad_gateway(self, client_for, principal, fake_identity):
        fake_identity.create_account.side_effect = identity.IdentityProviderError('unavailable')
        response = client_for(principal).post('/api/admin/users/', _new_user_payload(), format='json')
        assert response.status_code == 502

    def test_failed_local_write_deletes_provider_account(self, principal, fake_identity):
        # the provider hands back a uid that is already taken locally
        fake_identity.create_account.side_effect = None
        fake_identity.create_account.return_value = principal.firebase_uid

        with pytest.raises(Exception):
            services.create_user_account('clash@college.edu', 'secret123', 'Clash', User.FACULTY)

        fake_identity.delete_account.assert_called_once_with(principal.firebase_uid)
        assert not User.objects.filter(email='clash@college.edu').exists()

    def test_hod_requires_department(self, client_for, principal):
        response = client_for(principal).post('/api/admin/users/', _new_user_payload(role='HOD'), format='json')
        assert response.status_code == 400

    def test_short_password_is_rejected(self, client_for, principal):
        response = client_for(principal).post(
            '/api/admin/users/', _new_user_payload(password='123'), format='json'
        )
        assert response.status_code == 400
        assert 'password' in response.data['details']


@pytest.mark.django_db
class TestLastPrincipal:
    def test_cannot_demote_last_principal(self, client_for, principal):
        response = client_for(principal).put(
            f'/api/admin/users/{principal.id}/', {'role': 'FACULTY'}, format='json'
        )
        assert response.status_code == 400
        principal.refresh_from_db()
        assert principal.role == User.PRINCIPAL

    def test_cannot_deactivate_last_principal(self, client_for, principal):
        response = client_for(principal).put(
            f'/api/admin/users/{principal.id}/', {'is_active': False}, format='json'
        )
        assert response.status_code == 400
        principal.refresh_from_db()
        assert principal.is_active

    def test_cannot_delete_last_principal(self, principal):
        with pytest.raises(ValidationError):
            services.ensure_principal_remains(principal, deleting=True)

    def test_cannot_delete_own_account(self, client_for, principal):
        response = client_for(principal).delete(f'/api/admin/users/{principal.id}/')
        assert response.status_code == 400
        assert User.objects.filter(pk=principal.pk).exists()

    def test_second_principal_can_be_demoted(self, client_for, principal, make_user, fake_identity):
        deputy = make_user(User.PRINCIPAL, email='deputy@college.edu')
        response = client_for(principal).put(
            f'/api/admin/users/{deputy.id}/', {'role': 'FACULTY', 'full_name': 'Deputy Principal'}, format='json'
        )
        assert response.status_code == 200
        assert response.data['role'] == 'FACULTY'
        fake_identity.update_account.assert_called_once_with(deputy.firebase_uid, display_name='Deputy Principal')


@pytest.mark.django_db
class TestUserMaintenance:
    def test_list_filters_by_role(self, client_for, principal, faculty, student):
        response = client_for(principal).get('/api/admin/users/', {'role': 'student'})
        assert response.status_code == 200
        assert [user['email'] for user in response.data['users']] == [student.email]
        assert response.data['pagination'] == {'page': 1, 'limit': 50, 'total': 1, 'total_pages': 1}

    def test_demoting_hod_clears_department_head(self, client_for, principal, hod, department):
        response = client_for(principal).put(f'/api/admin/users/{hod.id}/', {'role': 'FACULTY'}, format='json')
        assert response.status_code == 200
        department.refresh_from_db()
        assert department.hod is None

    def test_delete_removes_provider_account(self, client_for, principal, other_student, fake_identity):
        uid = other_student.firebase_uid
        response = client_for(principal).delete(f'/api/admin/users/{other_student.id}/')
        assert response.status_code == 200
        assert not User.objects.filter(pk=other_student.pk).exists()
        fake_identity.delete_account.assert_called_once_with(uid)

    def test_delete_survives_provider_failure(self, client_for, principal, other_student, fake_identity):
        fake_identity.delete_account.side_effect = identity.IdentityProviderError('down')
        response = client_for(principal).delete(f'/api/admin/users/{other_student.id}/')
        assert response.status_code == 200
        assert not User.objects.filter(pk=other_student.pk).exists()


@pytest.mark.django_db
class TestBulkProvisioning:
    def test_json_rows_are_provisioned_independently(self, client_for, principal, department, batch, college):
        response = client_for(principal).post('/api/admin/users/bulk/', {
            'default_password': 'welcome1',
            'users': [
                {'email': 'a@college.edu', 'full_name': 'Student A', 'role': 'student',
                 'department': 'computer science', 'batch': 'CSE 2025', 'student_id': 'CSE101'},
                {'email': 'b@college.edu', 'full_name': 'Someone B', 'role': 'JANITOR'},
                {'email': 'c@college.edu', 'full_name': 'Faculty C', 'role': 'FACULTY',
                 'department': 'Astronomy'},
                {'email': '', 'full_name': 'Nobody', 'role': 'FACULTY'},
            ],
        }, format='json')
        assert response.status_code == 200
        assert response.data['success'] == 1
        assert response.data['failed'] == 3
        assert response.data['errors'][0].startswith('Row 2 (b@college.edu): Invalid role')
        assert response.data['errors'][1] == 'Row 3 (c@college.edu): Department not found: Astronomy'
        assert Enrollment.objects.filter(student__email='a@college.edu', batch=batch).exists()

    def test_failed_row_rolls_back_provider_account(self, principal, fake_identity, department):
        fake_identity.create_account.side_effect = None
        fake_identity.create_account.return_value = principal.firebase_uid

        results = services.bulk_provision(
            [{'email': 'x@college.edu', 'full_name': 'X Person', 'role': 'FACULTY'}], 'welcome1'
        )
        assert results['success'] == 0
        assert results['failed'] == 1
        assert results['errors'][0].startswith('Row 1 (x@college.edu): Database creation failed')
        fake_identity.delete_account.assert_called_once_with(principal.firebase_uid)

    def test_provider_rejection_is_reported_per_row(self, principal, fake_identity):
        fake_identity.create_account.side_effect = identity.EmailAlreadyExists('Email already registered')
        results = services.bulk_provision(
            [{'email': 'dup@college.edu', 'full_name': 'Dup Person', 'role': 'FACULTY'}], 'welcome1'
        )
        assert results == {
            'success': 0,
            'failed': 1,
            'errors': ['Row 1 (dup@college.edu): Email already registered'],
        }

    def test_default_password_is_required(self):
        with pytest.raises(ValidationError):
            services.bulk_provision([{'email': 'a@college.edu'}], '123')

    def test_excel_import(self, client_for, principal, department, batch, college):
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.append(services.BULK_COLUMNS)
        ws.append(['xl.student@college.edu', 'Excel Student', 'STUDENT', 'Computer Science', 'CSE 2025',
                   'CSE200', '9876543210'])
        ws.append(['xl.faculty@college.edu', 'Excel Faculty', 'PRINCIPALS', None, None, None, None])
        buffer = BytesIO()
        wb.save(buffer)
        upload = SimpleUploadedFile(
            'users.xlsx', buffer.getvalue(),
            content_type='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
        )

        response = client_for(principal).post(
            '/api/admin/users/bulk/import/', {'excelFile': upload, 'default_password': 'welcome1'},
            format='multipart'
        )
        assert response.status_code == 200
        assert response.data['success'] == 1
        assert response.data['failed'] == 1
        student = User.objects.get(email='xl.student@college.edu')
        assert student.student_id == 'CSE200'
        assert student.phone == '9876543210'
        assert student.enrollments.get().batch == batch

    def test_import_without_file(self, client_for, principal):
        response = client_for(principal).post(
            '/api/admin/users/bulk/import/', {'default_password': 'welcome1'}, format='multipart'
        )
        assert response.status_code == 400
        assert response.data == {'error': 'No file uploaded'}

    def test_template_download(self, client_for, principal, department, batch):
        response = client_for(principal).get('/api/admin/users/bulk/template/')
        assert response.status_code == 200
        assert 'user_import_template.xlsx' in response['Content-Disposition']

        wb = openpyxl.load_workbook(BytesIO(response.content))
        header = [cell.value for cell in wb['Users'][1]]
        assert header == services.BULK_COLUMNS
        assert wb['Users']['D2'].value == 'Computer Science'


@pytest.mark.django_db
class TestHodManagesDepartmentMembers:
    def test_hod_creates_student_in_own_department(self, client_for, hod, batch, college):
        response = client_for(hod).post('/api/hod/students/', {
            'email': 'hod.made@college.edu',
            'password': 'secret123',
            'full_name': 'Hod Made',
            'student_id': 'CSE300',
            'batch': batch.id,
        }, format='json')
        assert response.status_code == 201
        assert response.data['batch']['id'] == batch.id
        assert User.objects.get(email='hod.made@college.edu').department == hod.department

    def test_duplicate_student_id_is_a_conflict(self, client_for, hod, student):
        response = client_for(hod).post('/api/hod/students/', {
            'email': 'another@college.edu',
            'password': 'secret123',
            'full_name': 'Another Student',
            'student_id': student.student_id,
        }, format='json')
        assert response.status_code == 409

    def test_foreign_batch_is_rejected(self, client_for, hod, other_batch, fake_identity):
        response = client_for(hod).post('/api/hod/students/', {
            'email': 'wrong.batch@college.edu',
            'password': 'secret123',
            'full_name': 'Wrong Batch',
            'batch': other_batch.id,
        }, format='json')
        assert response.status_code == 400
        fake_identity.create_account.assert_not_called()

    def test_hod_moves_student_to_another_batch(self, client_for, hod, student, department, college):
        new_batch = department.batches.create(name='CSE 2024', year=2, semester=3)
        response = client_for(hod).put(f'/api/hod/students/{student.id}/', {'batch': new_batch.id}, format='json')
        assert response.status_code == 200
        assert response.data['batch']['id'] == new_batch.id

    def test_hod_cannot_touch_other_department(self, client_for, hod, other_student):
        client = client_for(hod)
        assert client.get(f'/api/hod/students/{other_student.id}/').status_code == 404
        assert client.delete(f'/api/hod/students/{other_student.id}/').status_code == 404

    def test_hod_creates_faculty(self, client_for, hod):
        response = client_for(hod).post('/api/hod/faculty/', {
            'email': 'lecturer@college.edu', 'password': 'secret123', 'full_name': 'New Lecturer',
        }, format='json')
        assert response.status_code == 201
        assert response.data['role'] == 'FACULTY'
        assert response.data['department']['id'] == hod.department_id
