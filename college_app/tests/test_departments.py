import pytest

from college_app.models import User, Department, Batch, Subject, Notice, CollegeSettings, AuditLog


@pytest.mark.django_db
class TestDepartments:
    def test_create_normalises_code(self, client_for, principal):
        response = client_for(principal).post('/api/admin/departments/', {
            'name': 'Electrical Engineering', 'code': 'eee',
        }, format='json')
        assert response.status_code == 201
        assert response.data['code'] == 'EEE'
        assert response.data['user_count'] == 0

    def test_duplicate_code_is_a_conflict(self, client_for, principal, department):
        response = client_for(principal).post('/api/admin/departments/', {
            'name': 'Computing', 'code': 'cse',
        }, format='json')
        assert response.status_code == 409
        assert Department.objects.count() == 1

    def test_duplicate_name_is_a_conflict(self, client_for, principal, department):
        response = client_for(principal).post('/api/admin/departments/', {
            'name': 'computer science', 'code': 'CS2',
        }, format='json')
        assert response.status_code == 409

    def test_department_with_members_cannot_be_deleted(self, client_for, principal, department, faculty):
        response = client_for(principal).delete(f'/api/admin/departments/{department.id}/')
        assert response.status_code == 400
        assert Department.objects.filter(pk=department.pk).exists()

    def test_empty_department_can_be_deleted(self, client_for, principal, other_department):
        response = client_for(principal).delete(f'/api/admin/departments/{other_department.id}/')
        assert response.status_code == 200
        assert not Department.objects.filter(pk=other_department.pk).exists()

    def test_head_must_be_an_hod_of_the_department(self, client_for, principal, department, faculty, other_hod):
        client = client_for(principal)
        response = client.put(f'/api/admin/departments/{department.id}/', {'hod': faculty.id}, format='json')
        assert response.status_code == 400
        response = client.put(f'/api/admin/departments/{department.id}/', {'hod': other_hod.id}, format='json')
        assert response.status_code == 400

    def test_assign_head(self, client_for, principal, department, make_user):
        head = make_user(User.HOD, department=department)
        response = client_for(principal).put(f'/api/admin/departments/{department.id}/', {'hod': head.id},
                                             format='json')
        assert response.status_code == 200
        assert response.data['hod_name'] == head.full_name

    def test_hod_cannot_manage_departments(self, client_for, hod):
        assert client_for(hod).get('/api/admin/departments/').status_code == 403


@pytest.mark.django_db
class TestBatchesAndSubjects:
    def test_hod_batch_lands_in_own_department(self, client_for, hod, other_department):
        response = client_for(hod).post('/api/hod/batches/', {
            'name': 'CSE 2026', 'year': 1, 'semester': 1, 'department': other_department.id,
        }, format='json')
        assert response.status_code == 201
        assert response.data['department'] == hod.department_id

    def test_duplicate_batch_is_a_conflict(self, client_for, principal, batch):
        response = client_for(principal).post('/api/admin/batches/', {
            'name': batch.name.lower(), 'year': 1, 'semester': 1, 'department': batch.department_id,
        }, format='json')
        assert response.status_code == 409

    def test_subject_department_follows_batch(self, client_for, principal, batch, faculty):
        response = client_for(principal).post('/api/admin/subjects/', {
            'name': 'Operating Systems', 'code': 'cs301', 'batch': batch.id, 'faculty': faculty.id,
        }, format='json')
        assert response.status_code == 201
        assert response.data['code'] == 'CS301'
        assert response.data['department'] == batch.department_id

    def test_duplicate_subject_code_in_batch(self, client_for, principal, subject):
        response = client_for(principal).post('/api/admin/subjects/', {
            'name': 'Data Structures II', 'code': 'cs201', 'batch': subject.batch_id,
        }, format='json')
        assert response.status_code == 409

    def test_hod_cannot_staff_with_foreign_faculty(self, client_for, hod, batch, make_user, other_department):
        outsider = make_user(User.FACULTY, department=other_department)
        response = client_for(hod).post('/api/hod/subjects/', {
            'name': 'Thermodynamics', 'code': 'ME201', 'batch': batch.id, 'faculty': outsider.id,
        }, format='json')
        assert response.status_code == 400
        assert not Subject.objects.filter(code='ME201').exists()

    def test_moving_a_batch_carries_its_subjects_and_notices(self, client_for, principal, subject,
                                                            other_department, other_hod):
        batch = subject.batch
        notice = Notice.objects.create(title='Lab timings', content='Lab opens at 9am.', posted_by=principal,
                                       department=batch.department, batch=batch)
        response = client_for(principal).put(f'/api/admin/batches/{batch.id}/', {
            'department': other_department.id,
        }, format='json')
        assert response.status_code == 200
        assert response.data['department'] == other_department.id

        subject.refresh_from_db()
        notice.refresh_from_db()
        assert subject.department == other_department
        assert notice.department == other_department
        hod_subjects = client_for(other_hod).get('/api/hod/subjects/').data
        assert [s['code'] for s in hod_subjects] == ['CS201']

    def test_batch_with_students_cannot_be_deleted(self, client_for, principal, batch, student):
        assert client_for(principal).delete(f'/api/admin/batches/{batch.id}/').status_code == 400
        assert Batch.objects.filter(pk=batch.pk).exists()


@pytest.mark.django_db
class TestSetupWizard:
    def test_full_setup_flow(self, client_for, principal):
        client = client_for(principal)

        status = client.get('/api/admin/setup/status/').data
        assert status['is_setup_complete'] is False
        assert status['next_step'] == 'college_details'

        response = client.post('/api/admin/setup/college/', {
            'college_name': 'Riverside Institute', 'college_code': 'RIT', 'academic_year': '2026-2027',
        }, format='json')
        assert response.status_code == 200

        response = client.post('/api/admin/setup/department/', {'name': 'Civil Engineering', 'code': 'civ'},
                               format='json')
        assert response.status_code == 201
        department_id = response.data['id']

        response = client.post('/api/admin/setup/hod/', {
            'email': 'head.civil@college.edu', 'password': 'secret123', 'full_name': 'Civil Head',
            'department': department_id,
        }, format='json')
        assert response.status_code == 201
        assert Department.objects.get(pk=department_id).hod.email == 'head.civil@college.edu'

        response = client.post('/api/admin/setup/faculty/', {
            'email': 'civil.lecturer@college.edu', 'password': 'secret123', 'full_name': 'Civil Lecturer',
            'department': department_id,
        }, format='json')
        assert response.status_code == 201
        assert response.data['role'] == 'FACULTY'

        assert client.get('/api/admin/setup/status/').data['next_step'] == 'students'

        assert client.post('/api/admin/setup/complete/').status_code == 200
        college = CollegeSettings.load()
        assert college.is_setup_complete
        assert college.academic_year == '2026-2027'

    def test_staff_requires_department(self, client_for, principal):
        response = client_for(principal).post('/api/admin/setup/faculty/', {
            'email': 'x@college.edu', 'password': 'secret123', 'full_name': 'No Department',
        }, format='json')
        assert response.status_code == 400

    def test_invalid_academic_year(self, client_for, principal):
        response = client_for(principal).put('/api/admin/college-settings/', {'academic_year': '2026'},
                                             format='json')
        assert response.status_code == 400

    def test_every_portal_reads_college_settings(self, client_for, student, college):
        response = client_for(student).get('/api/admin/college-settings/')
        assert response.status_code == 200
        assert response.data['college_name'] == 'Test College'
        assert client_for(student).put('/api/admin/college-settings/', {'college_name': 'Hacked'},
                                       format='json').status_code == 403


@pytest.mark.django_db
class TestAuditAndSettings:
    def test_audit_log_list_and_summary(self, client_for, principal, department):
        client = client_for(principal)
        client.put(f'/api/admin/departments/{department.id}/', {'name': 'Computing'}, format='json')

        response = client.get('/api/admin/audit-logs/', {'event_type': 'CONFIG_CHANGE'})
        assert response.status_code == 200
        assert response.data['pagination']['total'] == 1
        assert response.data['logs'][0]['user_email'] == principal.email

        summary = client.get('/api/admin/audit-logs/summary/').data
        assert summary['total'] == AuditLog.objects.count()
        assert summary['by_event_type'] == [{'event_type': 'CONFIG_CHANGE', 'count': 1}]

    def test_audit_log_is_principal_only(self, client_for, hod):
        assert client_for(hod).get('/api/admin/audit-logs/').status_code == 403

    def test_preferences_are_merged(self, client_for, faculty):
        client = client_for(faculty)
        client.put('/api/settings/', {'preferences': {'theme': 'dark'}}, format='json')
        response = client.put('/api/settings/', {'preferences': {'language': 'en'}}, format='json')
        assert response.data == {'preferences': {'theme': 'dark', 'language': 'en'}}

    def test_profile_rename_syncs_display_name(self, client_for, faculty, fake_identity):
        response = client_for(faculty).put('/api/settings/profile/', {'full_name': 'Dr Faculty'}, format='json')
        assert response.status_code == 200
        assert response.data['full_name'] == 'Dr Faculty'
        fake_identity.update_account.assert_called_once_with(faculty.firebase_uid, display_name='Dr Faculty')

    def test_password_change(self, client_for, student, fake_identity):
        response = client_for(student).put('/api/settings/password/', {
            'new_password': 'newsecret', 'confirm_password': 'newsecret',
        }, format='json')
        assert response.status_code == 200
        fake_identity.update_account.assert_called_once_with(student.firebase_uid, password='newsecret')

    def test_password_mismatch(self, client_for, student, fake_identity):
        response = client_for(student).put('/api/settings/password/', {
            'new_password': 'newsecret', 'confirm_password': 'different',
        }, format='json')
        assert response.status_code == 400
        fake_identity.update_account.assert_not_called()
