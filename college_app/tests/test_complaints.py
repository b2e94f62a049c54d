import pytest

from college_app.models import Complaint, Notice, AuditLog


@pytest.mark.django_db
class TestComplaints:
    def test_student_files_complaint(self, client_for, student):
        response = client_for(student).post('/api/student/complaints/', {
            'title': 'Library hours',
            'description': 'The library closes before evening classes end.',
        }, format='json')
        assert response.status_code == 201
        assert response.data['status'] == Complaint.PENDING
        assert Complaint.objects.get().student == student

    def test_student_cannot_set_status(self, client_for, student):
        response = client_for(student).post('/api/student/complaints/', {
            'title': 'Library hours',
            'description': 'The library closes before evening classes end.',
            'status': 'RESOLVED',
        }, format='json')
        assert response.status_code == 201
        assert response.data['status'] == Complaint.PENDING

    def test_student_lists_only_own_complaints(self, client_for, student, other_student, make_complaint):
        make_complaint(student)
        make_complaint(other_student, title='Hostel water supply')
        response = client_for(student).get('/api/student/complaints/')
        assert [c['title'] for c in response.data] == ['Broken projector']

    def test_hod_resolves_department_complaint(self, client_for, hod, student, make_complaint):
        complaint = make_complaint(student)
        response = client_for(hod).post(
            f'/api/admin/complaints/{complaint.id}/resolve/', {'note': 'Projector replaced'}, format='json'
        )
        assert response.status_code == 200
        assert response.data['status'] == Complaint.RESOLVED
        assert response.data['resolved_by'] == hod.id
        assert response.data['resolution_note'] == 'Projector replaced'
        assert response.data['resolved_at'] is not None
        assert AuditLog.objects.filter(event_type='COMPLAINT_CLOSED', record_id=complaint.id).exists()

    def test_closed_complaint_cannot_be_closed_again(self, client_for, principal, student, make_complaint):
        complaint = make_complaint(student)
        client = client_for(principal)
        assert client.post(f'/api/admin/complaints/{complaint.id}/resolve/').status_code == 200

        response = client.post(f'/api/admin/complaints/{complaint.id}/reject/')
        assert response.status_code == 400
        assert response.data == {'error': 'Complaint is already resolved'}

    def test_in_progress_complaint_can_be_rejected(self, client_for, principal, student, make_complaint):
        complaint = make_complaint(student, status=Complaint.IN_PROGRESS)
        response = client_for(principal).post(f'/api/admin/complaints/{complaint.id}/reject/')
        assert response.status_code == 200
        assert response.data['status'] == Complaint.REJECTED

    def test_hod_of_other_department_cannot_see_complaint(self, client_for, other_hod, student, make_complaint):
        complaint = make_complaint(student)
        client = client_for(other_hod)
        assert client.post(f'/api/admin/complaints/{complaint.id}/resolve/').status_code == 404
        assert client.get('/api/hod/complaints/').data == []
        complaint.refresh_from_db()
        assert complaint.status == Complaint.PENDING

    def test_status_filter(self, client_for, principal, student, make_complaint):
        make_complaint(student)
        make_complaint(student, title='Canteen prices', status=Complaint.RESOLVED)
        response = client_for(principal).get('/api/admin/complaints/', {'status': 'resolved'})
        assert [c['title'] for c in response.data] == ['Canteen prices']

    def test_faculty_cannot_close_complaints(self, client_for, faculty, student, make_complaint):
        complaint = make_complaint(student)
        assert client_for(faculty).post(f'/api/admin/complaints/{complaint.id}/resolve/').status_code == 403


@pytest.mark.django_db
class TestNotices:
    def test_feed_shows_college_and_own_department(self, client_for, principal, student, other_department):
        Notice.objects.create(title='Holiday', content='College closed on Friday.', posted_by=principal)
        Notice.objects.create(title='MECH workshop', content='Workshop closed for repairs.',
                              posted_by=principal, department=other_department)
        Notice.objects.create(title='CSE seminar', content='Seminar in the main hall.',
                              posted_by=principal, department=student.department, is_pinned=True)

        response = client_for(student).get('/api/student/notices/')
        assert response.status_code == 200
        assert [n['title'] for n in response.data] == ['CSE seminar', 'Holiday']

    def test_batch_notice_only_reaches_that_batch(self, client_for, principal, student, department, batch):
        other = department.batches.create(name='CSE 2024', year=2, semester=3)
        Notice.objects.create(title='Own batch', content='Only for CSE 2025 students.',
                              posted_by=principal, department=department, batch=batch)
        Notice.objects.create(title='Other batch', content='Only for CSE 2024 students.',
                              posted_by=principal, department=department, batch=other)

        titles = [n['title'] for n in client_for(student).get('/api/student/notices/').data]
        assert titles == ['Own batch']

    def test_hod_cannot_edit_college_wide_notice(self, client_for, principal, hod):
        notice = Notice.objects.create(title='Holiday', content='College closed on Friday.', posted_by=principal)
        response = client_for(hod).put(f'/api/hod/notices/{notice.id}/', {'title': 'Changed'}, format='json')
        assert response.status_code == 404

    def test_students_cannot_post(self, client_for, student):
        response = client_for(student).post('/api/hod/notices/', {
            'title': 'Party', 'content': 'Party in the quad tonight.',
        }, format='json')
        assert response.status_code == 403
