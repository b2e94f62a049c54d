from datetime import timedelta

import pytest
from django.utils import timezone

from college_app.models import User, Attendance, Grade, Assignment, Submission, Enrollment


@pytest.fixture
def other_faculty(make_user, department):
    return make_user(User.FACULTY, department=department, email='other.faculty@college.edu')


@pytest.fixture
def make_assignment(subject, faculty):
    def _make_assignment(due_in_days=7, **extra):
        return Assignment.objects.create(
            title=extra.pop('title', 'Linked lists'),
            subject=extra.pop('subject', subject),
            due_date=timezone.now() + timedelta(days=due_in_days),
            created_by=extra.pop('created_by', faculty),
            **extra,
        )
    return _make_assignment


@pytest.mark.django_db
class TestAttendance:
    def _sheet(self, subject, student, status='PRESENT', day='2025-09-01'):
        return {'subject_id': subject.id, 'date': day, 'records': {str(student.id): status}}

    def test_marking_is_idempotent_per_day(self, client_for, faculty, subject, student):
        client = client_for(faculty)

        response = client.post('/api/faculty/attendance/', self._sheet(subject, student), format='json')
        assert response.status_code == 200
        assert response.data == {'success': True, 'count': 1}

        response = client.post('/api/faculty/attendance/', self._sheet(subject, student, 'absent'), format='json')
        assert response.status_code == 200

        record = Attendance.objects.get(student=student, subject=subject)
        assert record.status == 'ABSENT'
        assert record.marked_by == faculty

    def test_only_the_teaching_faculty_can_mark(self, client_for, other_faculty, subject, student):
        response = client_for(other_faculty).post(
            '/api/faculty/attendance/', self._sheet(subject, student), format='json'
        )
        assert response.status_code == 404
        assert not Attendance.objects.exists()

    def test_unknown_subject_is_not_found(self, client_for, faculty, student):
        response = client_for(faculty).post('/api/faculty/attendance/', {
            'subject_id': 9999, 'date': '2025-09-01', 'records': {str(student.id): 'PRESENT'},
        }, format='json')
        assert response.status_code == 404

    def test_other_faculty_cannot_read_the_register(self, client_for, faculty, other_faculty, subject, student):
        client_for(faculty).post('/api/faculty/attendance/', self._sheet(subject, student), format='json')
        response = client_for(other_faculty).get('/api/faculty/attendance/', {'subject': subject.id})
        assert response.status_code == 404
        assert client_for(other_faculty).get('/api/faculty/attendance/', {'subject': 'abc'}).status_code == 404

    def test_sheet_is_all_or_nothing(self, client_for, faculty, subject, student, other_student):
        response = client_for(faculty).post('/api/faculty/attendance/', {
            'subject_id': subject.id,
            'date': '2025-09-01',
            'records': {str(student.id): 'PRESENT', str(other_student.id): 'PRESENT'},
        }, format='json')
        assert response.status_code == 400
        assert not Attendance.objects.exists()

    def test_invalid_status_is_rejected(self, client_for, faculty, subject, student):
        response = client_for(faculty).post(
            '/api/faculty/attendance/', self._sheet(subject, student, 'SLEEPING'), format='json'
        )
        assert response.status_code == 400

    def test_student_sees_attendance_summary(self, client_for, faculty, subject, student):
        client_for(faculty).post('/api/faculty/attendance/', self._sheet(subject, student), format='json')
        client_for(faculty).post(
            '/api/faculty/attendance/', self._sheet(subject, student, 'ABSENT', '2025-09-02'), format='json'
        )

        response = client_for(student).get('/api/student/attendance/')
        assert response.status_code == 200
        assert response.data['summary'] == [{
            'subject_id': subject.id,
            'subject_code': 'CS201',
            'subject_name': 'Data Structures',
            'total': 2,
            'attended': 1,
            'percentage': 50.0,
        }]

    def test_hod_daily_summary(self, client_for, hod, faculty, subject, student):
        client_for(faculty).post('/api/faculty/attendance/', self._sheet(subject, student), format='json')
        response = client_for(hod).get('/api/hod/attendance/', {'date': '2025-09-01'})
        assert response.status_code == 200
        assert response.data['stats']['total'] == 1
        assert response.data['stats']['attendance_rate'] == 100.0


@pytest.mark.django_db
class TestGrades:
    def _grade(self, subject, student, marks=72, **extra):
        return {'student': student.id, 'subject': subject.id, 'exam_type': 'MST1', 'marks': marks, **extra}

    def test_create_then_update(self, client_for, faculty, subject, student):
        client = client_for(faculty)

        response = client.post('/api/faculty/grades/', self._grade(subject, student), format='json')
        assert response.status_code == 201
        assert response.data['percentage'] == 72.0

        response = client.post('/api/faculty/grades/', self._grade(subject, student, marks=80), format='json')
        assert response.status_code == 200
        assert Grade.objects.get(student=student, subject=subject, exam_type='MST1').marks == 80
        assert Grade.objects.count() == 1

    def test_marks_cannot_exceed_total(self, client_for, faculty, subject, student):
        response = client_for(faculty).post(
            '/api/faculty/grades/', self._grade(subject, student, marks=45, total_marks=40), format='json'
        )
        assert response.status_code == 400
        assert response.data['details'] == {'marks': ['Marks cannot exceed total marks']}

    def test_student_must_be_enrolled(self, client_for, faculty, subject, other_student):
        response = client_for(faculty).post('/api/faculty/grades/', self._grade(subject, other_student),
                                            format='json')
        assert response.status_code == 400

    def test_other_faculty_cannot_grade(self, client_for, other_faculty, subject, student):
        response = client_for(other_faculty).post('/api/faculty/grades/', self._grade(subject, student),
                                                  format='json')
        assert response.status_code == 404
        assert not Grade.objects.exists()

    def test_delete_is_scoped_to_own_subjects(self, client_for, faculty, other_faculty, subject, student):
        grade = Grade.objects.create(student=student, subject=subject, exam_type='FINAL', marks=60)
        assert client_for(other_faculty).delete(f'/api/faculty/grades/{grade.id}/').status_code == 404
        assert client_for(faculty).delete(f'/api/faculty/grades/{grade.id}/').status_code == 200
        assert not Grade.objects.exists()

    def test_student_reads_own_grades(self, client_for, subject, student, other_student):
        Grade.objects.create(student=student, subject=subject, exam_type='MST1', marks=55)
        response = client_for(student).get('/api/student/grades/')
        assert response.status_code == 200
        assert [(g['subject_code'], g['marks']) for g in response.data] == [('CS201', 55)]


@pytest.mark.django_db
class TestAssignments:
    def test_faculty_creates_assignment_for_taught_subject(self, client_for, faculty, subject):
        response = client_for(faculty).post('/api/faculty/assignments/', {
            'title': 'Binary trees',
            'subject': subject.id,
            'due_date': (timezone.now() + timedelta(days=3)).isoformat(),
        }, format='json')
        assert response.status_code == 201
        assert response.data['created_by'] == faculty.id
        assert response.data['submission_count'] == 0

    def test_faculty_cannot_use_foreign_subject(self, client_for, other_faculty, subject):
        response = client_for(other_faculty).post('/api/faculty/assignments/', {
            'title': 'Binary trees',
            'subject': subject.id,
            'due_date': (timezone.now() + timedelta(days=3)).isoformat(),
        }, format='json')
        assert response.status_code == 400

    def test_student_submits_once(self, client_for, student, make_assignment):
        assignment = make_assignment()
        client = client_for(student)
        url = f'/api/student/assignments/{assignment.id}/submit/'

        response = client.post(url, {'file_url': 'https://files.college.edu/ll.pdf'}, format='json')
        assert response.status_code == 201

        response = client.post(url, {}, format='json')
        assert response.status_code == 400
        assert response.data == {'error': 'Already submitted'}

    def test_overdue_assignment_rejects_submissions(self, client_for, student, make_assignment):
        assignment = make_assignment(due_in_days=-1)
        response = client_for(student).post(f'/api/student/assignments/{assignment.id}/submit/', {}, format='json')
        assert response.status_code == 400
        assert response.data == {'error': 'Assignment is overdue'}

    def test_student_cannot_submit_outside_own_batch(self, client_for, other_student, make_assignment):
        assignment = make_assignment()
        response = client_for(other_student).post(
            f'/api/student/assignments/{assignment.id}/submit/', {}, format='json'
        )
        assert response.status_code == 404

    def test_student_assignment_list_shows_own_submission(self, client_for, student, make_assignment):
        assignment = make_assignment()
        Submission.objects.create(assignment=assignment, student=student)
        response = client_for(student).get('/api/student/assignments/')
        assert response.status_code == 200
        assert response.data[0]['submission'] is not None
        assert response.data[0]['is_overdue'] is False

    def test_faculty_grades_submission(self, client_for, faculty, student, make_assignment):
        assignment = make_assignment()
        submission = Submission.objects.create(assignment=assignment, student=student)
        response = client_for(faculty).post(
            f'/api/faculty/assignments/{assignment.id}/submissions/{submission.id}/grade/',
            {'marks': 18, 'feedback': 'Good work'}, format='json'
        )
        assert response.status_code == 200
        submission.refresh_from_db()
        assert submission.marks == 18
        assert submission.graded_by == faculty

    def test_hod_sees_department_assignments(self, client_for, hod, other_hod, make_assignment):
        make_assignment()
        assert len(client_for(hod).get('/api/hod/assignments/').data) == 1
        assert client_for(other_hod).get('/api/hod/assignments/').data == []


@pytest.mark.django_db
class TestBatchPromotion:
    def test_promote_moves_to_next_semester(self, client_for, principal, batch, student):
        response = client_for(principal).post('/api/admin/batches/promote/', {
            'batch_id': batch.id, 'operation': 'PROMOTE_TO_NEXT_SEM',
        }, format='json')
        assert response.status_code == 200
        batch.refresh_from_db()
        assert batch.semester == 2

    def test_empty_batch_is_not_found(self, client_for, principal, batch):
        assert not Enrollment.objects.filter(batch=batch).exists()
        response = client_for(principal).post('/api/admin/batches/promote/', {
            'batch_id': batch.id, 'operation': 'PROMOTE_TO_NEXT_SEM',
        }, format='json')
        assert response.status_code == 404
