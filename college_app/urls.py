# urls.py
from django.urls import path, include
from rest_framework.routers import DefaultRouter

from . import views
from .models import User, Complaint

router = DefaultRouter()
router.register(r'audit-logs', views.AuditLogViewSet, basename='audit-log')

admin_patterns = [
    # Users
    path('users/', views.AdminUserListView.as_view(), name='admin-users'),
    path('users/bulk/', views.BulkUserCreateView.as_view(), name='admin-users-bulk'),
    path('users/bulk/import/', views.BulkUserImportView.as_view(), name='admin-users-bulk-import'),
    path('users/bulk/template/', views.BulkUserTemplateView.as_view(), name='admin-users-bulk-template'),
    path('users/<int:pk>/', views.AdminUserDetailView.as_view(), name='admin-user-detail'),
    path('faculty/', views.AdminFacultyListView.as_view(), name='admin-faculty'),

    # Academic structure
    path('departments/', views.DepartmentListView.as_view(), name='admin-departments'),
    path('departments/<int:pk>/', views.DepartmentDetailView.as_view(), name='admin-department-detail'),
    path('batches/', views.BatchListView.as_view(), name='admin-batches'),
    path('batches/promote/', views.BatchPromoteView.as_view(), name='admin-batches-promote'),
    path('batches/<int:pk>/', views.BatchDetailView.as_view(), name='admin-batch-detail'),
    path('subjects/', views.SubjectListView.as_view(), name='admin-subjects'),
    path('subjects/<int:pk>/', views.SubjectDetailView.as_view(), name='admin-subject-detail'),

    # Fees
    path('fees/', views.FeeListView.as_view(), name='admin-fees'),
    path('fees/bulk/', views.BulkFeeCreateView.as_view(), name='admin-fees-bulk'),
    path('fees/stats/', views.FeeStatsView.as_view(), name='admin-fees-stats'),
    path('fees/reports/department/', views.DepartmentFeeReportView.as_view(), name='admin-fees-department-report'),
    path('fees/<int:pk>/', views.FeeDetailView.as_view(), name='admin-fee-detail'),
    path('fees/<int:pk>/mark-paid/', views.FeeMarkPaidView.as_view(), name='admin-fee-mark-paid'),

    # Notices & complaints
    path('notices/', views.NoticeListView.as_view(), name='admin-notices'),
    path('notices/<int:pk>/', views.NoticeDetailView.as_view(), name='admin-notice-detail'),
    path('complaints/', views.ComplaintListView.as_view(), name='admin-complaints'),
    path('complaints/<int:pk>/resolve/',
         views.ComplaintCloseView.as_view(target_status=Complaint.RESOLVED), name='admin-complaint-resolve'),
    path('complaints/<int:pk>/reject/',
         views.ComplaintCloseView.as_view(target_status=Complaint.REJECTED), name='admin-complaint-reject'),

    # College & setup wizard
    path('college-settings/', views.CollegeSettingsView.as_view(), name='admin-college-settings'),
    path('stats/', views.AdminStatsView.as_view(), name='admin-stats'),
    path('setup/status/', views.SetupStatusView.as_view(), name='admin-setup-status'),
    path('setup/college/', views.SetupCollegeView.as_view(), name='admin-setup-college'),
    path('setup/department/', views.SetupDepartmentView.as_view(), name='admin-setup-department'),
    path('setup/hod/', views.SetupStaffView.as_view(staff_role=User.HOD), name='admin-setup-hod'),
    path('setup/faculty/', views.SetupStaffView.as_view(staff_role=User.FACULTY), name='admin-setup-faculty'),
    path('setup/complete/', views.SetupCompleteView.as_view(), name='admin-setup-complete'),

    path('', include(router.urls)),
]

hod_patterns = [
    path('students/', views.HODStudentListView.as_view(), name='hod-students'),
    path('students/<int:pk>/',
         views.DepartmentMemberDetailView.as_view(member_role=User.STUDENT), name='hod-student-detail'),
    path('faculty/', views.HODFacultyListView.as_view(), name='hod-faculty'),
    path('faculty/<int:pk>/',
         views.DepartmentMemberDetailView.as_view(member_role=User.FACULTY), name='hod-faculty-detail'),
    path('batches/', views.BatchListView.as_view(), name='hod-batches'),
    path('batches/<int:pk>/', views.BatchDetailView.as_view(), name='hod-batch-detail'),
    path('subjects/', views.SubjectListView.as_view(), name='hod-subjects'),
    path('subjects/<int:pk>/', views.SubjectDetailView.as_view(), name='hod-subject-detail'),
    path('assignments/', views.AssignmentListView.as_view(), name='hod-assignments'),
    path('assignments/<int:pk>/', views.AssignmentDetailView.as_view(), name='hod-assignment-detail'),
    path('attendance/', views.HODAttendanceView.as_view(), name='hod-attendance'),
    path('fees/', views.FeeListView.as_view(), name='hod-fees'),
    path('fees/stats/', views.FeeStatsView.as_view(), name='hod-fees-stats'),
    path('fees/<int:pk>/mark-paid/', views.FeeMarkPaidView.as_view(), name='hod-fee-mark-paid'),
    path('notices/', views.NoticeListView.as_view(), name='hod-notices'),
    path('notices/<int:pk>/', views.NoticeDetailView.as_view(), name='hod-notice-detail'),
    path('complaints/', views.ComplaintListView.as_view(), name='hod-complaints'),
    path('stats/', views.HODStatsView.as_view(), name='hod-stats'),
]

faculty_patterns = [
    path('subjects/', views.FacultySubjectListView.as_view(), name='faculty-subjects'),
    path('subjects/<int:pk>/students/', views.FacultySubjectStudentsView.as_view(), name='faculty-subject-students'),
    path('students/', views.FacultyStudentListView.as_view(), name='faculty-students'),
    path('batches/', views.FacultyBatchListView.as_view(), name='faculty-batches'),
    path('attendance/', views.FacultyAttendanceView.as_view(), name='faculty-attendance'),
    path('grades/', views.FacultyGradeView.as_view(), name='faculty-grades'),
    path('grades/<int:pk>/', views.FacultyGradeDetailView.as_view(), name='faculty-grade-detail'),
    path('assignments/', views.AssignmentListView.as_view(), name='faculty-assignments'),
    path('assignments/<int:pk>/', views.AssignmentDetailView.as_view(), name='faculty-assignment-detail'),
    path('assignments/<int:pk>/submissions/<int:submission_pk>/grade/',
         views.GradeSubmissionView.as_view(), name='faculty-grade-submission'),
    path('fees/', views.FacultyFeeListView.as_view(), name='faculty-fees'),
    path('notices/', views.NoticeFeedView.as_view(), name='faculty-notices'),
    path('stats/', views.FacultyStatsView.as_view(), name='faculty-stats'),
]

student_patterns = [
    path('subjects/', views.StudentSubjectListView.as_view(), name='student-subjects'),
    path('batch/', views.StudentBatchView.as_view(), name='student-batch'),
    path('attendance/', views.StudentAttendanceView.as_view(), name='student-attendance'),
    path('grades/', views.StudentGradeListView.as_view(), name='student-grades'),
    path('assignments/', views.StudentAssignmentListView.as_view(), name='student-assignments'),
    path('assignments/<int:pk>/submit/', views.SubmitAssignmentView.as_view(), name='student-assignment-submit'),
    path('fees/', views.StudentFeeListView.as_view(), name='student-fees'),
    path('fees/<int:pk>/pay/', views.PayFeeView.as_view(), name='student-fee-pay'),
    path('notices/', views.NoticeFeedView.as_view(), name='student-notices'),
    path('complaints/', views.StudentComplaintView.as_view(), name='student-complaints'),
    path('stats/', views.StudentStatsView.as_view(), name='student-stats'),
]

urlpatterns = [
    # Authentication & system
    path('api/auth/me/', views.MeView.as_view(), name='auth-me'),
    path('api/health/', views.health_check, name='health'),

    # Role portals
    path('api/admin/', include(admin_patterns)),
    path('api/hod/', include(hod_patterns)),
    path('api/faculty/', include(faculty_patterns)),
    path('api/student/', include(student_patterns)),

    # Personal settings
    path('api/settings/', views.SettingsView.as_view(), name='settings'),
    path('api/settings/profile/', views.ProfileView.as_view(), name='settings-profile'),
    path('api/settings/password/', views.PasswordView.as_view(), name='settings-password'),
]
