# serializers.py
import re
from decimal import Decimal

from rest_framework import serializers

from .models import *
from .services import MIN_PASSWORD_LENGTH


# ==================== USERS ====================
class DepartmentSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Department
        fields = ['id', 'name', 'code']


class UserSerializer(serializers.ModelSerializer):
    role_display = serializers.CharField(source='get_role_display', read_only=True)
    department = DepartmentSummarySerializer(read_only=True)

    class Meta:
        model = User
        fields = [
            'id', 'email', 'full_name', 'role', 'role_display', 'department',
            'phone', 'student_id', 'bio', 'is_active', 'created_at', 'updated_at'
        ]
        read_only_fields = fields


class MeSerializer(UserSerializer):
    class Meta(UserSerializer.Meta):
        fields = UserSerializer.Meta.fields + ['firebase_uid', 'preferences']
        read_only_fields = fields


class UserCreateSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, min_length=MIN_PASSWORD_LENGTH)
    full_name = serializers.CharField(min_length=2, max_length=100)
    role = serializers.ChoiceField(choices=User.ROLE_CHOICES)
    department = serializers.PrimaryKeyRelatedField(queryset=Department.objects.all(), required=False, allow_null=True)
    batch = serializers.PrimaryKeyRelatedField(queryset=Batch.objects.all(), required=False, allow_null=True)
    student_id = serializers.CharField(max_length=30, required=False, allow_blank=True, allow_null=True)
    phone = serializers.CharField(max_length=20, required=False, allow_blank=True, allow_null=True)

    def validate(self, data):
        batch = data.get('batch')
        if batch is not None:
            if data['role'] != User.STUDENT:
                raise serializers.ValidationError({'batch': 'Only students can be enrolled in a batch'})
            department = data.get('department')
            if department is not None and batch.department_id != department.id:
                raise serializers.ValidationError({'batch': 'Batch does not belong to the selected department'})
            data['department'] = batch.department
        return data


class UserUpdateSerializer(serializers.ModelSerializer):
    department = serializers.PrimaryKeyRelatedField(queryset=Department.objects.all(), required=False, allow_null=True)

    class Meta:
        model = User
        fields = ['full_name', 'email', 'role', 'department', 'phone', 'student_id', 'is_active']
        extra_kwargs = {
            'full_name': {'min_length': 2},
            'student_id': {'required': False, 'allow_null': True},
        }

    def validate_email(self, value):
        value = value.strip().lower()
        if User.objects.filter(email__iexact=value).exclude(pk=self.instance.pk).exists():
            raise serializers.ValidationError('Email is already in use')
        return value


class BulkUserRowSerializer(serializers.Serializer):
    email = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    full_name = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    role = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    department = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    batch = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    student_id = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    phone = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class BulkUserSerializer(serializers.Serializer):
    users = BulkUserRowSerializer(many=True, allow_empty=False)
    default_password = serializers.CharField(min_length=MIN_PASSWORD_LENGTH)


class ProfileSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['full_name', 'phone', 'bio']
        extra_kwargs = {
            'full_name': {'min_length': 2, 'required': False},
        }


class PreferencesSerializer(serializers.Serializer):
    preferences = serializers.DictField()


class ChangePasswordSerializer(serializers.Serializer):
    new_password = serializers.CharField(write_only=True, min_length=MIN_PASSWORD_LENGTH)
    confirm_password = serializers.CharField(write_only=True)

    def validate(self, data):
        if data['new_password'] != data['confirm_password']:
            raise serializers.ValidationError({'confirm_password': 'Passwords do not match'})
        return data


# ==================== ACADEMIC STRUCTURE ====================
class DepartmentSerializer(serializers.ModelSerializer):
    hod_name = serializers.CharField(source='hod.full_name', read_only=True, default=None)
    user_count = serializers.IntegerField(read_only=True)
    batch_count = serializers.IntegerField(read_only=True)
    subject_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = Department
        fields = [
            'id', 'name', 'code', 'hod', 'hod_name', 'user_count', 'batch_count',
            'subject_count', 'created_at', 'updated_at'
        ]
        # duplicate names and codes are reported as 409 by the views
        extra_kwargs = {
            'name': {'min_length': 2, 'validators': []},
            'code': {'min_length': 2, 'validators': []},
            'hod': {'required': False, 'allow_null': True},
        }

    def validate_code(self, value):
        return value.strip().upper()

    def validate(self, data):
        hod = data.get('hod')
        if hod is not None:
            if hod.role != User.HOD:
                raise serializers.ValidationError({'hod': 'Assigned head must have the HOD role'})
            if self.instance is None or hod.department_id != self.instance.pk:
                raise serializers.ValidationError({'hod': 'Assigned head must belong to this department'})
        return data


class BatchSerializer(serializers.ModelSerializer):
    department_name = serializers.CharField(source='department.name', read_only=True)
    student_count = serializers.IntegerField(read_only=True)
    subject_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = Batch
        fields = [
            'id', 'name', 'year', 'semester', 'department', 'department_name',
            'student_count', 'subject_count', 'created_at'
        ]
        extra_kwargs = {
            'name': {'min_length': 2},
        }
        # uniqueness of (department, name) is reported as 409 by the view
        validators = []


class BatchPromoteSerializer(serializers.Serializer):
    OPERATION_CHOICES = ['PROMOTE_TO_NEXT_SEM']

    batch_id = serializers.PrimaryKeyRelatedField(queryset=Batch.objects.all(), source='batch')
    operation = serializers.ChoiceField(choices=OPERATION_CHOICES)


class SubjectSerializer(serializers.ModelSerializer):
    faculty_name = serializers.CharField(source='faculty.full_name', read_only=True, default=None)
    batch_name = serializers.CharField(source='batch.name', read_only=True)
    department_name = serializers.CharField(source='department.name', read_only=True)

    class Meta:
        model = Subject
        fields = [
            'id', 'name', 'code', 'department', 'department_name', 'batch', 'batch_name',
            'faculty', 'faculty_name', 'credits', 'subject_type', 'created_at'
        ]
        extra_kwargs = {
            'name': {'min_length': 2},
            'code': {'min_length': 2},
            'department': {'required': False},
            'faculty': {'required': False, 'allow_null': True},
        }
        validators = []

    def validate_code(self, value):
        return value.strip().upper()

    def validate_faculty(self, value):
        if value is not None and value.role not in (User.FACULTY, User.HOD):
            raise serializers.ValidationError('Assigned faculty must be a faculty member')
        return value

    def validate(self, data):
        batch = data.get('batch', getattr(self.instance, 'batch', None))
        if batch is not None:
            department = data.get('department')
            if department is not None and department.id != batch.department_id:
                raise serializers.ValidationError({'batch': 'Batch does not belong to the selected department'})
            data['department'] = batch.department
        return data


class StudentSerializer(UserSerializer):
    batch = serializers.SerializerMethodField()

    class Meta(UserSerializer.Meta):
        fields = UserSerializer.Meta.fields + ['batch']
        read_only_fields = fields

    def get_batch(self, obj):
        enrollment = obj.enrollments.select_related('batch').order_by('-academic_year').first()
        if enrollment is None:
            return None
        return {
            'id': enrollment.batch_id,
            'name': enrollment.batch.name,
            'year': enrollment.batch.year,
            'semester': enrollment.batch.semester,
            'academic_year': enrollment.academic_year,
        }


class StudentCreateSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, min_length=MIN_PASSWORD_LENGTH)
    full_name = serializers.CharField(min_length=2, max_length=100)
    student_id = serializers.CharField(max_length=30, required=False, allow_blank=True, allow_null=True)
    phone = serializers.CharField(max_length=20, required=False, allow_blank=True, allow_null=True)
    batch = serializers.PrimaryKeyRelatedField(queryset=Batch.objects.all(), required=False, allow_null=True)


class FacultyCreateSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, min_length=MIN_PASSWORD_LENGTH)
    full_name = serializers.CharField(min_length=2, max_length=100)
    phone = serializers.CharField(max_length=20, required=False, allow_blank=True, allow_null=True)


class DepartmentUserUpdateSerializer(serializers.ModelSerializer):
    """Fields an HOD may change on a student or faculty member of their department"""
    batch = serializers.PrimaryKeyRelatedField(queryset=Batch.objects.all(), required=False, write_only=True)

    class Meta:
        model = User
        fields = ['full_name', 'phone', 'student_id', 'is_active', 'batch']
        extra_kwargs = {
            'full_name': {'min_length': 2, 'required': False},
            'student_id': {'required': False, 'allow_null': True, 'validators': []},
        }


# ==================== COURSEWORK ====================
class AssignmentSerializer(serializers.ModelSerializer):
    subject_name = serializers.CharField(source='subject.name', read_only=True)
    subject_code = serializers.CharField(source='subject.code', read_only=True)
    created_by_name = serializers.CharField(source='created_by.full_name', read_only=True)
    submission_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = Assignment
        fields = [
            'id', 'title', 'description', 'subject', 'subject_name', 'subject_code',
            'due_date', 'created_by', 'created_by_name', 'submission_count', 'created_at'
        ]
        read_only_fields = ['created_by']
        extra_kwargs = {
            'title': {'min_length': 2},
        }


class SubmissionSerializer(serializers.ModelSerializer):
    student_name = serializers.CharField(source='student.full_name', read_only=True)
    student_roll = serializers.CharField(source='student.student_id', read_only=True)

    class Meta:
        model = Submission
        fields = [
            'id', 'assignment', 'student', 'student_name', 'student_roll', 'file_url',
            'submitted_at', 'marks', 'feedback', 'graded_by', 'graded_at'
        ]
        read_only_fields = fields


class SubmitAssignmentSerializer(serializers.Serializer):
    file_url = serializers.URLField(max_length=500, required=False, allow_blank=True, allow_null=True)


class GradeSubmissionSerializer(serializers.Serializer):
    marks = serializers.IntegerField(min_value=0)
    feedback = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=2000)


class StudentAssignmentSerializer(AssignmentSerializer):
    submission = serializers.SerializerMethodField()
    is_overdue = serializers.BooleanField(read_only=True)

    class Meta(AssignmentSerializer.Meta):
        fields = AssignmentSerializer.Meta.fields + ['submission', 'is_overdue']

    def get_submission(self, obj):
        student = self.context['request'].user
        submission = next((s for s in obj.submissions.all() if s.student_id == student.id), None)
        if submission is None:
            return None
        return {
            'id': submission.id,
            'file_url': submission.file_url,
            'submitted_at': submission.submitted_at,
            'marks': submission.marks,
            'feedback': submission.feedback,
        }


class AttendanceSerializer(serializers.ModelSerializer):
    student_name = serializers.CharField(source='student.full_name', read_only=True)
    subject_code = serializers.CharField(source='subject.code', read_only=True)
    subject_name = serializers.CharField(source='subject.name', read_only=True)

    class Meta:
        model = Attendance
        fields = [
            'id', 'student', 'student_name', 'subject', 'subject_code', 'subject_name',
            'date', 'status', 'marked_by'
        ]
        read_only_fields = fields


class AttendanceSheetSerializer(serializers.Serializer):
    subject_id = serializers.IntegerField()
    date = serializers.DateField()
    records = serializers.DictField(child=serializers.CharField(), allow_empty=False)


class GradeSerializer(serializers.ModelSerializer):
    student_name = serializers.CharField(source='student.full_name', read_only=True)
    subject_code = serializers.CharField(source='subject.code', read_only=True)
    subject_name = serializers.CharField(source='subject.name', read_only=True)
    percentage = serializers.FloatField(read_only=True)

    class Meta:
        model = Grade
        fields = [
            'id', 'student', 'student_name', 'subject', 'subject_code', 'subject_name',
            'exam_type', 'marks', 'total_marks', 'percentage', 'updated_at'
        ]
        validators = []

    def validate(self, data):
        marks = data.get('marks', getattr(self.instance, 'marks', None))
        total = data.get('total_marks', getattr(self.instance, 'total_marks', 100))
        if marks is not None and marks > total:
            raise serializers.ValidationError({'marks': 'Marks cannot exceed total marks'})
        return data


# ==================== COMMUNICATION ====================
class NoticeSerializer(serializers.ModelSerializer):
    posted_by_name = serializers.CharField(source='posted_by.full_name', read_only=True)
    department_name = serializers.CharField(source='department.name', read_only=True, default=None)
    batch_name = serializers.CharField(source='batch.name', read_only=True, default=None)

    class Meta:
        model = Notice
        fields = [
            'id', 'title', 'content', 'posted_by', 'posted_by_name', 'department',
            'department_name', 'batch', 'batch_name', 'priority', 'is_pinned', 'created_at', 'updated_at'
        ]
        read_only_fields = ['posted_by']
        extra_kwargs = {
            'title': {'min_length': 2},
            'content': {'min_length': 10},
        }

    def validate(self, data):
        batch = data.get('batch', getattr(self.instance, 'batch', None))
        department = data.get('department', getattr(self.instance, 'department', None))
        if batch is not None and department is not None and batch.department_id != department.id:
            raise serializers.ValidationError({'batch': 'Batch does not belong to the selected department'})
        return data


class ComplaintSerializer(serializers.ModelSerializer):
    student_name = serializers.CharField(source='student.full_name', read_only=True)
    student_roll = serializers.CharField(source='student.student_id', read_only=True)
    department_name = serializers.CharField(source='student.department.name', read_only=True, default=None)
    resolved_by_name = serializers.CharField(source='resolved_by.full_name', read_only=True, default=None)

    class Meta:
        model = Complaint
        fields = [
            'id', 'title', 'description', 'student', 'student_name', 'student_roll',
            'department_name', 'status', 'resolved_by', 'resolved_by_name', 'resolved_at',
            'resolution_note', 'created_at'
        ]
        read_only_fields = ['student', 'status', 'resolved_by', 'resolved_at', 'resolution_note']
        extra_kwargs = {
            'title': {'min_length': 5},
            'description': {'min_length': 10},
        }


class ComplaintCloseSerializer(serializers.Serializer):
    note = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=2000)


# ==================== FINANCE ====================
class FeeSerializer(serializers.ModelSerializer):
    student_name = serializers.CharField(source='student.full_name', read_only=True)
    student_roll = serializers.CharField(source='student.student_id', read_only=True)
    student_email = serializers.CharField(source='student.email', read_only=True)
    department_name = serializers.CharField(source='student.department.name', read_only=True, default=None)
    marked_by_name = serializers.CharField(source='marked_by.full_name', read_only=True, default=None)
    balance = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = Fee
        fields = [
            'id', 'student', 'student_name', 'student_roll', 'student_email', 'department_name',
            'amount', 'amount_paid', 'balance', 'due_date', 'fee_type', 'description',
            'academic_year', 'status', 'paid_at', 'payment_mode', 'remarks',
            'marked_by', 'marked_by_name', 'created_at', 'updated_at'
        ]
        read_only_fields = ['amount_paid', 'status', 'paid_at', 'payment_mode', 'marked_by']

    def validate_student(self, value):
        if value.role != User.STUDENT:
            raise serializers.ValidationError('Fees can only be assigned to students')
        return value


class FeeUpdateSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'), required=False)
    due_date = serializers.DateField(required=False)
    fee_type = serializers.ChoiceField(choices=Fee.FEE_TYPE_CHOICES, required=False)
    description = serializers.CharField(max_length=500, required=False, allow_blank=True, allow_null=True)
    remarks = serializers.CharField(max_length=1000, required=False, allow_blank=True, allow_null=True)


class FeeMarkSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Fee.MARKABLE_STATUSES)
    amount_paid = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    payment_mode = serializers.ChoiceField(choices=Fee.PAYMENT_MODE_CHOICES, required=False, allow_null=True)
    remarks = serializers.CharField(max_length=1000, required=False, allow_blank=True, allow_null=True)

    def validate(self, data):
        if data['status'] == Fee.PARTIALLY_PAID and data.get('amount_paid') is None:
            raise serializers.ValidationError({'amount_paid': 'Amount paid is required for partial payments'})
        return data


class BulkFeeSerializer(serializers.Serializer):
    batch = serializers.PrimaryKeyRelatedField(queryset=Batch.objects.all(), required=False, allow_null=True)
    department = serializers.PrimaryKeyRelatedField(queryset=Department.objects.all(), required=False, allow_null=True)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    due_date = serializers.DateField()
    fee_type = serializers.ChoiceField(choices=Fee.FEE_TYPE_CHOICES)
    academic_year = serializers.CharField(max_length=9, required=False)
    description = serializers.CharField(max_length=500, required=False, allow_blank=True, allow_null=True)

    def validate(self, data):
        if not data.get('batch') and not data.get('department'):
            raise serializers.ValidationError('Either batch or department is required')
        return data


# ==================== SYSTEM ====================
class CollegeSettingsSerializer(serializers.ModelSerializer):
    class Meta:
        model = CollegeSettings
        fields = [
            'college_name', 'college_code', 'address', 'phone', 'email', 'logo_url',
            'academic_year', 'is_setup_complete', 'updated_at'
        ]
        read_only_fields = ['is_setup_complete', 'updated_at']
        extra_kwargs = {
            'college_name': {'min_length': 2},
        }

    def validate_academic_year(self, value):
        if value and not re.match(r'^\d{4}-\d{4}$', value):
            raise serializers.ValidationError('Academic year must look like 2024-2025')
        return value


class AuditLogSerializer(serializers.ModelSerializer):
    class Meta:
        model = AuditLog
        fields = '__all__'
