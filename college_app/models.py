# models.py
from decimal import Decimal

from django.db import models
from django.db.models import F, Q
from django.core.validators import MinValueValidator, MaxValueValidator
from django.core.exceptions import ValidationError
from django.utils import timezone


class FeeTransitionError(Exception):
    """Raised when a fee status change or edit breaks the fee lifecycle"""


# ==================== USER MANAGEMENT ====================
class User(models.Model):
    """
    Local user directory entry.
    Credentials live with the identity provider; this row maps the
    provider's uid to an application role and department scope.
    """
    PRINCIPAL = 'PRINCIPAL'
    HOD = 'HOD'
    FACULTY = 'FACULTY'
    STUDENT = 'STUDENT'

    ROLE_CHOICES = [
        (PRINCIPAL, 'Principal'),
        (HOD, 'Head of Department'),
        (FACULTY, 'Faculty'),
        (STUDENT, 'Student'),
    ]
    ROLES = [choice[0] for choice in ROLE_CHOICES]

    firebase_uid = models.CharField(max_length=128, unique=True)
    email = models.EmailField(unique=True)
    full_name = models.CharField(max_length=100)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES)
    department = models.ForeignKey('Department', on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='users')
    phone = models.CharField(max_length=20, blank=True, null=True)
    student_id = models.CharField(max_length=30, unique=True, blank=True, null=True)
    bio = models.TextField(max_length=500, blank=True, null=True)
    preferences = models.JSONField(default=dict, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['role'], name='idx_user_role'),
            models.Index(fields=['department', 'role'], name='idx_user_department_role'),
            models.Index(fields=['is_active'], name='idx_active_college_users'),
        ]

    def __str__(self):
        return f"{self.full_name} ({self.role})"

    # DRF treats any object with these attributes as a request user
    @property
    def is_authenticated(self):
        return True

    @property
    def is_anonymous(self):
        return False

    @property
    def is_principal(self):
        return self.role == self.PRINCIPAL

    @property
    def is_hod(self):
        return self.role == self.HOD

    @property
    def is_faculty(self):
        return self.role == self.FACULTY

    @property
    def is_student(self):
        return self.role == self.STUDENT

    @classmethod
    def active_principal_count(cls):
        return cls.objects.filter(role=cls.PRINCIPAL, is_active=True).count()

    def is_last_active_principal(self):
        return (
            self.role == self.PRINCIPAL
            and self.is_active
            and User.active_principal_count() <= 1
        )


# ==================== ACADEMIC STRUCTURE ====================
class Department(models.Model):
    name = models.CharField(max_length=100, unique=True)
    code = models.CharField(max_length=10, unique=True)
    hod = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                            related_name='headed_departments')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return f"{self.code} - {self.name}"

    def clean(self):
        if self.code:
            self.code = self.code.upper()
        if self.hod_id:
            hod = self.hod
            if hod.role != User.HOD:
                raise ValidationError({'hod': 'Assigned head must have the HOD role'})
            if self.pk is None or hod.department_id != self.pk:
                raise ValidationError({'hod': 'Assigned head must belong to this department'})

    def save(self, *args, **kwargs):
        if self.code:
            self.code = self.code.upper()
        super().save(*args, **kwargs)


class Batch(models.Model):
    name = models.CharField(max_length=50)
    year = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(10)])
    semester = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(12)])
    department = models.ForeignKey(Department, on_delete=models.PROTECT, related_name='batches')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['department', 'year', 'semester']
        constraints = [
            models.UniqueConstraint(fields=['department', 'name'], name='uniq_batch_name_per_department'),
        ]

    def __str__(self):
        return f"{self.name} (Y{self.year} S{self.semester})"


class Subject(models.Model):
    TYPE_CHOICES = [
        ('CORE', 'Core'),
        ('ELECTIVE', 'Elective'),
    ]

    name = models.CharField(max_length=100)
    code = models.CharField(max_length=20)
    department = models.ForeignKey(Department, on_delete=models.PROTECT, related_name='subjects')
    batch = models.ForeignKey(Batch, on_delete=models.CASCADE, related_name='subjects')
    faculty = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                related_name='subjects_taught')
    credits = models.PositiveSmallIntegerField(default=3)
    subject_type = models.CharField(max_length=10, choices=TYPE_CHOICES, default='CORE')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['code']
        constraints = [
            models.UniqueConstraint(fields=['batch', 'code'], name='uniq_subject_code_per_batch'),
        ]
        indexes = [
            models.Index(fields=['faculty'], name='idx_subject_faculty'),
        ]

    def __str__(self):
        return f"{self.code} - {self.name}"

    def save(self, *args, **kwargs):
        if self.code:
            self.code = self.code.upper()
        super().save(*args, **kwargs)


class Enrollment(models.Model):
    student = models.ForeignKey(User, on_delete=models.CASCADE, related_name='enrollments')
    batch = models.ForeignKey(Batch, on_delete=models.CASCADE, related_name='enrollments')
    academic_year = models.CharField(max_length=9)  # Format: 2024-2025
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-academic_year']
        constraints = [
            models.UniqueConstraint(fields=['student', 'academic_year'], name='uniq_enrollment_per_year'),
        ]

    def __str__(self):
        return f"{self.student.full_name} -> {self.batch.name} ({self.academic_year})"


# ==================== COURSEWORK ====================
class Assignment(models.Model):
    title = models.CharField(max_length=200)
    description = models.TextField(max_length=2000, blank=True, null=True)
    subject = models.ForeignKey(Subject, on_delete=models.CASCADE, related_name='assignments')
    due_date = models.DateTimeField()
    created_by = models.ForeignKey(User, on_delete=models.PROTECT, related_name='assignments_created')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-due_date']

    def __str__(self):
        return f"{self.title} ({self.subject.code})"

    @property
    def is_overdue(self):
        return self.due_date < timezone.now()


class Submission(models.Model):
    assignment = models.ForeignKey(Assignment, on_delete=models.CASCADE, related_name='submissions')
    student = models.ForeignKey(User, on_delete=models.CASCADE, related_name='submissions')
    file_url = models.URLField(max_length=500, blank=True, null=True)
    submitted_at = models.DateTimeField(auto_now_add=True)
    marks = models.PositiveIntegerField(blank=True, null=True)
    feedback = models.TextField(blank=True, null=True)
    graded_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                  related_name='submissions_graded')
    graded_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        ordering = ['-submitted_at']
        constraints = [
            models.UniqueConstraint(fields=['assignment', 'student'], name='uniq_submission_per_student'),
        ]

    def __str__(self):
        return f"{self.student.full_name} - {self.assignment.title}"


class Attendance(models.Model):
    STATUS_CHOICES = [
        ('PRESENT', 'Present'),
        ('ABSENT', 'Absent'),
        ('LATE', 'Late'),
        ('EXCUSED', 'Excused'),
    ]

    student = models.ForeignKey(User, on_delete=models.CASCADE, related_name='attendance_records')
    subject = models.ForeignKey(Subject, on_delete=models.CASCADE, related_name='attendance_records')
    date = models.DateField()
    status = models.CharField(max_length=10, choices=STATUS_CHOICES)
    marked_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                  related_name='attendance_marked')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-date']
        constraints = [
            models.UniqueConstraint(fields=['student', 'subject', 'date'], name='uniq_attendance_per_day'),
        ]
        indexes = [
            models.Index(fields=['subject', 'date'], name='idx_attendance_subject_date'),
        ]

    def __str__(self):
        return f"{self.student.full_name} - {self.subject.code} - {self.date} - {self.status}"


class Grade(models.Model):
    EXAM_TYPE_CHOICES = [
        ('MST1', 'Mid Semester Test 1'),
        ('MST2', 'Mid Semester Test 2'),
        ('FINAL', 'Final Examination'),
    ]

    student = models.ForeignKey(User, on_delete=models.CASCADE, related_name='grades')
    subject = models.ForeignKey(Subject, on_delete=models.CASCADE, related_name='grades')
    exam_type = models.CharField(max_length=10, choices=EXAM_TYPE_CHOICES)
    marks = models.PositiveIntegerField()
    total_marks = models.PositiveIntegerField(default=100, validators=[MinValueValidator(1)])
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['student', 'subject', 'exam_type'], name='uniq_grade_per_exam'),
            models.CheckConstraint(condition=Q(marks__lte=F('total_marks')), name='grade_marks_within_total'),
        ]

    def __str__(self):
        return f"{self.student.full_name} - {self.subject.code} {self.exam_type}: {self.marks}/{self.total_marks}"

    @property
    def percentage(self):
        return round(self.marks * 100 / self.total_marks, 2) if self.total_marks else 0


# ==================== COMMUNICATION ====================
class Notice(models.Model):
    PRIORITY_CHOICES = [
        ('LOW', 'Low'),
        ('NORMAL', 'Normal'),
        ('HIGH', 'High'),
        ('URGENT', 'Urgent'),
    ]

    title = models.CharField(max_length=200)
    content = models.TextField(max_length=5000)
    posted_by = models.ForeignKey(User, on_delete=models.CASCADE, related_name='notices')
    # null department means the notice is college-wide
    department = models.ForeignKey(Department, on_delete=models.CASCADE, null=True, blank=True,
                                   related_name='notices')
    batch = models.ForeignKey(Batch, on_delete=models.CASCADE, null=True, blank=True, related_name='notices')
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default='NORMAL')
    is_pinned = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-is_pinned', '-created_at']
        indexes = [
            models.Index(fields=['department'], name='idx_notice_department'),
        ]

    def __str__(self):
        return f"{self.title} - {self.department.code if self.department else 'College'}"


class Complaint(models.Model):
    PENDING = 'PENDING'
    IN_PROGRESS = 'IN_PROGRESS'
    RESOLVED = 'RESOLVED'
    REJECTED = 'REJECTED'

    STATUS_CHOICES = [
        (PENDING, 'Pending'),
        (IN_PROGRESS, 'In Progress'),
        (RESOLVED, 'Resolved'),
        (REJECTED, 'Rejected'),
    ]
    OPEN_STATUSES = [PENDING, IN_PROGRESS]

    title = models.CharField(max_length=200)
    description = models.TextField(max_length=2000)
    student = models.ForeignKey(User, on_delete=models.CASCADE, related_name='complaints')
    status = models.CharField(max_length=15, choices=STATUS_CHOICES, default=PENDING)
    resolved_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                    related_name='complaints_closed')
    resolved_at = models.DateTimeField(blank=True, null=True)
    resolution_note = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status'], name='idx_complaint_status'),
        ]

    def __str__(self):
        return f"{self.title} ({self.status})"

    def close(self, status, closed_by, note=None):
        if status not in (self.RESOLVED, self.REJECTED):
            raise ValidationError(f'Invalid closing status: {status}')
        if self.status not in self.OPEN_STATUSES:
            raise ValidationError(f'Complaint is already {self.status.lower()}')
        self.status = status
        self.resolved_by = closed_by
        self.resolved_at = timezone.now()
        if note:
            self.resolution_note = note
        self.save(update_fields=['status', 'resolved_by', 'resolved_at', 'resolution_note', 'updated_at'])


# ==================== FINANCE MODULE ====================
class Fee(models.Model):
    PENDING = 'PENDING'
    PARTIALLY_PAID = 'PARTIALLY_PAID'
    PAID = 'PAID'
    OVERDUE = 'OVERDUE'
    WAIVED = 'WAIVED'

    STATUS_CHOICES = [
        (PENDING, 'Pending'),
        (PARTIALLY_PAID, 'Partially Paid'),
        (PAID, 'Paid'),
        (OVERDUE, 'Overdue'),
        (WAIVED, 'Waived'),
    ]
    # statuses a payment desk may set; OVERDUE is only set by the overdue sweep
    MARKABLE_STATUSES = [PARTIALLY_PAID, PAID, WAIVED]
    OUTSTANDING_STATUSES = [PENDING, OVERDUE]

    FEE_TYPE_CHOICES = [
        ('TUITION', 'Tuition'),
        ('EXAM', 'Examination'),
        ('LIBRARY', 'Library'),
        ('HOSTEL', 'Hostel'),
        ('TRANSPORT', 'Transport'),
        ('LAB', 'Laboratory'),
        ('MISCELLANEOUS', 'Miscellaneous'),
    ]
    PAYMENT_MODE_CHOICES = [
        ('CASH', 'Cash'),
        ('BANK_TRANSFER', 'Bank Transfer'),
        ('ONLINE', 'Online'),
        ('CHEQUE', 'Cheque'),
        ('UPI', 'UPI'),
    ]

    student = models.ForeignKey(User, on_delete=models.CASCADE, related_name='fees')
    amount = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal('0.01'))])
    amount_paid = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    due_date = models.DateField()
    fee_type = models.CharField(max_length=20, choices=FEE_TYPE_CHOICES)
    description = models.CharField(max_length=500, blank=True, null=True)
    academic_year = models.CharField(max_length=9)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=PENDING)
    paid_at = models.DateTimeField(blank=True, null=True)
    payment_mode = models.CharField(max_length=20, choices=PAYMENT_MODE_CHOICES, blank=True, null=True)
    remarks = models.TextField(max_length=1000, blank=True, null=True)
    marked_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                  related_name='fees_marked')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.CheckConstraint(condition=Q(amount_paid__gte=0), name='fee_amount_paid_non_negative'),
            models.CheckConstraint(condition=Q(amount_paid__lte=F('amount')), name='fee_amount_paid_within_amount'),
        ]
        indexes = [
            models.Index(fields=['student'], name='idx_fee_student'),
            models.Index(fields=['status'], name='idx_fee_status'),
            models.Index(fields=['academic_year'], name='idx_fee_academic_year'),
            models.Index(fields=['due_date'], name='idx_fee_due_date'),
        ]

    def __str__(self):
        return f"{self.fee_type} {self.amount} - {self.student.full_name} ({self.status})"

    @property
    def balance(self):
        return self.amount - self.amount_paid

    @property
    def is_paid(self):
        return self.status == self.PAID

    def ensure_editable(self):
        if self.is_paid:
            raise FeeTransitionError('Cannot edit paid fees. Create a new fee instead.')

    def ensure_deletable(self):
        if self.is_paid:
            raise FeeTransitionError('Cannot delete paid fees. Mark as waived if needed.')

    def apply_edit(self, amount=None, due_date=None):
        """Validate an amount/due date change against the payment already recorded"""
        if amount is None and due_date is None:
            return
        self.ensure_editable()
        if amount is not None:
            if amount <= 0:
                raise FeeTransitionError('Amount must be positive')
            if amount < self.amount_paid:
                raise FeeTransitionError('Amount cannot be lower than the amount already paid')
            self.amount = amount
        if due_date is not None:
            self.due_date = due_date

    def mark(self, status, amount_paid=None, payment_mode=None, remarks=None, marked_by=None):
        """
        Move the fee to PARTIALLY_PAID, PAID or WAIVED.
        amount_paid is only read for partial payments; PAID always settles the
        full amount and WAIVED always clears it.
        """
        if self.is_paid:
            raise FeeTransitionError('Fee is already paid')
        if status not in self.MARKABLE_STATUSES:
            raise FeeTransitionError(f'Fees cannot be marked as {status}')

        if status == self.PARTIALLY_PAID:
            if amount_paid is None or amount_paid <= 0 or amount_paid >= self.amount:
                raise FeeTransitionError(
                    'Invalid amount for partial payment. Must be greater than 0 and less than total amount.'
                )
            self.amount_paid = amount_paid
        elif status == self.PAID:
            self.amount_paid = self.amount
        else:
            self.amount_paid = Decimal('0')

        self.status = status
        self.paid_at = timezone.now() if status != self.WAIVED else None
        self.payment_mode = payment_mode if status != self.WAIVED else None
        if remarks is not None:
            self.remarks = remarks
        self.marked_by = marked_by

    @classmethod
    def mark_overdue(cls, today=None):
        """Flag pending fees whose due date has passed. Returns the number of fees updated."""
        today = today or timezone.localdate()
        return cls.objects.filter(status=cls.PENDING, due_date__lt=today).update(
            status=cls.OVERDUE, updated_at=timezone.now()
        )


# ==================== SYSTEM ====================
class CollegeSettings(models.Model):
    SINGLETON_ID = 1
    DEFAULT_NAME = 'My College'

    college_name = models.CharField(max_length=100, default=DEFAULT_NAME)
    college_code = models.CharField(max_length=20, default='COLLEGE')
    address = models.TextField(max_length=500, blank=True, null=True)
    phone = models.CharField(max_length=20, blank=True, null=True)
    email = models.EmailField(blank=True, null=True)
    logo_url = models.URLField(blank=True, null=True)
    academic_year = models.CharField(max_length=9, blank=True, default='')
    is_setup_complete = models.BooleanField(default=False)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'College Settings'
        verbose_name_plural = 'College Settings'

    def __str__(self):
        return f"{self.college_name} ({self.college_code})"

    def save(self, *args, **kwargs):
        self.pk = self.SINGLETON_ID
        super().save(*args, **kwargs)

    @classmethod
    def load(cls):
        settings_row, _ = cls.objects.get_or_create(pk=cls.SINGLETON_ID)
        return settings_row

    @classmethod
    def current_academic_year(cls):
        from django.conf import settings
        return cls.load().academic_year or settings.DEFAULT_ACADEMIC_YEAR


class AuditLog(models.Model):
    EVENT_TYPE_CHOICES = [
        ('USER_CREATE', 'User Create'),
        ('USER_UPDATE', 'User Update'),
        ('USER_DELETE', 'User Delete'),
        ('BULK_IMPORT', 'Bulk Import'),
        ('FEE_CREATE', 'Fee Create'),
        ('FEE_UPDATE', 'Fee Update'),
        ('FEE_DELETE', 'Fee Delete'),
        ('PAYMENT_RECEIVED', 'Payment Received'),
        ('MARKS_ENTERED', 'Marks Entered'),
        ('ATTENDANCE_MARKED', 'Attendance Marked'),
        ('COMPLAINT_CLOSED', 'Complaint Closed'),
        ('BATCH_PROMOTED', 'Batch Promoted'),
        ('CONFIG_CHANGE', 'Config Change'),
    ]
    OPERATION_CHOICES = [
        ('INSERT', 'Insert'),
        ('UPDATE', 'Update'),
        ('DELETE', 'Delete'),
    ]

    event_time = models.DateTimeField(auto_now_add=True)
    event_type = models.CharField(max_length=50, choices=EVENT_TYPE_CHOICES)

    # Who
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='audit_entries')
    user_email = models.CharField(max_length=254, blank=True, null=True)
    user_role = models.CharField(max_length=20, blank=True, null=True)

    # What
    table_name = models.CharField(max_length=50)
    record_id = models.IntegerField(blank=True, null=True)
    operation = models.CharField(max_length=20, choices=OPERATION_CHOICES, blank=True, null=True)

    # Changes
    old_values = models.JSONField(blank=True, null=True)
    new_values = models.JSONField(blank=True, null=True)
    changed_fields = models.JSONField(default=list, blank=True)
    error_message = models.TextField(blank=True, null=True)

    # Context
    ip_address = models.GenericIPAddressField(blank=True, null=True)
    endpoint = models.CharField(max_length=255, blank=True, null=True)
    http_method = models.CharField(max_length=10, blank=True, null=True)

    class Meta:
        ordering = ['-event_time']
        indexes = [
            models.Index(fields=['event_time'], name='idx_audit_event_time'),
            models.Index(fields=['user'], name='idx_audit_user'),
            models.Index(fields=['table_name'], name='idx_audit_table_name'),
            models.Index(fields=['event_type'], name='idx_audit_event_type'),
        ]

    def __str__(self):
        return f"{self.event_time} - {self.event_type} - {self.user_email or 'System'}"

    @classmethod
    def record(cls, request, event_type, table_name, operation, record_id=None, **values):
        """Create an audit row from the request context, the way every mutating view logs"""
        actor = getattr(request, 'user', None) if request is not None else None
        if actor is not None and not isinstance(actor, User):
            actor = None
        meta = request.META if request is not None else {}
        return cls.objects.create(
            event_type=event_type,
            user=actor,
            user_email=actor.email if actor else None,
            user_role=actor.role if actor else None,
            table_name=table_name,
            record_id=record_id,
            operation=operation,
            ip_address=meta.get('REMOTE_ADDR'),
            endpoint=getattr(request, 'path', None),
            http_method=getattr(request, 'method', None),
            **values,
        )
