# services.py
"""Multi-step writes shared by several views"""
import logging
from decimal import Decimal

import pandas as pd
from django.db import transaction
from django.db.models import Count, Sum, Q, F, Value, DecimalField
from django.db.models.functions import Coalesce
from rest_framework import serializers

from . import identity
from .exceptions import Conflict
from .models import User, Department, Batch, Enrollment, Attendance, Fee, CollegeSettings

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
BULK_COLUMNS = ['email', 'full_name', 'role', 'department', 'batch', 'student_id', 'phone']


# ==================== USER PROVISIONING ====================
def create_user_account(email, password, full_name, role, department=None, batch=None,
                        student_id=None, phone=None, academic_year=None):
    """
    Create the provider account, then the local user (and enrollment when a
    batch is given). If any local write fails the provider account is deleted
    again so the two stores never drift apart.
    """
    email = email.strip().lower()
    if User.objects.filter(email__iexact=email).exists():
        raise Conflict(f'User with email {email} already exists')
    if student_id and User.objects.filter(student_id=student_id).exists():
        raise Conflict(f'Student ID {student_id} already exists')

    uid = identity.create_account(email, password, display_name=full_name)
    try:
        with transaction.atomic():
            user = User.objects.create(
                firebase_uid=uid,
                email=email,
                full_name=full_name,
                role=role,
                department=department,
                student_id=student_id or None,
                phone=phone or None,
            )
            if batch is not None and role == User.STUDENT:
                Enrollment.objects.create(
                    student=user,
                    batch=batch,
                    academic_year=academic_year or CollegeSettings.current_academic_year(),
                )
    except Exception as e:
        logger.error(f"Local user creation failed for {email}, rolling back provider account: {str(e)}")
        try:
            identity.delete_account(uid)
        except identity.IdentityProviderError as cleanup_error:
            logger.error(f"Provider rollback failed for {uid}: {str(cleanup_error)}")
        raise
    return user


def read_upload_rows(upload):
    """Read an uploaded Excel sheet into a list of row dicts with NaN cleaned to None"""
    if upload.name.endswith('.xlsx'):
        df = pd.read_excel(upload, engine='openpyxl', dtype=str)
    else:
        df = pd.read_excel(upload, dtype=str)
    df.columns = [str(column).strip().lower().replace(' ', '_') for column in df.columns]

    rows = []
    for record in df.to_dict('records'):
        cleaned = {}
        for key, value in record.items():
            if pd.isna(value):
                cleaned[key] = None
            else:
                cleaned[key] = str(value).strip() or None
        rows.append(cleaned)
    return rows


def _provision_row(row, default_password, academic_year):
    email = (row.get('email') or '').strip()
    full_name = (row.get('full_name') or '').strip()
    role = (row.get('role') or '').strip().upper()

    if not email or not full_name or not role:
        raise ValueError(f"Missing required fields for {email or 'unknown user'}")
    if role not in User.ROLES:
        raise ValueError(f"Invalid role: {row.get('role')} for {email}")

    department = None
    if row.get('department'):
        department = Department.objects.filter(name__iexact=row['department'].strip()).first()
        if department is None:
            raise ValueError(f"Department not found: {row['department']}")

    batch = None
    if role == User.STUDENT and row.get('batch'):
        if department is None:
            raise ValueError(f"Batch {row['batch']} given without a department")
        batch = Batch.objects.filter(department=department, name__iexact=row['batch'].strip()).first()
        if batch is None:
            raise ValueError(f"Batch not found in {department.name}: {row['batch']}")

    return create_user_account(
        email=email,
        password=default_password,
        full_name=full_name,
        role=role,
        department=department,
        batch=batch,
        student_id=row.get('student_id'),
        phone=row.get('phone'),
        academic_year=academic_year,
    )


def bulk_provision(rows, default_password):
    """
    Provision every row independently. A failing row is reported and skipped;
    it never aborts the rows after it.
    Returns {'success': int, 'failed': int, 'errors': [str]}.
    """
    if not default_password or len(default_password) < MIN_PASSWORD_LENGTH:
        raise serializers.ValidationError(f'Default password (min {MIN_PASSWORD_LENGTH} chars) is required')

    academic_year = CollegeSettings.current_academic_year()
    results = {'success': 0, 'failed': 0, 'errors': []}

    for i, row in enumerate(rows, start=1):
        email = row.get('email') or 'unknown'
        try:
            _provision_row(row, default_password, academic_year)
            results['success'] += 1
        except Conflict as e:
            results['failed'] += 1
            results['errors'].append(f"Row {i} ({email}): {e.detail}")
        except (ValueError, identity.IdentityProviderError) as e:
            results['failed'] += 1
            results['errors'].append(f"Row {i} ({email}): {str(e)}")
        except Exception as e:
            logger.error(f"Error provisioning row {i}: {str(e)}")
            results['failed'] += 1
            results['errors'].append(f"Row {i} ({email}): Database creation failed: {str(e)}")

    logger.info(f"Bulk provisioning finished: {results['success']} created, {results['failed']} failed")
    return results


# ==================== PRINCIPAL GUARD ====================
def ensure_principal_remains(user, new_role=None, new_is_active=None, deleting=False):
    """
    Reject deleting, demoting or deactivating the last active principal.
    Also enforced by the Django admin, where the API's own-account check does not apply.
    """
    if not user.is_last_active_principal():
        return
    if deleting:
        raise serializers.ValidationError('Cannot delete the last active principal')
    if new_role is not None and new_role != User.PRINCIPAL:
        raise serializers.ValidationError('Cannot change the role of the last active principal')
    if new_is_active is False:
        raise serializers.ValidationError('Cannot deactivate the last active principal')


# ==================== ATTENDANCE ====================
def record_attendance(subject, date, records, marked_by):
    """
    Upsert one attendance row per student for (subject, date).
    Re-submitting the same sheet updates rows in place.
    """
    valid_statuses = {choice[0] for choice in Attendance.STATUS_CHOICES}
    enrolled_ids = set(
        Enrollment.objects.filter(batch=subject.batch).values_list('student_id', flat=True)
    )

    count = 0
    with transaction.atomic():
        for student_id, attendance_status in records.items():
            try:
                student_pk = int(student_id)
            except (TypeError, ValueError):
                raise serializers.ValidationError(f'Invalid student id: {student_id}')
            attendance_status = str(attendance_status).upper()
            if attendance_status not in valid_statuses:
                raise serializers.ValidationError(f'Invalid attendance status: {attendance_status}')
            if student_pk not in enrolled_ids:
                raise serializers.ValidationError(f'Student {student_pk} is not enrolled in {subject.batch.name}')

            Attendance.objects.update_or_create(
                student_id=student_pk,
                subject=subject,
                date=date,
                defaults={'status': attendance_status, 'marked_by': marked_by},
            )
            count += 1
    return count


# ==================== FEES ====================
def create_bulk_fees(students, amount, due_date, fee_type, academic_year, description=None):
    with transaction.atomic():
        fees = Fee.objects.bulk_create([
            Fee(
                student=student,
                amount=amount,
                due_date=due_date,
                fee_type=fee_type,
                academic_year=academic_year,
                description=description,
            )
            for student in students
        ])
    return fees


def _money(field, condition=None):
    return Coalesce(
        Sum(field, filter=condition),
        Value(Decimal('0')),
        output_field=DecimalField(max_digits=14, decimal_places=2),
    )


def fee_statistics(fees):
    """Counts per status, collected / pending totals and the collection rate for a fee queryset"""
    totals = fees.aggregate(
        total_fees=Count('id'),
        pending=Count('id', filter=Q(status=Fee.PENDING)),
        partially_paid=Count('id', filter=Q(status=Fee.PARTIALLY_PAID)),
        paid=Count('id', filter=Q(status=Fee.PAID)),
        overdue=Count('id', filter=Q(status=Fee.OVERDUE)),
        waived=Count('id', filter=Q(status=Fee.WAIVED)),
        total_amount=_money('amount'),
        collected_amount=_money('amount_paid', Q(status__in=[Fee.PAID, Fee.PARTIALLY_PAID])),
        pending_amount=_money('amount', Q(status__in=Fee.OUTSTANDING_STATUSES)),
    )
    total_amount = totals['total_amount']
    totals['collection_rate'] = (
        round(float(totals['collected_amount'] / total_amount * 100), 2) if total_amount else 0
    )
    by_type = (
        fees.values('fee_type')
        .annotate(count=Count('id'), total=_money('amount'), collected=_money('amount_paid'))
        .order_by('fee_type')
    )
    totals['by_fee_type'] = [
        {
            'fee_type': row['fee_type'],
            'count': row['count'],
            'total': row['total'],
            'collected': row['collected'],
        }
        for row in by_type
    ]
    return totals


def department_fee_report():
    """Per-department fee collection, best collection rate first"""
    report = []
    for department in Department.objects.all():
        fees = Fee.objects.filter(student__department=department)
        stats = fees.aggregate(
            total_fees=Count('id'),
            paid=Count('id', filter=Q(status=Fee.PAID)),
            outstanding=Count('id', filter=Q(status__in=Fee.OUTSTANDING_STATUSES)),
            total_amount=_money('amount'),
            collected_amount=_money('amount_paid'),
        )
        total_amount = stats['total_amount']
        report.append({
            'department_id': department.id,
            'department': department.name,
            'code': department.code,
            'student_count': department.users.filter(role=User.STUDENT).count(),
            **stats,
            'collection_rate': round(float(stats['collected_amount'] / total_amount * 100), 2) if total_amount else 0,
        })
    report.sort(key=lambda row: row['collection_rate'], reverse=True)

    summary = {
        'departments': len(report),
        'total_amount': sum((row['total_amount'] for row in report), Decimal('0')),
        'collected_amount': sum((row['collected_amount'] for row in report), Decimal('0')),
    }
    summary['collection_rate'] = (
        round(float(summary['collected_amount'] / summary['total_amount'] * 100), 2)
        if summary['total_amount'] else 0
    )
    return {'departments': report, 'summary': summary}


# ==================== BATCHES ====================
def promote_batch(batch):
    """Move a batch to its next semester. Returns the number of enrolled students"""
    enrolled = batch.enrollments.count()
    if enrolled == 0:
        return 0
    if batch.semester >= 12:
        raise serializers.ValidationError('Batch is already in the final semester')
    with transaction.atomic():
        Batch.objects.filter(pk=batch.pk).update(semester=F('semester') + 1)
        batch.refresh_from_db()
    return enrolled
