# views.py
import logging
import math
from decimal import Decimal
from io import BytesIO

import openpyxl
from openpyxl.styles import Font, PatternFill
from django.conf import settings
from django.db import connection, transaction
from django.db.models import Count, Q, Prefetch, ProtectedError
from django.http import HttpResponse, Http404
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import status, viewsets
from rest_framework.decorators import action, api_view, permission_classes, authentication_classes
from rest_framework.exceptions import ValidationError, PermissionDenied
from rest_framework.parsers import MultiPartParser, FormParser
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from . import identity, services
from .exceptions import Conflict
from .models import *
from .permissions import RolePermission
from .scoping import (
    scope_queryset, get_scoped_object, department_for,
    USER_SCOPE, FEE_SCOPE, COMPLAINT_SCOPE, SUBJECT_SCOPE, BATCH_SCOPE,
    ASSIGNMENT_SCOPE, SUBJECT_RECORD_SCOPE,
)
from .serializers import *

logger = logging.getLogger(__name__)

PRINCIPAL_ONLY = [User.PRINCIPAL]
ADMINISTRATORS = [User.PRINCIPAL, User.HOD]


class RoleAPIView(APIView):
    """APIView restricted to the roles listed in ``allowed_roles``"""
    permission_classes = [RolePermission]
    allowed_roles = []


def paginate(request, queryset, serializer_class, key, context=None):
    """Slice a queryset by ?page=&limit= and wrap it with pagination metadata"""
    try:
        page = max(int(request.query_params.get('page', 1)), 1)
        limit = int(request.query_params.get('limit', settings.DEFAULT_PAGE_SIZE))
    except ValueError:
        raise ValidationError('page and limit must be integers')
    limit = min(max(limit, 1), settings.MAX_PAGE_SIZE)

    total = queryset.count()
    items = queryset[(page - 1) * limit:page * limit]
    return {
        key: serializer_class(items, many=True, context=context or {'request': request}).data,
        'pagination': {
            'page': page,
            'limit': limit,
            'total': total,
            'total_pages': math.ceil(total / limit) if total else 0,
        },
    }


def audit(request, event_type, table_name, operation, record_id=None, **values):
    AuditLog.record(request, event_type, table_name, operation, record_id=record_id, **values)


def sync_identity(user, **fields):
    """Push non-critical profile changes to the identity provider; failures are logged only"""
    try:
        identity.update_account(user.firebase_uid, **fields)
    except identity.IdentityProviderError as e:
        logger.error(f"Identity sync failed for user {user.id}: {str(e)}")


# ==================== AUTH & SYSTEM VIEWS ====================
class MeView(APIView):
    """Current user profile with department"""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(MeSerializer(request.user).data)


@api_view(['GET'])
@authentication_classes([])
@permission_classes([AllowAny])
def health_check(request):
    """Liveness check including a database round trip"""
    try:
        with connection.cursor() as cursor:
            cursor.execute('SELECT 1')
        database = 'ok'
    except Exception as e:
        logger.error(f"Health check database error: {str(e)}")
        database = 'error'

    healthy = database == 'ok'
    return Response({
        'status': 'healthy' if healthy else 'unhealthy',
        'database': database,
        'timestamp': timezone.now(),
    }, status=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE)


# ==================== USER MANAGEMENT VIEWS ====================
class AdminUserListView(RoleAPIView):
    allowed_roles = PRINCIPAL_ONLY

    def get(self, request):
        users = User.objects.select_related('department').all()

        role = request.query_params.get('role')
        if role:
            users = users.filter(role=role.upper())
        department_id = request.query_params.get('department')
        if department_id:
            users = users.filter(department_id=department_id)
        is_active = request.query_params.get('is_active')
        if is_active in ('true', 'false'):
            users = users.filter(is_active=is_active == 'true')
        search = request.query_params.get('search')
        if search:
            users = users.filter(
                Q(full_name__icontains=search) |
                Q(email__icontains=search) |
                Q(student_id__icontains=search)
            )

        return Response(paginate(request, users.order_by('full_name'), UserSerializer, 'users'))

    def post(self, request):
        serializer = UserCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        if data['role'] == User.HOD and not data.get('department'):
            raise ValidationError({'department': 'HOD must belong to a department'})

        user = services.create_user_account(
            email=data['email'],
            password=data['password'],
            full_name=data['full_name'],
            role=data['role'],
            department=data.get('department'),
            batch=data.get('batch'),
            student_id=data.get('student_id'),
            phone=data.get('phone'),
        )
        audit(request, 'USER_CREATE', 'User', 'INSERT', record_id=user.id,
              new_values={'email': user.email, 'role': user.role})
        logger.info(f"User {user.email} created by {request.user.email}")
        return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)


class AdminUserDetailView(RoleAPIView):
    allowed_roles = PRINCIPAL_ONLY

    def get(self, request, pk):
        user = get_object_or_404(User.objects.select_related('department'), pk=pk)
        return Response(StudentSerializer(user).data if user.is_student else UserSerializer(user).data)

    def put(self, request, pk):
        user = get_object_or_404(User, pk=pk)
        serializer = UserUpdateSerializer(user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        services.ensure_principal_remains(user, new_role=data.get('role'), new_is_active=data.get('is_active'))

        old_values = {'email': user.email, 'full_name': user.full_name, 'role': user.role,
                      'is_active': user.is_active}
        with transaction.atomic():
            user = serializer.save()
            headed = Department.objects.filter(hod=user)
            # a department's head must stay an HOD of that department
            if user.role != User.HOD or not user.department_id:
                headed.update(hod=None)
            else:
                headed.exclude(pk=user.department_id).update(hod=None)

        provider_fields = {}
        if 'full_name' in data and data['full_name'] != old_values['full_name']:
            provider_fields['display_name'] = data['full_name']
        if 'email' in data and data['email'] != old_values['email']:
            provider_fields['email'] = data['email']
        if 'is_active' in data and data['is_active'] != old_values['is_active']:
            provider_fields['disabled'] = not data['is_active']
        if provider_fields:
            sync_identity(user, **provider_fields)

        audit(request, 'USER_UPDATE', 'User', 'UPDATE', record_id=user.id, old_values=old_values,
              new_values={k: str(v) for k, v in data.items()}, changed_fields=list(data.keys()))
        return Response(UserSerializer(user).data)

    def delete(self, request, pk):
        user = get_object_or_404(User, pk=pk)
        if user.pk == request.user.pk:
            raise ValidationError('You cannot delete your own account')
        services.ensure_principal_remains(user, deleting=True)

        uid, user_id, email = user.firebase_uid, user.id, user.email
        try:
            user.delete()
        except ProtectedError:
            raise ValidationError('User owns records that must be reassigned first')

        try:
            identity.delete_account(uid)
        except identity.IdentityProviderError as e:
            logger.error(f"Provider delete failed for {email}: {str(e)}")

        audit(request, 'USER_DELETE', 'User', 'DELETE', record_id=user_id, old_values={'email': email})
        return Response({'success': True, 'message': 'User deleted successfully'})


class BulkUserCreateView(RoleAPIView):
    """Provision many users from a JSON list"""
    allowed_roles = PRINCIPAL_ONLY

    def post(self, request):
        serializer = BulkUserSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        rows = serializer.validated_data['users']
        results = services.bulk_provision(rows, serializer.validated_data['default_password'])

        audit(request, 'BULK_IMPORT', 'User', 'INSERT', new_values={
            'total_rows': len(rows),
            'success': results['success'],
            'failed': results['failed'],
            'source': 'json',
        })
        return Response(results)


class BulkUserImportView(RoleAPIView):
    """Provision users from an uploaded Excel sheet"""
    allowed_roles = PRINCIPAL_ONLY
    parser_classes = [MultiPartParser, FormParser]

    def post(self, request):
        if 'excelFile' not in request.FILES:
            raise ValidationError('No file uploaded')
        excel_file = request.FILES['excelFile']

        try:
            rows = services.read_upload_rows(excel_file)
        except Exception as e:
            logger.error(f"Error reading upload {excel_file.name}: {str(e)}")
            raise ValidationError('Could not read the uploaded spreadsheet')
        if not rows:
            raise ValidationError('The uploaded sheet has no rows')

        results = services.bulk_provision(rows, request.data.get('default_password'))
        audit(request, 'BULK_IMPORT', 'User', 'INSERT', new_values={
            'total_rows': len(rows),
            'success': results['success'],
            'failed': results['failed'],
            'file_name': excel_file.name,
        })
        return Response(results)


class BulkUserTemplateView(RoleAPIView):
    """Excel template for the bulk user import"""
    allowed_roles = PRINCIPAL_ONLY

    def get(self, request):
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = 'Users'

        header_font = Font(bold=True, color='FFFFFF')
        header_fill = PatternFill(start_color='366092', end_color='366092', fill_type='solid')
        for col, header in enumerate(services.BULK_COLUMNS, start=1):
            cell = ws.cell(row=1, column=col, value=header)
            cell.font = header_font
            cell.fill = header_fill
            ws.column_dimensions[cell.column_letter].width = 22

        department = Department.objects.order_by('name').first()
        batch = department.batches.order_by('name').first() if department else None
        ws.append([
            'student@example.edu', 'Jane Doe', 'STUDENT',
            department.name if department else 'Computer Science',
            batch.name if batch else '2024 A', 'CS2024001', '9876543210',
        ])
        ws.append([
            'faculty@example.edu', 'John Smith', 'FACULTY',
            department.name if department else 'Computer Science', '', '', '',
        ])

        notes = wb.create_sheet('Instructions')
        notes.append(['Column', 'Notes'])
        notes.append(['role', 'One of ' + ', '.join(User.ROLES) + ' (case-insensitive)'])
        notes.append(['department', 'Department name as configured (case-insensitive)'])
        notes.append(['batch', 'Batch name within the department, students only'])

        buffer = BytesIO()
        wb.save(buffer)
        buffer.seek(0)

        response = HttpResponse(
            buffer.getvalue(),
            content_type='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
        )
        response['Content-Disposition'] = 'attachment; filename="user_import_template.xlsx"'
        return response


# ==================== DEPARTMENT VIEWS ====================
def annotated_departments():
    return Department.objects.select_related('hod').annotate(
        user_count=Count('users', distinct=True),
        batch_count=Count('batches', distinct=True),
        subject_count=Count('subjects', distinct=True),
    )


def ensure_unique_department(data, instance=None):
    others = Department.objects.exclude(pk=instance.pk) if instance else Department.objects.all()
    if 'code' in data and others.filter(code__iexact=data['code']).exists():
        raise Conflict(f"Department code {data['code']} already exists")
    if 'name' in data and others.filter(name__iexact=data['name']).exists():
        raise Conflict(f"Department {data['name']} already exists")


class DepartmentListView(RoleAPIView):
    allowed_roles = PRINCIPAL_ONLY

    def get(self, request):
        departments = annotated_departments().order_by('name')
        return Response(DepartmentSerializer(departments, many=True).data)

    def post(self, request):
        serializer = DepartmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ensure_unique_department(serializer.validated_data)
        department = serializer.save()
        audit(request, 'CONFIG_CHANGE', 'Department', 'INSERT', record_id=department.id,
              new_values={'name': department.name, 'code': department.code})
        return Response(DepartmentSerializer(annotated_departments().get(pk=department.pk)).data,
                        status=status.HTTP_201_CREATED)


class DepartmentDetailView(RoleAPIView):
    allowed_roles = PRINCIPAL_ONLY

    def get(self, request, pk):
        return Response(DepartmentSerializer(get_object_or_404(annotated_departments(), pk=pk)).data)

    def put(self, request, pk):
        department = get_object_or_404(Department, pk=pk)
        serializer = DepartmentSerializer(department, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        ensure_unique_department(serializer.validated_data, instance=department)
        serializer.save()
        audit(request, 'CONFIG_CHANGE', 'Department', 'UPDATE', record_id=department.id,
              new_values={k: str(v) for k, v in serializer.validated_data.items()})
        return Response(DepartmentSerializer(annotated_departments().get(pk=department.pk)).data)

    def delete(self, request, pk):
        department = get_object_or_404(annotated_departments(), pk=pk)
        if department.user_count or department.batch_count or department.subject_count:
            raise ValidationError(
                'Cannot delete department with existing users, batches, or subjects. Please remove them first.'
            )
        department.delete()
        audit(request, 'CONFIG_CHANGE', 'Department', 'DELETE', record_id=pk)
        return Response({'success': True, 'message': 'Department deleted successfully'})


# ==================== BATCH VIEWS ====================
def annotated_batches():
    return Batch.objects.select_related('department').annotate(
        student_count=Count('enrollments', distinct=True),
        subject_count=Count('subjects', distinct=True),
    )


def ensure_unique_batch(department, name, instance=None):
    batches = Batch.objects.filter(department=department, name__iexact=name)
    if instance is not None:
        batches = batches.exclude(pk=instance.pk)
    if batches.exists():
        raise Conflict(f'Batch {name} already exists in {department.name}')


class BatchListView(RoleAPIView):
    allowed_roles = ADMINISTRATORS

    def get(self, request):
        batches = scope_queryset(annotated_batches(), request.user, **BATCH_SCOPE)
        department_id = request.query_params.get('department')
        if department_id:
            batches = batches.filter(department_id=department_id)
        return Response(BatchSerializer(batches.order_by('department__name', 'year', 'semester'), many=True).data)

    def post(self, request):
        data = dict(request.data.items())
        if request.user.is_hod:
            data['department'] = department_for(request.user)
        serializer = BatchSerializer(data=data)
        serializer.is_valid(raise_exception=True)
        department = serializer.validated_data['department']
        ensure_unique_batch(department, serializer.validated_data['name'])
        batch = serializer.save()
        logger.info(f"Batch {batch.name} created in {department.code} by {request.user.email}")
        return Response(BatchSerializer(annotated_batches().get(pk=batch.pk)).data, status=status.HTTP_201_CREATED)


class BatchDetailView(RoleAPIView):
    allowed_roles = ADMINISTRATORS

    def get_batch(self, request, pk):
        return get_scoped_object(annotated_batches(), request.user, pk, **BATCH_SCOPE)

    def get(self, request, pk):
        return Response(BatchSerializer(self.get_batch(request, pk)).data)

    def put(self, request, pk):
        batch = self.get_batch(request, pk)
        data = dict(request.data.items())
        if request.user.is_hod:
            data.pop('department', None)
        serializer = BatchSerializer(batch, data=data, partial=True)
        serializer.is_valid(raise_exception=True)
        ensure_unique_batch(serializer.validated_data.get('department', batch.department),
                            serializer.validated_data.get('name', batch.name), instance=batch)
        old_department_id = batch.department_id
        with transaction.atomic():
            batch = serializer.save()
            # subjects and batch notices follow the batch into its new department
            if batch.department_id != old_department_id:
                batch.subjects.update(department=batch.department, updated_at=timezone.now())
                batch.notices.update(department=batch.department, updated_at=timezone.now())
                logger.info(f"Batch {batch.id} moved to department {batch.department.code} by {request.user.email}")
        return Response(BatchSerializer(annotated_batches().get(pk=batch.pk)).data)

    def delete(self, request, pk):
        batch = self.get_batch(request, pk)
        if batch.student_count:
            raise ValidationError('Cannot delete a batch with enrolled students')
        batch.delete()
        logger.info(f"Batch {pk} deleted by {request.user.email}")
        return Response({'success': True, 'message': 'Batch deleted successfully'})


class BatchPromoteView(RoleAPIView):
    """Move every student of a batch to the next semester"""
    allowed_roles = PRINCIPAL_ONLY

    def post(self, request):
        serializer = BatchPromoteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        batch = serializer.validated_data['batch']
        old_semester = batch.semester

        promoted = services.promote_batch(batch)
        if not promoted:
            raise Http404('No students found in batch')

        audit(request, 'BATCH_PROMOTED', 'Batch', 'UPDATE', record_id=batch.id,
              old_values={'semester': old_semester}, new_values={'semester': batch.semester})
        return Response({
            'success': True,
            'message': f'Promoted {promoted} students to semester {batch.semester}',
            'count': promoted,
            'batch': BatchSerializer(annotated_batches().get(pk=batch.pk)).data,
        })


# ==================== SUBJECT VIEWS ====================
def ensure_subject_assignable(user, batch, faculty):
    """HODs may only place subjects in their own batches and staff them with their own faculty"""
    if not user.is_hod:
        return
    department_id = department_for(user)
    if batch is not None and batch.department_id != department_id:
        raise ValidationError({'batch': 'Invalid batch for your department'})
    if faculty is not None and (faculty.role != User.FACULTY or faculty.department_id != department_id):
        raise ValidationError({'faculty': 'Faculty must be a faculty member of your department'})


def ensure_unique_subject(batch, code, instance=None):
    subjects = Subject.objects.filter(batch=batch, code__iexact=code)
    if instance is not None:
        subjects = subjects.exclude(pk=instance.pk)
    if subjects.exists():
        raise Conflict(f'Subject code {code.upper()} already exists in this batch')


class SubjectListView(RoleAPIView):
    allowed_roles = ADMINISTRATORS

    def get(self, request):
        subjects = scope_queryset(
            Subject.objects.select_related('department', 'batch', 'faculty'), request.user, **SUBJECT_SCOPE
        )
        for param, field in (('department', 'department_id'), ('batch', 'batch_id'), ('faculty', 'faculty_id')):
            value = request.query_params.get(param)
            if value:
                subjects = subjects.filter(**{field: value})
        return Response(SubjectSerializer(subjects.order_by('code'), many=True).data)

    def post(self, request):
        serializer = SubjectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        ensure_subject_assignable(request.user, data['batch'], data.get('faculty'))
        ensure_unique_subject(data['batch'], data['code'])
        subject = serializer.save()
        logger.info(f"Subject {subject.code} created by {request.user.email}")
        return Response(SubjectSerializer(subject).data, status=status.HTTP_201_CREATED)


class SubjectDetailView(RoleAPIView):
    allowed_roles = ADMINISTRATORS

    def get_subject(self, request, pk):
        return get_scoped_object(
            Subject.objects.select_related('department', 'batch', 'faculty'), request.user, pk, **SUBJECT_SCOPE
        )

    def get(self, request, pk):
        return Response(SubjectSerializer(self.get_subject(request, pk)).data)

    def put(self, request, pk):
        subject = self.get_subject(request, pk)
        serializer = SubjectSerializer(subject, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        ensure_subject_assignable(request.user, data.get('batch'), data.get('faculty'))
        ensure_unique_subject(data.get('batch', subject.batch), data.get('code', subject.code), instance=subject)
        serializer.save()
        return Response(SubjectSerializer(subject).data)

    def delete(self, request, pk):
        subject = self.get_subject(request, pk)
        subject.delete()
        logger.info(f"Subject {pk} deleted by {request.user.email}")
        return Response({'success': True, 'message': 'Subject deleted successfully'})


class AdminFacultyListView(RoleAPIView):
    """Teaching staff (faculty and HODs) across departments"""
    allowed_roles = PRINCIPAL_ONLY

    def get(self, request):
        staff = User.objects.select_related('department').filter(role__in=[User.FACULTY, User.HOD])
        department_id = request.query_params.get('department')
        if department_id:
            staff = staff.filter(department_id=department_id)
        return Response(UserSerializer(staff.order_by('full_name'), many=True).data)


# ==================== FINANCE VIEWS ====================
def filter_fees(request, fees):
    params = request.query_params

    for param, field in (('student', 'student_id'), ('fee_type', 'fee_type'), ('academic_year', 'academic_year')):
        value = params.get(param)
        if value:
            fees = fees.filter(**{field: value})
    fee_status = params.get('status')
    if fee_status:
        fees = fees.filter(status__in=[s.strip().upper() for s in fee_status.split(',')])
    if params.get('due_from'):
        fees = fees.filter(due_date__gte=params['due_from'])
    if params.get('due_to'):
        fees = fees.filter(due_date__lte=params['due_to'])
    if params.get('department'):
        fees = fees.filter(student__department_id=params['department'])
    if params.get('batch'):
        fees = fees.filter(student__enrollments__batch_id=params['batch']).distinct()
    search = params.get('search')
    if search:
        fees = fees.filter(
            Q(student__full_name__icontains=search) |
            Q(student__email__icontains=search) |
            Q(student__student_id__icontains=search) |
            Q(description__icontains=search)
        )
    return fees


def fee_queryset():
    return Fee.objects.select_related('student', 'student__department', 'marked_by')


class FeeListView(RoleAPIView):
    """Fee ledger; HODs see the fees of their department's students"""
    allowed_roles = ADMINISTRATORS

    def get(self, request):
        fees = filter_fees(request, scope_queryset(fee_queryset(), request.user, **FEE_SCOPE))
        return Response(paginate(request, fees.order_by('-created_at'), FeeSerializer, 'fees'))

    def post(self, request):
        if not request.user.is_principal:
            raise PermissionDenied('Only the principal can create fees')

        data = dict(request.data.items())
        data.setdefault('academic_year', CollegeSettings.current_academic_year())
        serializer = FeeSerializer(data=data)
        serializer.is_valid(raise_exception=True)
        fee = serializer.save()

        audit(request, 'FEE_CREATE', 'Fee', 'INSERT', record_id=fee.id, new_values={
            'student': fee.student.email,
            'amount': str(fee.amount),
            'fee_type': fee.fee_type,
            'due_date': str(fee.due_date),
        })
        return Response(FeeSerializer(fee).data, status=status.HTTP_201_CREATED)


class FeeDetailView(RoleAPIView):
    allowed_roles = PRINCIPAL_ONLY

    def get(self, request, pk):
        return Response(FeeSerializer(get_object_or_404(fee_queryset(), pk=pk)).data)

    def put(self, request, pk):
        fee = get_object_or_404(fee_queryset(), pk=pk)
        serializer = FeeUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        old_values = {'amount': str(fee.amount), 'due_date': str(fee.due_date), 'status': fee.status}
        fee.apply_edit(amount=data.get('amount'), due_date=data.get('due_date'))
        for field in ('fee_type', 'description', 'remarks'):
            if field in data:
                setattr(fee, field, data[field])
        fee.save()

        audit(request, 'FEE_UPDATE', 'Fee', 'UPDATE', record_id=fee.id, old_values=old_values,
              new_values={k: str(v) for k, v in data.items()}, changed_fields=list(data.keys()))
        return Response(FeeSerializer(fee).data)

    def delete(self, request, pk):
        fee = get_object_or_404(Fee, pk=pk)
        fee.ensure_deletable()
        old_values = {'student_id': fee.student_id, 'amount': str(fee.amount), 'status': fee.status}
        fee.delete()
        audit(request, 'FEE_DELETE', 'Fee', 'DELETE', record_id=pk, old_values=old_values)
        return Response({'success': True, 'message': 'Fee deleted successfully'})


class FeeMarkPaidView(RoleAPIView):
    """Record a payment, partial payment or waiver against a fee"""
    allowed_roles = ADMINISTRATORS

    def post(self, request, pk):
        fee = get_scoped_object(fee_queryset(), request.user, pk, **FEE_SCOPE)
        serializer = FeeMarkSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        old_values = {'status': fee.status, 'amount_paid': str(fee.amount_paid)}
        fee.mark(
            data['status'],
            amount_paid=data.get('amount_paid'),
            payment_mode=data.get('payment_mode'),
            remarks=data.get('remarks'),
            marked_by=request.user,
        )
        fee.save()

        audit(request, 'PAYMENT_RECEIVED', 'Fee', 'UPDATE', record_id=fee.id, old_values=old_values,
              new_values={'status': fee.status, 'amount_paid': str(fee.amount_paid)},
              changed_fields=['status', 'amount_paid'])
        logger.info(f"Fee {fee.id} marked {fee.status} by {request.user.email}")
        return Response(FeeSerializer(fee).data)


class BulkFeeCreateView(RoleAPIView):
    """Create the same fee for every student of a batch or department"""
    allowed_roles = PRINCIPAL_ONLY

    def post(self, request):
        serializer = BulkFeeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        students = User.objects.filter(role=User.STUDENT, is_active=True)
        if data.get('batch'):
            students = students.filter(enrollments__batch=data['batch']).distinct()
        else:
            students = students.filter(department=data['department'])
        students = list(students)
        if not students:
            raise Http404('No students found for the selected batch or department')

        fees = services.create_bulk_fees(
            students,
            amount=data['amount'],
            due_date=data['due_date'],
            fee_type=data['fee_type'],
            academic_year=data.get('academic_year') or CollegeSettings.current_academic_year(),
            description=data.get('description'),
        )
        audit(request, 'FEE_CREATE', 'Fee', 'INSERT', new_values={
            'count': len(fees),
            'amount': str(data['amount']),
            'fee_type': data['fee_type'],
            'batch': data['batch'].id if data.get('batch') else None,
            'department': data['department'].id if data.get('department') else None,
        })
        created = fee_queryset().filter(pk__in=[fee.pk for fee in fees])
        return Response({
            'message': f'Created {len(fees)} fees',
            'count': len(fees),
            'fees': FeeSerializer(created.order_by('student__full_name'), many=True).data,
        }, status=status.HTTP_201_CREATED)


class FeeStatsView(RoleAPIView):
    allowed_roles = ADMINISTRATORS

    def get(self, request):
        fees = scope_queryset(Fee.objects.all(), request.user, **FEE_SCOPE)
        academic_year = request.query_params.get('academic_year')
        if academic_year:
            fees = fees.filter(academic_year=academic_year)
        return Response(services.fee_statistics(fees))


class DepartmentFeeReportView(RoleAPIView):
    allowed_roles = PRINCIPAL_ONLY

    def get(self, request):
        return Response(services.department_fee_report())


# ==================== NOTICE VIEWS ====================
def visible_notices(user):
    """College-wide notices plus those of the caller's department (everything for the principal)"""
    notices = Notice.objects.select_related('posted_by', 'department', 'batch')
    if user.is_principal:
        return notices
    if user.is_hod:
        department_for(user)
    department_q = Q(department__isnull=True)
    if user.department_id:
        department_q |= Q(department_id=user.department_id)
    notices = notices.filter(department_q)
    if user.is_student:
        batch_ids = user.enrollments.values_list('batch_id', flat=True)
        notices = notices.filter(Q(batch__isnull=True) | Q(batch_id__in=batch_ids))
    return notices


class NoticeListView(RoleAPIView):
    allowed_roles = ADMINISTRATORS

    def get(self, request):
        notices = visible_notices(request.user)
        priority = request.query_params.get('priority')
        if priority:
            notices = notices.filter(priority=priority.upper())
        return Response(NoticeSerializer(notices.order_by('-is_pinned', '-created_at'), many=True).data)

    def post(self, request):
        data = dict(request.data.items())
        if request.user.is_hod:
            data['department'] = department_for(request.user)
        serializer = NoticeSerializer(data=data)
        serializer.is_valid(raise_exception=True)
        notice = serializer.save(posted_by=request.user)
        logger.info(f"Notice {notice.id} posted by {request.user.email}")
        return Response(NoticeSerializer(notice).data, status=status.HTTP_201_CREATED)


class NoticeDetailView(RoleAPIView):
    """HODs manage their department's notices; college-wide notices belong to the principal"""
    allowed_roles = ADMINISTRATORS

    def get_notice(self, request, pk):
        return get_scoped_object(
            Notice.objects.select_related('posted_by', 'department', 'batch'), request.user, pk,
            department='department'
        )

    def get(self, request, pk):
        return Response(NoticeSerializer(self.get_notice(request, pk)).data)

    def put(self, request, pk):
        notice = self.get_notice(request, pk)
        data = dict(request.data.items())
        if request.user.is_hod:
            data.pop('department', None)
        serializer = NoticeSerializer(notice, data=data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(NoticeSerializer(notice).data)

    def delete(self, request, pk):
        notice = self.get_notice(request, pk)
        notice.delete()
        return Response({'success': True, 'message': 'Notice deleted successfully'})


class NoticeFeedView(RoleAPIView):
    """Read-only notice board for faculty and students"""
    allowed_roles = [User.FACULTY, User.STUDENT]
    STUDENT_LIMIT = 50

    def get(self, request):
        notices = visible_notices(request.user).order_by('-is_pinned', '-created_at')
        if request.user.is_student:
            notices = notices[:self.STUDENT_LIMIT]
        return Response(NoticeSerializer(notices, many=True).data)


# ==================== COMPLAINT VIEWS ====================
class ComplaintListView(RoleAPIView):
    allowed_roles = ADMINISTRATORS

    def get(self, request):
        complaints = scope_queryset(
            Complaint.objects.select_related('student', 'student__department', 'resolved_by'),
            request.user, **COMPLAINT_SCOPE
        )
        complaint_status = request.query_params.get('status')
        if complaint_status:
            complaints = complaints.filter(status=complaint_status.upper())
        return Response(ComplaintSerializer(complaints.order_by('-created_at'), many=True).data)


class ComplaintCloseView(RoleAPIView):
    """Resolve or reject an open complaint; ``target_status`` is bound in urls.py"""
    allowed_roles = ADMINISTRATORS
    target_status = Complaint.RESOLVED

    def post(self, request, pk):
        complaint = get_scoped_object(
            Complaint.objects.select_related('student', 'student__department', 'resolved_by'),
            request.user, pk, **COMPLAINT_SCOPE
        )
        serializer = ComplaintCloseSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        old_status = complaint.status
        complaint.close(self.target_status, request.user, note=serializer.validated_data.get('note'))
        audit(request, 'COMPLAINT_CLOSED', 'Complaint', 'UPDATE', record_id=complaint.id,
              old_values={'status': old_status}, new_values={'status': complaint.status})
        return Response(ComplaintSerializer(complaint).data)


# ==================== AUDIT LOG VIEWS ====================
class AuditLogViewSet(viewsets.ReadOnlyModelViewSet):
    """Read-only audit trail for the principal"""
    serializer_class = AuditLogSerializer
    permission_classes = [RolePermission]
    allowed_roles = PRINCIPAL_ONLY

    def get_queryset(self):
        logs = AuditLog.objects.select_related('user').all()
        params = self.request.query_params
        for param in ('event_type', 'table_name', 'operation'):
            if params.get(param):
                logs = logs.filter(**{param: params[param]})
        if params.get('user'):
            logs = logs.filter(user_id=params['user'])
        return logs.order_by('-event_time')

    def list(self, request, *args, **kwargs):
        return Response(paginate(request, self.get_queryset(), AuditLogSerializer, 'logs'))

    @action(detail=False, methods=['get'])
    def summary(self, request):
        rows = (
            AuditLog.objects.values('event_type')
            .annotate(count=Count('id'))
            .order_by('-count')
        )
        return Response({'total': AuditLog.objects.count(), 'by_event_type': list(rows)})


# ==================== COLLEGE SETTINGS & SETUP VIEWS ====================
class CollegeSettingsView(APIView):
    """College profile; readable by every portal, editable by the principal"""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(CollegeSettingsSerializer(CollegeSettings.load()).data)

    def put(self, request):
        if not request.user.is_principal:
            raise PermissionDenied('Principal access required')
        college = CollegeSettings.load()
        serializer = CollegeSettingsSerializer(college, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        audit(request, 'CONFIG_CHANGE', 'CollegeSettings', 'UPDATE', record_id=college.pk,
              new_values={k: str(v) for k, v in serializer.validated_data.items()})
        return Response(serializer.data)


class AdminStatsView(RoleAPIView):
    allowed_roles = PRINCIPAL_ONLY

    def get(self, request):
        counts = User.objects.aggregate(
            total_students=Count('id', filter=Q(role=User.STUDENT)),
            total_faculty=Count('id', filter=Q(role__in=[User.FACULTY, User.HOD])),
        )
        return Response({
            **counts,
            'total_departments': Department.objects.count(),
            'total_batches': Batch.objects.count(),
            'total_subjects': Subject.objects.count(),
            'open_complaints': Complaint.objects.filter(status__in=Complaint.OPEN_STATUSES).count(),
            'outstanding_fees': Fee.objects.filter(status__in=Fee.OUTSTANDING_STATUSES).count(),
        })


class SetupStatusView(RoleAPIView):
    """Progress of the first-run setup wizard"""
    allowed_roles = PRINCIPAL_ONLY

    def get(self, request):
        college = CollegeSettings.load()
        steps = {
            'college_details': college.college_name != CollegeSettings.DEFAULT_NAME,
            'department': Department.objects.exists(),
            'hod': User.objects.filter(role=User.HOD).exists(),
            'faculty': User.objects.filter(role=User.FACULTY).exists(),
            'students': User.objects.filter(role=User.STUDENT).exists(),
        }
        next_step = next((name for name, done in steps.items() if not done), None)
        return Response({
            'is_setup_complete': college.is_setup_complete,
            'steps': steps,
            'next_step': next_step,
        })


class SetupCollegeView(RoleAPIView):
    allowed_roles = PRINCIPAL_ONLY

    def post(self, request):
        college = CollegeSettings.load()
        serializer = CollegeSettingsSerializer(college, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        audit(request, 'CONFIG_CHANGE', 'CollegeSettings', 'UPDATE', record_id=college.pk,
              new_values={k: str(v) for k, v in serializer.validated_data.items()})
        return Response(serializer.data)


class SetupDepartmentView(RoleAPIView):
    allowed_roles = PRINCIPAL_ONLY

    def post(self, request):
        serializer = DepartmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ensure_unique_department(serializer.validated_data)
        department = serializer.save()
        audit(request, 'CONFIG_CHANGE', 'Department', 'INSERT', record_id=department.id,
              new_values={'name': department.name, 'code': department.code})
        return Response(DepartmentSerializer(annotated_departments().get(pk=department.pk)).data,
                        status=status.HTTP_201_CREATED)


class SetupStaffView(RoleAPIView):
    """Create a department's HOD or a faculty member during setup; ``staff_role`` is bound in urls.py"""
    allowed_roles = PRINCIPAL_ONLY
    staff_role = User.FACULTY

    def post(self, request):
        serializer = FacultyCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        department_id = request.data.get('department')
        if not department_id:
            raise ValidationError({'department': 'Department is required'})
        department = get_object_or_404(Department, pk=department_id)

        with transaction.atomic():
            user = services.create_user_account(
                email=data['email'],
                password=data['password'],
                full_name=data['full_name'],
                role=self.staff_role,
                department=department,
                phone=data.get('phone'),
            )
            if self.staff_role == User.HOD:
                department.hod = user
                department.save(update_fields=['hod', 'updated_at'])

        audit(request, 'USER_CREATE', 'User', 'INSERT', record_id=user.id,
              new_values={'email': user.email, 'role': user.role, 'department': department.code})
        return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)


class SetupCompleteView(RoleAPIView):
    allowed_roles = PRINCIPAL_ONLY

    def post(self, request):
        college = CollegeSettings.load()
        college.is_setup_complete = True
        if not college.academic_year:
            college.academic_year = settings.DEFAULT_ACADEMIC_YEAR
        college.save()
        audit(request, 'CONFIG_CHANGE', 'CollegeSettings', 'UPDATE', record_id=college.pk,
              new_values={'is_setup_complete': True})
        return Response({'success': True, 'message': 'Setup completed'})


# ==================== HOD VIEWS ====================
def department_members(user, role):
    department_id = department_for(user)
    return User.objects.select_related('department').filter(department_id=department_id, role=role)


def ensure_department_batch(user, batch):
    if batch is not None and batch.department_id != department_for(user):
        raise ValidationError({'batch': 'Invalid batch for your department'})


def enroll(student, batch):
    """Enroll a student in a batch for the current academic year, replacing that year's enrollment"""
    Enrollment.objects.update_or_create(
        student=student,
        academic_year=CollegeSettings.current_academic_year(),
        defaults={'batch': batch},
    )


class HODStudentListView(RoleAPIView):
    allowed_roles = [User.HOD]

    def get(self, request):
        students = department_members(request.user, User.STUDENT).prefetch_related('enrollments__batch')
        batch_id = request.query_params.get('batch')
        if batch_id:
            students = students.filter(enrollments__batch_id=batch_id).distinct()
        search = request.query_params.get('search')
        if search:
            students = students.filter(
                Q(full_name__icontains=search) |
                Q(email__icontains=search) |
                Q(student_id__icontains=search)
            )
        return Response(paginate(request, students.order_by('full_name'), StudentSerializer, 'students'))

    def post(self, request):
        serializer = StudentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        ensure_department_batch(request.user, data.get('batch'))

        student = services.create_user_account(
            email=data['email'],
            password=data['password'],
            full_name=data['full_name'],
            role=User.STUDENT,
            department=request.user.department,
            batch=data.get('batch'),
            student_id=data.get('student_id'),
            phone=data.get('phone'),
        )
        audit(request, 'USER_CREATE', 'User', 'INSERT', record_id=student.id,
              new_values={'email': student.email, 'role': student.role, 'student_id': student.student_id})
        return Response(StudentSerializer(student).data, status=status.HTTP_201_CREATED)


class DepartmentMemberDetailView(RoleAPIView):
    """Read, update or remove a student or faculty member of the HOD's department"""
    allowed_roles = [User.HOD]
    member_role = User.STUDENT

    def get_member(self, request, pk):
        members = User.objects.select_related('department').filter(role=self.member_role)
        return get_scoped_object(members, request.user, pk, **USER_SCOPE)

    def serialize(self, member):
        if self.member_role == User.STUDENT:
            return StudentSerializer(member).data
        return UserSerializer(member).data

    def get(self, request, pk):
        return Response(self.serialize(self.get_member(request, pk)))

    def put(self, request, pk):
        member = self.get_member(request, pk)
        serializer = DepartmentUserUpdateSerializer(member, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        batch = serializer.validated_data.pop('batch', None)
        if batch is not None:
            if self.member_role != User.STUDENT:
                raise ValidationError({'batch': 'Only students can be enrolled in a batch'})
            ensure_department_batch(request.user, batch)
        if serializer.validated_data.get('student_id'):
            if User.objects.filter(student_id=serializer.validated_data['student_id']).exclude(pk=member.pk).exists():
                raise Conflict('Student ID already exists')

        old_name = member.full_name
        with transaction.atomic():
            member = serializer.save()
            if batch is not None:
                enroll(member, batch)
        if member.full_name != old_name:
            sync_identity(member, display_name=member.full_name)
        if 'is_active' in serializer.validated_data:
            sync_identity(member, disabled=not member.is_active)

        audit(request, 'USER_UPDATE', 'User', 'UPDATE', record_id=member.id,
              new_values={k: str(v) for k, v in serializer.validated_data.items()},
              changed_fields=list(serializer.validated_data.keys()))
        return Response(self.serialize(member))

    def delete(self, request, pk):
        member = self.get_member(request, pk)
        uid, email = member.firebase_uid, member.email
        try:
            member.delete()
        except ProtectedError:
            raise ValidationError('User owns records that must be reassigned first')
        try:
            identity.delete_account(uid)
        except identity.IdentityProviderError as e:
            logger.error(f"Provider delete failed for {email}: {str(e)}")
        audit(request, 'USER_DELETE', 'User', 'DELETE', record_id=pk, old_values={'email': email})
        return Response({'success': True, 'message': 'User deleted successfully'})


class HODFacultyListView(RoleAPIView):
    allowed_roles = [User.HOD]

    def get(self, request):
        faculty = department_members(request.user, User.FACULTY).annotate(
            subject_count=Count('subjects_taught', distinct=True)
        )
        data = []
        for member in faculty.order_by('full_name'):
            row = UserSerializer(member).data
            row['subject_count'] = member.subject_count
            data.append(row)
        return Response(data)

    def post(self, request):
        serializer = FacultyCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        department_for(request.user)

        member = services.create_user_account(
            email=data['email'],
            password=data['password'],
            full_name=data['full_name'],
            role=User.FACULTY,
            department=request.user.department,
            phone=data.get('phone'),
        )
        audit(request, 'USER_CREATE', 'User', 'INSERT', record_id=member.id,
              new_values={'email': member.email, 'role': member.role})
        return Response(UserSerializer(member).data, status=status.HTTP_201_CREATED)


def assignment_queryset():
    return Assignment.objects.select_related('subject', 'subject__batch', 'created_by').annotate(
        submission_count=Count('submissions', distinct=True)
    )


class AssignmentListView(RoleAPIView):
    """Assignments of the subjects a HOD oversees or a faculty member teaches"""
    allowed_roles = [User.HOD, User.FACULTY]

    def get(self, request):
        assignments = scope_queryset(assignment_queryset(), request.user, **ASSIGNMENT_SCOPE)
        subject_id = request.query_params.get('subject')
        if subject_id:
            assignments = assignments.filter(subject_id=subject_id)
        return Response(AssignmentSerializer(assignments.order_by('-created_at'), many=True).data)

    def post(self, request):
        serializer = AssignmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        subject = serializer.validated_data['subject']
        if not scope_queryset(Subject.objects.filter(pk=subject.pk), request.user, **SUBJECT_SCOPE).exists():
            raise ValidationError({'subject': 'Invalid subject for your account'})
        assignment = serializer.save(created_by=request.user)
        logger.info(f"Assignment {assignment.id} created by {request.user.email}")
        return Response(AssignmentSerializer(assignment_queryset().get(pk=assignment.pk)).data,
                        status=status.HTTP_201_CREATED)


class AssignmentDetailView(RoleAPIView):
    allowed_roles = [User.HOD, User.FACULTY]

    def get_assignment(self, request, pk):
        return get_scoped_object(assignment_queryset(), request.user, pk, **ASSIGNMENT_SCOPE)

    def get(self, request, pk):
        assignment = self.get_assignment(request, pk)
        data = AssignmentSerializer(assignment).data
        data['submissions'] = SubmissionSerializer(
            assignment.submissions.select_related('student').order_by('student__full_name'), many=True
        ).data
        return Response(data)

    def put(self, request, pk):
        assignment = self.get_assignment(request, pk)
        serializer = AssignmentSerializer(assignment, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        subject = serializer.validated_data.get('subject')
        if subject and not scope_queryset(Subject.objects.filter(pk=subject.pk), request.user, **SUBJECT_SCOPE).exists():
            raise ValidationError({'subject': 'Invalid subject for your account'})
        serializer.save()
        return Response(AssignmentSerializer(assignment_queryset().get(pk=assignment.pk)).data)

    def delete(self, request, pk):
        assignment = self.get_assignment(request, pk)
        assignment.delete()
        return Response({'success': True, 'message': 'Assignment deleted successfully'})


class HODAttendanceView(RoleAPIView):
    """Daily attendance summary for the department"""
    allowed_roles = [User.HOD]

    def get(self, request):
        department_id = department_for(request.user)
        day = request.query_params.get('date') or timezone.localdate().isoformat()

        records = Attendance.objects.filter(subject__department_id=department_id)
        batch_id = request.query_params.get('batch')
        if batch_id:
            records = records.filter(subject__batch_id=batch_id)

        counts = records.filter(date=day).aggregate(
            total=Count('id'),
            present=Count('id', filter=Q(status='PRESENT')),
            absent=Count('id', filter=Q(status='ABSENT')),
            late=Count('id', filter=Q(status='LATE')),
            excused=Count('id', filter=Q(status='EXCUSED')),
        )
        counts['attendance_rate'] = (
            round((counts['present'] + counts['late']) / counts['total'] * 100, 1) if counts['total'] else 0
        )
        recent = records.select_related('student', 'subject').order_by('-date', 'student__full_name')[:50]
        batches = Batch.objects.filter(department_id=department_id).order_by('year', 'semester')
        return Response({
            'date': day,
            'stats': counts,
            'batches': [{'id': b.id, 'name': b.name, 'year': b.year, 'semester': b.semester} for b in batches],
            'recent_attendance': AttendanceSerializer(recent, many=True).data,
        })


class HODStatsView(RoleAPIView):
    allowed_roles = [User.HOD]

    def get(self, request):
        department_id = department_for(request.user)
        counts = User.objects.filter(department_id=department_id).aggregate(
            total_students=Count('id', filter=Q(role=User.STUDENT)),
            total_faculty=Count('id', filter=Q(role=User.FACULTY)),
        )
        return Response({
            **counts,
            'total_subjects': Subject.objects.filter(department_id=department_id).count(),
            'total_batches': Batch.objects.filter(department_id=department_id).count(),
            'open_complaints': Complaint.objects.filter(
                student__department_id=department_id, status__in=Complaint.OPEN_STATUSES
            ).count(),
        })


# ==================== FACULTY VIEWS ====================
def taught_subject(user, subject_id):
    """A subject the faculty member teaches; anyone else's subject looks missing"""
    return get_scoped_object(Subject.objects.select_related('batch'), user, subject_id, **SUBJECT_SCOPE)


class FacultySubjectListView(RoleAPIView):
    allowed_roles = [User.FACULTY]

    def get(self, request):
        subjects = (
            Subject.objects.select_related('department', 'batch', 'faculty')
            .filter(faculty=request.user)
            .annotate(student_count=Count('batch__enrollments', distinct=True))
            .order_by('code')
        )
        data = []
        for subject in subjects:
            row = SubjectSerializer(subject).data
            row['student_count'] = subject.student_count
            data.append(row)
        return Response(data)


class FacultySubjectStudentsView(RoleAPIView):
    allowed_roles = [User.FACULTY]

    def get(self, request, pk):
        subject = get_scoped_object(Subject.objects.select_related('batch'), request.user, pk, **SUBJECT_SCOPE)
        students = (
            User.objects.select_related('department')
            .filter(role=User.STUDENT, enrollments__batch=subject.batch)
            .distinct()
            .order_by('student_id', 'full_name')
        )
        return Response({
            'subject': SubjectSerializer(subject).data,
            'students': UserSerializer(students, many=True).data,
        })


class FacultyStudentListView(RoleAPIView):
    """Students enrolled in any batch the faculty member teaches"""
    allowed_roles = [User.FACULTY]

    def get(self, request):
        students = scope_queryset(
            User.objects.select_related('department').filter(role=User.STUDENT), request.user, **USER_SCOPE
        )
        subject_id = request.query_params.get('subject')
        if subject_id:
            students = students.filter(enrollments__batch__subjects__id=subject_id)
        batch_id = request.query_params.get('batch')
        if batch_id:
            students = students.filter(enrollments__batch_id=batch_id)
        search = request.query_params.get('search')
        if search:
            students = students.filter(Q(full_name__icontains=search) | Q(student_id__icontains=search))
        return Response(StudentSerializer(students.order_by('full_name'), many=True).data)


class FacultyBatchListView(RoleAPIView):
    allowed_roles = [User.FACULTY]

    def get(self, request):
        batches = scope_queryset(annotated_batches(), request.user, **BATCH_SCOPE)
        return Response(BatchSerializer(batches.order_by('year', 'semester'), many=True).data)


class FacultyAttendanceView(RoleAPIView):
    allowed_roles = [User.FACULTY]

    def get(self, request):
        subject_id = request.query_params.get('subject')
        if not subject_id:
            raise ValidationError({'subject': 'Subject is required'})
        subject = taught_subject(request.user, subject_id)

        records = Attendance.objects.select_related('student', 'subject').filter(subject=subject)
        day = request.query_params.get('date')
        if day:
            records = records.filter(date=day)
        return Response(AttendanceSerializer(records.order_by('-date', 'student__full_name'), many=True).data)

    def post(self, request):
        serializer = AttendanceSheetSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        subject = taught_subject(request.user, data['subject_id'])

        count = services.record_attendance(subject, data['date'], data['records'], marked_by=request.user)
        audit(request, 'ATTENDANCE_MARKED', 'Attendance', 'INSERT', new_values={
            'subject': subject.code,
            'date': str(data['date']),
            'count': count,
        })
        return Response({'success': True, 'count': count})


class FacultyGradeView(RoleAPIView):
    allowed_roles = [User.FACULTY]

    def get(self, request):
        subjects = Subject.objects.select_related('batch').filter(faculty=request.user).order_by('code')
        grades = Grade.objects.select_related('student', 'subject').filter(subject__faculty=request.user)
        subject_id = request.query_params.get('subject')
        if subject_id:
            grades = grades.filter(subject_id=subject_id)
        exam_type = request.query_params.get('exam_type')
        if exam_type:
            grades = grades.filter(exam_type=exam_type.upper())
        return Response({
            'subjects': SubjectSerializer(subjects, many=True).data,
            'grades': GradeSerializer(grades.order_by('subject__code', 'student__full_name'), many=True).data,
        })

    def post(self, request):
        serializer = GradeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        subject = taught_subject(request.user, data['subject'].pk)
        student = data['student']

        if not Enrollment.objects.filter(student=student, batch=subject.batch).exists():
            raise ValidationError({'student': 'Student is not enrolled in this subject'})

        grade, created = Grade.objects.update_or_create(
            student=student,
            subject=subject,
            exam_type=data['exam_type'],
            defaults={'marks': data['marks'], 'total_marks': data.get('total_marks', 100)},
        )
        audit(request, 'MARKS_ENTERED', 'Grade', 'INSERT' if created else 'UPDATE', record_id=grade.id,
              new_values={'student': student.id, 'subject': subject.code, 'exam_type': grade.exam_type,
                          'marks': grade.marks, 'total_marks': grade.total_marks})
        return Response(GradeSerializer(grade).data,
                        status=status.HTTP_201_CREATED if created else status.HTTP_200_OK)


class FacultyGradeDetailView(RoleAPIView):
    allowed_roles = [User.FACULTY]

    def delete(self, request, pk):
        grade = get_scoped_object(Grade.objects.all(), request.user, pk, **SUBJECT_RECORD_SCOPE)
        grade.delete()
        audit(request, 'MARKS_ENTERED', 'Grade', 'DELETE', record_id=pk)
        return Response({'success': True, 'message': 'Grade deleted successfully'})


class GradeSubmissionView(RoleAPIView):
    allowed_roles = [User.FACULTY]

    def post(self, request, pk, submission_pk):
        assignment = get_scoped_object(Assignment.objects.all(), request.user, pk, **ASSIGNMENT_SCOPE)
        submission = get_object_or_404(
            Submission.objects.select_related('student'), pk=submission_pk, assignment=assignment
        )
        serializer = GradeSubmissionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        submission.marks = serializer.validated_data['marks']
        submission.feedback = serializer.validated_data.get('feedback')
        submission.graded_by = request.user
        submission.graded_at = timezone.now()
        submission.save()
        return Response(SubmissionSerializer(submission).data)


class FacultyFeeListView(RoleAPIView):
    """Read-only fee status of the faculty member's students"""
    allowed_roles = [User.FACULTY]

    def get(self, request):
        fees = scope_queryset(fee_queryset(), request.user, **FEE_SCOPE)
        fee_status = request.query_params.get('status')
        if fee_status:
            fees = fees.filter(status=fee_status.upper())
        batch_id = request.query_params.get('batch')
        if batch_id:
            fees = fees.filter(student__enrollments__batch_id=batch_id)
        return Response(FeeSerializer(fees.order_by('due_date'), many=True).data)


class FacultyStatsView(RoleAPIView):
    allowed_roles = [User.FACULTY]

    def get(self, request):
        subjects = Subject.objects.filter(faculty=request.user)
        return Response({
            'total_subjects': subjects.count(),
            'total_students': Enrollment.objects.filter(batch__subjects__faculty=request.user)
                                                .values('student').distinct().count(),
            'pending_assignments': Assignment.objects.filter(
                subject__faculty=request.user, due_date__gte=timezone.now()
            ).count(),
            'pending_grading': Submission.objects.filter(
                assignment__subject__faculty=request.user, marks__isnull=True
            ).count(),
        })


# ==================== STUDENT VIEWS ====================
class StudentSubjectListView(RoleAPIView):
    allowed_roles = [User.STUDENT]

    def get(self, request):
        subjects = scope_queryset(
            Subject.objects.select_related('department', 'batch', 'faculty'), request.user, **SUBJECT_SCOPE
        )
        return Response(SubjectSerializer(subjects.order_by('code'), many=True).data)


class StudentBatchView(RoleAPIView):
    allowed_roles = [User.STUDENT]

    def get(self, request):
        enrollment = (
            request.user.enrollments.select_related('batch', 'batch__department')
            .order_by('-academic_year').first()
        )
        if enrollment is None:
            raise Http404('You are not enrolled in any batch')
        batch = annotated_batches().get(pk=enrollment.batch_id)
        return Response({
            'academic_year': enrollment.academic_year,
            'batch': BatchSerializer(batch).data,
            'department': DepartmentSummarySerializer(batch.department).data,
        })


class StudentAttendanceView(RoleAPIView):
    allowed_roles = [User.STUDENT]

    def get(self, request):
        records = Attendance.objects.select_related('subject').filter(student=request.user)
        subject_id = request.query_params.get('subject')
        if subject_id:
            records = records.filter(subject_id=subject_id)

        summary = (
            records.values('subject_id', 'subject__code', 'subject__name')
            .annotate(
                total=Count('id'),
                present=Count('id', filter=Q(status='PRESENT')),
                late=Count('id', filter=Q(status='LATE')),
            )
            .order_by('subject__code')
        )
        by_subject = [
            {
                'subject_id': row['subject_id'],
                'subject_code': row['subject__code'],
                'subject_name': row['subject__name'],
                'total': row['total'],
                'attended': row['present'] + row['late'],
                'percentage': round((row['present'] + row['late']) / row['total'] * 100, 1) if row['total'] else 0,
            }
            for row in summary
        ]
        return Response({
            'summary': by_subject,
            'records': AttendanceSerializer(records.order_by('-date'), many=True).data,
        })


class StudentGradeListView(RoleAPIView):
    allowed_roles = [User.STUDENT]

    def get(self, request):
        grades = Grade.objects.select_related('subject').filter(student=request.user)
        return Response(GradeSerializer(grades.order_by('subject__code', 'exam_type'), many=True).data)


class StudentAssignmentListView(RoleAPIView):
    allowed_roles = [User.STUDENT]

    def get(self, request):
        assignments = scope_queryset(assignment_queryset(), request.user, **ASSIGNMENT_SCOPE).prefetch_related(
            Prefetch('submissions', queryset=Submission.objects.filter(student=request.user))
        )
        return Response(StudentAssignmentSerializer(
            assignments.order_by('due_date'), many=True, context={'request': request}
        ).data)


class SubmitAssignmentView(RoleAPIView):
    allowed_roles = [User.STUDENT]

    def post(self, request, pk):
        assignment = get_scoped_object(Assignment.objects.all(), request.user, pk, **ASSIGNMENT_SCOPE)
        if Submission.objects.filter(assignment=assignment, student=request.user).exists():
            raise ValidationError('Already submitted')
        if assignment.is_overdue:
            raise ValidationError('Assignment is overdue')

        serializer = SubmitAssignmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        submission = Submission.objects.create(
            assignment=assignment,
            student=request.user,
            file_url=serializer.validated_data.get('file_url') or None,
        )
        return Response(SubmissionSerializer(submission).data, status=status.HTTP_201_CREATED)


class StudentFeeListView(RoleAPIView):
    allowed_roles = [User.STUDENT]

    def get(self, request):
        fees = list(fee_queryset().filter(student=request.user).order_by('due_date'))
        unsettled = [fee for fee in fees if fee.status in Fee.OUTSTANDING_STATUSES + [Fee.PARTIALLY_PAID]]
        return Response({
            'fees': FeeSerializer(fees, many=True).data,
            'summary': {
                'total_amount': sum((fee.amount for fee in fees), Decimal('0')),
                'paid_amount': sum((fee.amount_paid for fee in fees), Decimal('0')),
                'pending_amount': sum((fee.balance for fee in unsettled), Decimal('0')),
                'overdue': sum(1 for fee in fees if fee.status == Fee.OVERDUE),
            },
        })


class PayFeeView(RoleAPIView):
    """Settle one of the caller's own fees in full"""
    allowed_roles = [User.STUDENT]

    def post(self, request, pk):
        fee = get_scoped_object(fee_queryset(), request.user, pk, **FEE_SCOPE)
        if fee.is_paid:
            raise ValidationError('Already paid')
        if fee.status == Fee.WAIVED:
            raise ValidationError('Fee has been waived')

        payment_mode = request.data.get('payment_mode') or 'ONLINE'
        if payment_mode not in dict(Fee.PAYMENT_MODE_CHOICES):
            raise ValidationError({'payment_mode': 'Invalid payment mode'})

        old_status = fee.status
        fee.mark(Fee.PAID, payment_mode=payment_mode, marked_by=request.user)
        fee.save()
        audit(request, 'PAYMENT_RECEIVED', 'Fee', 'UPDATE', record_id=fee.id,
              old_values={'status': old_status}, new_values={'status': fee.status, 'amount_paid': str(fee.amount_paid)})
        return Response(FeeSerializer(fee).data)


class StudentComplaintView(RoleAPIView):
    allowed_roles = [User.STUDENT]

    def get(self, request):
        complaints = Complaint.objects.select_related('resolved_by').filter(student=request.user)
        return Response(ComplaintSerializer(complaints.order_by('-created_at'), many=True).data)

    def post(self, request):
        serializer = ComplaintSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        complaint = serializer.save(student=request.user)
        return Response(ComplaintSerializer(complaint).data, status=status.HTTP_201_CREATED)


class StudentStatsView(RoleAPIView):
    allowed_roles = [User.STUDENT]

    def get(self, request):
        student = request.user
        attendance = Attendance.objects.filter(student=student).aggregate(
            total=Count('id'),
            attended=Count('id', filter=Q(status__in=['PRESENT', 'LATE'])),
        )
        outstanding = Fee.objects.filter(
            student=student, status__in=Fee.OUTSTANDING_STATUSES + [Fee.PARTIALLY_PAID]
        )
        return Response({
            'enrolled_subjects': scope_queryset(Subject.objects.all(), student, **SUBJECT_SCOPE).count(),
            'attendance_percentage': (
                round(attendance['attended'] / attendance['total'] * 100, 1) if attendance['total'] else 0
            ),
            'pending_assignments': scope_queryset(Assignment.objects.all(), student, **ASSIGNMENT_SCOPE)
                                   .filter(due_date__gte=timezone.now())
                                   .exclude(submissions__student=student).count(),
            'fee_due': sum((fee.balance for fee in outstanding), Decimal('0')),
            'notices': visible_notices(student).count(),
            'open_complaints': Complaint.objects.filter(
                student=student, status__in=Complaint.OPEN_STATUSES
            ).count(),
        })


# ==================== SETTINGS VIEWS ====================
class SettingsView(APIView):
    """Per-user preferences"""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response({
            'preferences': request.user.preferences,
            'profile': MeSerializer(request.user).data,
        })

    def put(self, request):
        serializer = PreferencesSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = request.user
        user.preferences = {**(user.preferences or {}), **serializer.validated_data['preferences']}
        user.save(update_fields=['preferences', 'updated_at'])
        return Response({'preferences': user.preferences})


class ProfileView(APIView):
    permission_classes = [IsAuthenticated]

    def put(self, request):
        user = request.user
        old_name = user.full_name
        serializer = ProfileSerializer(user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        if user.full_name != old_name:
            sync_identity(user, display_name=user.full_name)
        return Response(MeSerializer(user).data)


class PasswordView(APIView):
    """Change the caller's password at the identity provider"""
    permission_classes = [IsAuthenticated]

    def put(self, request):
        serializer = ChangePasswordSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        identity.update_account(request.user.firebase_uid, password=serializer.validated_data['new_password'])
        logger.info(f"Password changed for {request.user.email}")
        return Response({'success': True, 'message': 'Password updated successfully'})
