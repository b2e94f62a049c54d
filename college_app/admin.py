# admin.py
import csv

from django import forms
from django.contrib import admin, messages
from django.http import HttpResponse
from rest_framework import serializers

from . import services
from .models import *


admin.site.site_header = "COLLEGE ERP ADMINISTRATION"
admin.site.site_title = "College Admin Portal"
admin.site.index_title = "Welcome to College ERP Administration"


# ==================== CUSTOM ADMIN CLASSES ====================
class ReadOnlyAdminMixin:
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class ExportCsvMixin:
    """Adds an action exporting the selected rows as CSV"""
    def export_as_csv(self, request, queryset):
        field_names = [field.name for field in self.model._meta.fields]

        response = HttpResponse(content_type='text/csv')
        response['Content-Disposition'] = f'attachment; filename={self.model.__name__}.csv'

        writer = csv.writer(response)
        writer.writerow(field_names)
        for obj in queryset:
            writer.writerow([getattr(obj, field) for field in field_names])
        return response

    export_as_csv.short_description = "Export Selected as CSV"


# ==================== USERS ====================
class UserAdminForm(forms.ModelForm):
    class Meta:
        model = User
        fields = '__all__'

    def clean(self):
        cleaned_data = super().clean()
        # self.instance still holds the stored row until _post_clean
        if self.instance.pk:
            try:
                services.ensure_principal_remains(
                    self.instance,
                    new_role=cleaned_data.get('role'),
                    new_is_active=cleaned_data.get('is_active'),
                )
            except serializers.ValidationError as e:
                raise forms.ValidationError([str(message) for message in e.detail])
        return cleaned_data


class UserAdmin(ExportCsvMixin, admin.ModelAdmin):
    form = UserAdminForm
    list_display = ('full_name', 'email', 'role', 'department', 'student_id', 'is_active', 'created_at')
    list_filter = ('role', 'is_active', 'department')
    search_fields = ('full_name', 'email', 'student_id', 'phone', 'firebase_uid')
    readonly_fields = ('firebase_uid', 'created_at', 'updated_at')
    ordering = ('full_name',)
    actions = ['export_as_csv', 'deactivate_users']

    fieldsets = (
        (None, {'fields': ('full_name', 'email', 'firebase_uid')}),
        ('Role & Department', {'fields': ('role', 'department', 'student_id')}),
        ('Contact', {'fields': ('phone', 'bio')}),
        ('Status', {'fields': ('is_active', 'preferences', 'created_at', 'updated_at')}),
    )

    def deactivate_users(self, request, queryset):
        remaining_principals = User.objects.filter(role=User.PRINCIPAL, is_active=True).exclude(
            pk__in=queryset.values('pk')
        )
        if queryset.filter(role=User.PRINCIPAL, is_active=True).exists() and not remaining_principals.exists():
            self.message_user(request, 'Cannot deactivate the last active principal.', level=messages.ERROR)
            return
        updated = queryset.update(is_active=False)
        self.message_user(request, f'{updated} user(s) deactivated.')

    deactivate_users.short_description = "Deactivate selected users"

    def get_actions(self, request):
        actions = super().get_actions(request)
        # bulk delete skips the per-row principal check
        actions.pop('delete_selected', None)
        return actions

    def has_delete_permission(self, request, obj=None):
        if obj is not None and obj.is_last_active_principal():
            return False
        return super().has_delete_permission(request, obj)

    def delete_model(self, request, obj):
        services.ensure_principal_remains(obj, deleting=True)
        super().delete_model(request, obj)


# ==================== ACADEMIC STRUCTURE ====================
class DepartmentAdmin(admin.ModelAdmin):
    list_display = ('code', 'name', 'hod', 'created_at')
    search_fields = ('code', 'name', 'hod__full_name')
    readonly_fields = ('created_at', 'updated_at')


class BatchAdmin(admin.ModelAdmin):
    list_display = ('name', 'department', 'year', 'semester', 'created_at')
    list_filter = ('department', 'year', 'semester')
    search_fields = ('name', 'department__name')


class SubjectAdmin(admin.ModelAdmin):
    list_display = ('code', 'name', 'department', 'batch', 'faculty', 'credits', 'subject_type')
    list_filter = ('department', 'subject_type')
    search_fields = ('code', 'name', 'faculty__full_name')


class EnrollmentAdmin(ExportCsvMixin, admin.ModelAdmin):
    list_display = ('student', 'batch', 'academic_year', 'created_at')
    list_filter = ('academic_year', 'batch__department')
    search_fields = ('student__full_name', 'student__student_id', 'batch__name')
    actions = ['export_as_csv']


# ==================== COURSEWORK ====================
class AssignmentAdmin(admin.ModelAdmin):
    list_display = ('title', 'subject', 'due_date', 'created_by', 'created_at')
    list_filter = ('subject__department',)
    search_fields = ('title', 'subject__code')
    date_hierarchy = 'due_date'


class SubmissionAdmin(admin.ModelAdmin):
    list_display = ('assignment', 'student', 'submitted_at', 'marks', 'graded_by')
    search_fields = ('assignment__title', 'student__full_name')
    readonly_fields = ('submitted_at',)


class AttendanceAdmin(ExportCsvMixin, admin.ModelAdmin):
    list_display = ('date', 'student', 'subject', 'status', 'marked_by')
    list_filter = ('status', 'subject__department', 'date')
    search_fields = ('student__full_name', 'student__student_id', 'subject__code')
    date_hierarchy = 'date'
    actions = ['export_as_csv']


class GradeAdmin(ExportCsvMixin, admin.ModelAdmin):
    list_display = ('student', 'subject', 'exam_type', 'marks', 'total_marks', 'updated_at')
    list_filter = ('exam_type', 'subject__department')
    search_fields = ('student__full_name', 'student__student_id', 'subject__code')
    actions = ['export_as_csv']


# ==================== COMMUNICATION ====================
class NoticeAdmin(admin.ModelAdmin):
    list_display = ('title', 'department', 'batch', 'priority', 'is_pinned', 'posted_by', 'created_at')
    list_filter = ('priority', 'is_pinned', 'department')
    search_fields = ('title', 'content')
    list_editable = ('is_pinned',)


class ComplaintAdmin(admin.ModelAdmin):
    list_display = ('title', 'student', 'status', 'resolved_by', 'created_at', 'resolved_at')
    list_filter = ('status', 'student__department')
    search_fields = ('title', 'description', 'student__full_name')
    readonly_fields = ('created_at', 'resolved_at')


# ==================== FINANCE MODULE ====================
class FeeAdminForm(forms.ModelForm):
    class Meta:
        model = Fee
        fields = '__all__'

    def clean(self):
        cleaned_data = super().clean()
        if self.instance.pk:
            try:
                self.instance.apply_edit(amount=cleaned_data.get('amount'), due_date=cleaned_data.get('due_date'))
            except FeeTransitionError as e:
                raise forms.ValidationError(str(e))
        return cleaned_data


class FeeAdmin(ExportCsvMixin, admin.ModelAdmin):
    form = FeeAdminForm
    list_display = ('student', 'fee_type', 'amount', 'amount_paid', 'status', 'due_date',
                   'academic_year', 'marked_by')
    list_filter = ('status', 'fee_type', 'academic_year', 'student__department')
    search_fields = ('student__full_name', 'student__email', 'student__student_id', 'description')
    # status and payment only move through Fee.mark
    readonly_fields = ('status', 'amount_paid', 'paid_at', 'marked_by', 'created_at', 'updated_at')
    date_hierarchy = 'due_date'
    actions = ['export_as_csv', 'waive_fees']

    def get_readonly_fields(self, request, obj=None):
        readonly = super().get_readonly_fields(request, obj)
        if obj is not None:
            try:
                obj.ensure_editable()
            except FeeTransitionError:
                return tuple(readonly) + ('amount', 'due_date')
        return readonly

    def get_actions(self, request):
        actions = super().get_actions(request)
        actions.pop('delete_selected', None)
        return actions

    def has_delete_permission(self, request, obj=None):
        if obj is not None:
            try:
                obj.ensure_deletable()
            except FeeTransitionError:
                return False
        return super().has_delete_permission(request, obj)

    def waive_fees(self, request, queryset):
        waived = 0
        for fee in queryset:
            try:
                fee.mark(Fee.WAIVED)
            except FeeTransitionError as e:
                self.message_user(request, f'Fee {fee.pk}: {e}', level=messages.WARNING)
                continue
            fee.save()
            waived += 1
        self.message_user(request, f'{waived} fee(s) waived.')

    waive_fees.short_description = "Waive selected fees"


# ==================== SYSTEM & AUDIT ====================
class CollegeSettingsAdmin(admin.ModelAdmin):
    list_display = ('college_name', 'college_code', 'academic_year', 'is_setup_complete', 'updated_at')

    def has_add_permission(self, request):
        return not CollegeSettings.objects.exists()


class AuditLogAdmin(ReadOnlyAdminMixin, ExportCsvMixin, admin.ModelAdmin):
    list_display = ('event_time', 'event_type', 'user_email', 'user_role', 'table_name',
                   'operation', 'ip_address')
    list_filter = ('event_type', 'operation', 'table_name', 'event_time')
    search_fields = ('user_email', 'table_name', 'ip_address', 'endpoint')
    date_hierarchy = 'event_time'
    actions = ['export_as_csv']


# Users
admin.site.register(User, UserAdmin)

# Academic structure
admin.site.register(Department, DepartmentAdmin)
admin.site.register(Batch, BatchAdmin)
admin.site.register(Subject, SubjectAdmin)
admin.site.register(Enrollment, EnrollmentAdmin)

# Coursework
admin.site.register(Assignment, AssignmentAdmin)
admin.site.register(Submission, SubmissionAdmin)
admin.site.register(Attendance, AttendanceAdmin)
admin.site.register(Grade, GradeAdmin)

# Communication
admin.site.register(Notice, NoticeAdmin)
admin.site.register(Complaint, ComplaintAdmin)

# Finance
admin.site.register(Fee, FeeAdmin)

# System & Audit
admin.site.register(CollegeSettings, CollegeSettingsAdmin)
admin.site.register(AuditLog, AuditLogAdmin)
