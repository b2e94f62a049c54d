# scoping.py
"""
Role-based row scoping.

One rule applies everywhere:

* PRINCIPAL sees everything.
* HOD sees rows whose department is their department.
* FACULTY sees rows tied to the subjects they teach.
* STUDENT sees only their own rows.

Views describe *where* each concept lives on their model (``department``,
``faculty`` and ``owner`` lookups); this module decides *what* the caller may
see. A role with no lookup for the model sees nothing.
"""
from django.http import Http404

from .exceptions import DepartmentNotAssigned
from .models import User


def department_for(user):
    """The HOD's department id, or 400 when the HOD has not been assigned one"""
    if user.role == User.HOD and not user.department_id:
        raise DepartmentNotAssigned()
    return user.department_id


def scope_queryset(queryset, user, department=None, faculty=None, owner=None):
    """
    Filter ``queryset`` down to what ``user`` may see.
    Each keyword is an ORM lookup path from the model to a Department,
    to the teaching faculty User, or to the owning student User.
    """
    role = user.role
    if role == User.PRINCIPAL:
        return queryset
    if role == User.HOD and department:
        return _filter(queryset, department, department_for(user))
    if role == User.FACULTY and faculty:
        return _filter(queryset, faculty, user)
    if role == User.STUDENT and owner:
        return _filter(queryset, owner, user)
    return queryset.none()


def _filter(queryset, lookup, value):
    queryset = queryset.filter(**{lookup: value})
    # paths through to-many relations can repeat rows
    return queryset.distinct() if "__" in lookup else queryset


def get_scoped_object(queryset, user, pk, **lookups):
    """Fetch one row within the caller's scope; out-of-scope rows look missing"""
    try:
        return scope_queryset(queryset, user, **lookups).get(pk=pk)
    except (queryset.model.DoesNotExist, ValueError):
        raise Http404(f'{queryset.model._meta.verbose_name.title()} not found')


# Where each scoped concept lives, per model
USER_SCOPE = {
    'department': 'department',
    'faculty': 'enrollments__batch__subjects__faculty',
    'owner': 'pk',
}
STUDENT_OWNED_SCOPE = {
    'department': 'student__department',
    'faculty': 'student__enrollments__batch__subjects__faculty',
    'owner': 'student',
}
FEE_SCOPE = STUDENT_OWNED_SCOPE
COMPLAINT_SCOPE = STUDENT_OWNED_SCOPE
SUBJECT_SCOPE = {
    'department': 'department',
    'faculty': 'faculty',
    'owner': 'batch__enrollments__student',
}
BATCH_SCOPE = {
    'department': 'department',
    'faculty': 'subjects__faculty',
    'owner': 'enrollments__student',
}
ASSIGNMENT_SCOPE = {
    'department': 'subject__department',
    'faculty': 'subject__faculty',
    'owner': 'subject__batch__enrollments__student',
}
SUBJECT_RECORD_SCOPE = {
    'department': 'subject__department',
    'faculty': 'subject__faculty',
    'owner': 'student',
}
