from io import StringIO

import pytest
from django.core.management import call_command
from django.db import IntegrityError, connection, transaction

from college_app.models import Fee


@pytest.mark.django_db
def test_models_have_no_pending_migrations():
    out = StringIO()
    call_command('makemigrations', 'college_app', '--check', '--dry-run', stdout=out)
    assert 'No changes detected' in out.getvalue()


@pytest.mark.django_db
def test_fee_payment_constraint_exists_in_database(make_fee, student):
    fee = make_fee(student)
    with pytest.raises(IntegrityError), transaction.atomic():
        Fee.objects.filter(pk=fee.pk).update(amount_paid=fee.amount + 1)

    with connection.cursor() as cursor:
        constraints = connection.introspection.get_constraints(cursor, Fee._meta.db_table)
    assert 'fee_amount_paid_within_amount' in constraints
    assert 'idx_fee_status' in constraints
