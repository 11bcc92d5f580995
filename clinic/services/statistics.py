from collections import OrderedDict
from typing import Optional

from django.db.models import Count, Sum, Q
from django.utils import timezone

from clinic.models import (
    Patient, FindingDisease, InvoiceItem, Invoice, Credit, PaymentHistory, Appointment, Branch,
)
from clinic.services.scope import branch_filter

AGE_RANGES = [
    ('0-10', 0, 10),
    ('11-20', 11, 20),
    ('21-30', 21, 30),
    ('31-40', 31, 40),
    ('41-50', 41, 50),
    ('51-60', 51, 60),
    ('61-70', 61, 70),
    ('71+', 71, None),
]

# Reporting bands used for disease surveillance
DISEASE_AGE_GROUPS = [
    ('<1', 0, 0),
    ('1-4', 1, 4),
    ('5-14', 5, 14),
    ('15-29', 15, 29),
    ('30-64', 30, 64),
    ('65+', 65, None),
]

GENDERS = ('Male', 'Female', 'none')


def _bucket(age: Optional[int], ranges) -> str:
    if age is None:
        return 'Unknown'
    for label, low, high in ranges:
        if age >= low and (high is None or age <= high):
            return label
    return 'Unknown'


def demographics(user, branch=None) -> dict:
    qs = branch_filter(Patient.objects.all(), user, branch)
    ages = OrderedDict((label, 0) for label, _, _ in AGE_RANGES)
    unknown = 0
    for age in qs.values_list('age', flat=True):
        label = _bucket(age, AGE_RANGES)
        if label == 'Unknown':
            unknown += 1
        else:
            ages[label] += 1
    genders = qs.aggregate(
        male=Count('id', filter=Q(sex__iexact='male')),
        female=Count('id', filter=Q(sex__iexact='female')),
        none=Count('id', filter=Q(sex__iexact='none')),
    )
    return {
        'totalPatients': qs.count(),
        'ageDistribution': [{'range': k, 'count': v} for k, v in ages.items()],
        'unknownAge': unknown,
        'genderDistribution': genders,
    }


def _empty_gender_row() -> dict:
    row = OrderedDict((label, 0) for label, _, _ in DISEASE_AGE_GROUPS)
    row['Unknown'] = 0
    row['total'] = 0
    return row


def disease_statistics(user, start, end) -> list[dict]:
    """Diagnoses between ``start`` and ``end`` per disease, gender and age group."""
    qs = (FindingDisease.objects
          .select_related('disease', 'finding__patient')
          .filter(diagnosed_at__date__gte=start, diagnosed_at__date__lte=end))
    qs = branch_filter(qs, user, field='finding__branch')
    stats: dict[int, dict] = {}
    for row in qs:
        entry = stats.setdefault(row.disease_id, {
            'diseaseId': row.disease_id,
            'disease': row.disease.name,
            'total': 0,
            'genders': OrderedDict((g, _empty_gender_row()) for g in GENDERS),
        })
        patient = row.finding.patient
        gender = patient.sex if patient.sex in GENDERS else 'none'
        bucket = entry['genders'][gender]
        bucket[_bucket(patient.age, DISEASE_AGE_GROUPS)] += 1
        bucket['total'] += 1
        entry['total'] += 1
    return sorted(stats.values(), key=lambda e: (-e['total'], e['disease']))


def service_ranking(user, start=None, end=None, branch=None, limit: int = 10) -> list[dict]:
    qs = InvoiceItem.objects.exclude(invoice__status='Cancel')
    qs = branch_filter(qs, user, branch, field='invoice__branch')
    if start:
        qs = qs.filter(invoice__invoice_date__date__gte=start)
    if end:
        qs = qs.filter(invoice__invoice_date__date__lte=end)
    rows = (qs.values('service_id', 'service_name')
            .annotate(quantity=Sum('quantity'), revenue=Sum('total_price'))
            .order_by('-quantity', '-revenue')[:limit])
    return [{
        'serviceId': r['service_id'],
        'serviceName': r['service_name'],
        'quantity': r['quantity'] or 0,
        'revenue': float(r['revenue'] or 0),
    } for r in rows]


def branch_summary(start=None, end=None) -> list[dict]:
    result = []
    for branch in Branch.objects.order_by('name'):
        invoices = Invoice.objects.filter(branch=branch).exclude(status='Cancel')
        payments = PaymentHistory.objects.filter(branch=branch)
        patients = Patient.objects.filter(branch=branch)
        if start:
            invoices = invoices.filter(invoice_date__date__gte=start)
            payments = payments.filter(created_at__date__gte=start)
            patients = patients.filter(created_at__date__gte=start)
        if end:
            invoices = invoices.filter(invoice_date__date__lte=end)
            payments = payments.filter(created_at__date__lte=end)
            patients = patients.filter(created_at__date__lte=end)
        result.append({
            'branchId': branch.id,
            'branchName': branch.name,
            'patients': patients.count(),
            'invoices': invoices.count(),
            'invoiced': float(invoices.aggregate(t=Sum('total_amount'))['t'] or 0),
            'collected': float(payments.aggregate(t=Sum('amount'))['t'] or 0),
        })
    return result


def front_desk(user, branch=None) -> dict:
    today = timezone.localdate()
    appointments = branch_filter(Appointment.objects.select_related('patient', 'doctor'), user, branch)
    appointments = appointments.filter(appointment_date=today).order_by('appointment_time')
    unconfirmed = Q(current_payment_confirmed=False, current_payment_amount__gt=0)
    invoices = branch_filter(Invoice.objects.all(), user, branch)
    credits = branch_filter(Credit.objects.all(), user, branch)
    patients = branch_filter(Patient.objects.all(), user, branch)
    return {
        'date': today.isoformat(),
        'appointmentsToday': appointments.count(),
        'scheduledToday': appointments.filter(status='Scheduled').count(),
        'unconfirmedPayments': invoices.filter(unconfirmed).count() + credits.filter(unconfirmed).count(),
        'pendingInvoices': invoices.filter(status='Pending').count(),
        'patientsToday': patients.filter(created_at__date=today).count(),
    }
