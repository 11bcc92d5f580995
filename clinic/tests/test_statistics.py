from decimal import Decimal

from django.utils import timezone

from clinic.models import (
    Patient, Disease, MedicalFinding, FindingDisease, Service, Invoice, InvoiceItem, Appointment,
)


def _patient(branch, card, age, sex):
    return Patient.objects.create(card_no=card, first_name=f'Patient {card}', age=age, sex=sex, branch=branch)


def test_demographics_buckets_and_scope(client_for, admin_user, reception, branch, other_branch):
    _patient(branch, 'A1', 5, 'Male')
    _patient(branch, 'A2', 34, 'Female')
    _patient(branch, 'A3', None, 'none')
    _patient(other_branch, 'B1', 80, 'Female')

    r = client_for(reception).get('/api/statistics/demographics')
    assert r.status_code == 200
    assert r.data['totalPatients'] == 3
    ages = {row['range']: row['count'] for row in r.data['ageDistribution']}
    assert ages['0-10'] == 1
    assert ages['31-40'] == 1
    assert ages['71+'] == 0
    assert r.data['unknownAge'] == 1
    assert r.data['genderDistribution'] == {'male': 1, 'female': 1, 'none': 1}

    r = client_for(admin_user).get('/api/statistics/demographics')
    assert r.data['totalPatients'] == 4


def test_demographics_are_cached(client_for, reception, branch):
    client = client_for(reception)
    _patient(branch, 'A1', 20, 'Male')
    assert client.get('/api/statistics/demographics').data['totalPatients'] == 1
    _patient(branch, 'A2', 21, 'Male')
    assert client.get('/api/statistics/demographics').data['totalPatients'] == 1


def test_disease_statistics_require_dates(client_for, doctor):
    client = client_for(doctor)
    assert client.get('/api/statistics/diseases').status_code == 400
    assert client.get('/api/statistics/diseases', {'startDate': '2024-02-01', 'endDate': '2024-01-01'}).status_code == 400


def test_disease_statistics_by_gender_and_age(client_for, doctor, branch):
    caries = Disease.objects.create(name='Dental caries')
    gingivitis = Disease.objects.create(name='Gingivitis')
    now = timezone.now()
    for card, age, sex, diseases in [('A1', 3, 'Male', [caries]), ('A2', 40, 'Female', [caries, gingivitis]),
                                     ('A3', 40, 'Female', [caries])]:
        patient = _patient(branch, card, age, sex)
        finding = MedicalFinding.objects.create(patient=patient, branch=branch)
        for disease in diseases:
            FindingDisease.objects.create(finding=finding, disease=disease, diagnosed_at=now)

    today = timezone.localdate().isoformat()
    r = client_for(doctor).get('/api/statistics/diseases', {'startDate': today, 'endDate': today})
    assert r.status_code == 200
    first, second = r.data['data']
    assert (first['disease'], first['total']) == ('Dental caries', 3)
    assert first['genders']['Male']['1-4'] == 1
    assert first['genders']['Female']['30-64'] == 2
    assert first['genders']['Female']['total'] == 2
    assert (second['disease'], second['total']) == ('Gingivitis', 1)


def test_service_ranking_skips_cancelled(client_for, admin_user, branch):
    patient = _patient(branch, 'A1', 30, 'Male')
    filling = Service.objects.create(name='Filling', price=Decimal('300'))
    cleaning = Service.objects.create(name='Cleaning', price=Decimal('100'))
    paid = Invoice.objects.create(patient=patient, branch=branch, status='Paid')
    InvoiceItem.objects.create(invoice=paid, service=filling, service_name='Filling', quantity=1, price=Decimal('300'))
    InvoiceItem.objects.create(invoice=paid, service=cleaning, service_name='Cleaning', quantity=2,
                               price=Decimal('100'))
    cancelled = Invoice.objects.create(patient=patient, branch=branch, status='Cancel')
    InvoiceItem.objects.create(invoice=cancelled, service=filling, service_name='Filling', quantity=5,
                               price=Decimal('300'))

    r = client_for(admin_user).get('/api/statistics/services')
    assert r.status_code == 200
    assert [(row['serviceName'], row['quantity'], row['revenue']) for row in r.data] == [
        ('Cleaning', 2, 200.0), ('Filling', 1, 300.0),
    ]
    assert client_for(admin_user).get('/api/statistics/services', {'limit': 'ten'}).status_code == 400


def test_front_desk_counters(client_for, reception, branch, other_branch):
    today = timezone.localdate()
    patient = _patient(branch, 'A1', 30, 'Male')
    Appointment.objects.create(patient=patient, branch=branch, appointment_date=today)
    Appointment.objects.create(patient=patient, branch=branch, appointment_date=today, status='Completed')
    Appointment.objects.create(patient=_patient(other_branch, 'B1', 30, 'Male'), branch=other_branch,
                               appointment_date=today)
    Invoice.objects.create(patient=patient, branch=branch, status='Pending', current_payment_amount=Decimal('50'))

    r = client_for(reception).get('/api/statistics/front-desk')
    assert r.status_code == 200
    assert r.data['appointmentsToday'] == 2
    assert r.data['scheduledToday'] == 1
    assert r.data['unconfirmedPayments'] == 1
    assert r.data['pendingInvoices'] == 1
    assert r.data['patientsToday'] == 1


def test_branch_summary_is_admin_only(client_for, admin_user, reception, branch, other_branch):
    _patient(branch, 'A1', 30, 'Male')
    assert client_for(reception).get('/api/statistics/branches').status_code == 403
    r = client_for(admin_user).get('/api/statistics/branches')
    assert r.status_code == 200
    assert [(row['branchName'], row['patients']) for row in r.data] == [('Bole', 1), ('Piassa', 0)]
