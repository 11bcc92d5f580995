from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from clinic.models import Patient, Service, Organization, OrgService, Invoice, Credit, PaymentHistory, Card, Expense
from .conftest import make_user


@pytest.fixture
def patient(branch):
    return Patient.objects.create(card_no='C-010', first_name='Abebe Kebede', sex='Male', branch=branch)


@pytest.fixture
def cleaning(db):
    return Service.objects.create(name='Cleaning', price=Decimal('500.00'))


@pytest.fixture
def org_service(db):
    org = Organization.objects.create(name='Ethio Telecom')
    return OrgService.objects.create(name='Scaling', price=Decimal('800.00'), organization=org)


def _invoice(client, patient, service, payment='0', **extra):
    body = {'items': [{'service': service.id}], 'status': 'Pending', 'currentPayment': payment}
    body.update(extra)
    return client.post(f'/api/patients/{patient.id}/invoices', body, format='json')


def test_invoice_is_priced_from_catalogue(client_for, reception, patient, cleaning):
    r = _invoice(client_for(reception), patient, cleaning,
                 items=[{'service': cleaning.id, 'quantity': 2}, {'service': cleaning.id, 'price': '100.00'}])
    assert r.status_code == 201
    assert r.data['totalAmount'] == 1100.0
    assert r.data['balance'] == 1100.0
    assert r.data['customerName'] == 'Abebe Kebede'
    assert [i['totalPrice'] for i in r.data['items']] == [1000.0, 100.0]


@pytest.mark.parametrize('body, code', [
    ({'items': [], 'status': 'Pending', 'currentPayment': '0'}, 400),
    ({'items': [{'service': 1}], 'currentPayment': '0'}, 400),
    ({'items': [{'service': 1}], 'status': 'Credit', 'currentPayment': '0'}, 400),
])
def test_invoice_payload_validation(client_for, reception, patient, body, code):
    r = client_for(reception).post(f'/api/patients/{patient.id}/invoices', body, format='json')
    assert r.status_code == code
    assert not Invoice.objects.exists()


def test_invoice_with_unknown_service_is_404(client_for, reception, patient):
    body = {'items': [{'service': 999}], 'status': 'Pending', 'currentPayment': '0'}
    r = client_for(reception).post(f'/api/patients/{patient.id}/invoices', body, format='json')
    assert r.status_code == 404
    assert not Invoice.objects.exists()


def test_confirm_partial_then_full_payment(client_for, reception, patient, cleaning):
    client = client_for(reception)
    invoice_id = _invoice(client, patient, cleaning, payment='200.00').data['id']

    r = client.get('/api/invoices/unconfirmed')
    assert [i['id'] for i in r.data] == [invoice_id]

    r = client.post(f'/api/invoices/{invoice_id}/confirm', {}, format='json')
    assert r.status_code == 200
    assert r.data['invoice']['status'] == 'Pending'
    assert r.data['invoice']['totalPaid'] == 200.0
    assert r.data['invoice']['balance'] == 300.0
    assert r.data['invoice']['currentPayment']['confirm'] is True
    assert r.data['payment']['amount'] == 200.0

    r = client.post(f'/api/invoices/{invoice_id}/confirm', {'amount': '300.00'}, format='json')
    assert r.data['invoice']['status'] == 'Paid'
    assert r.data['invoice']['balance'] == 0.0

    history = PaymentHistory.objects.filter(invoice_id=invoice_id, source='invoice')
    assert history.count() == 2
    assert all(h.created_by_id == reception.id for h in history)
    assert client.get('/api/invoices/unconfirmed').data == []


def test_overpayment_is_rejected(client_for, reception, patient, cleaning):
    client = client_for(reception)
    invoice_id = _invoice(client, patient, cleaning).data['id']
    r = client.post(f'/api/invoices/{invoice_id}/confirm', {'amount': '600.00'}, format='json')
    assert r.status_code == 400
    assert r.data['error']['code'] == 'payment_error'
    invoice = Invoice.objects.get(id=invoice_id)
    assert invoice.total_paid == 0
    assert not PaymentHistory.objects.exists()


def test_cancelled_invoice_cannot_be_paid(client_for, reception, patient, cleaning):
    client = client_for(reception)
    invoice_id = _invoice(client, patient, cleaning, status='Cancel').data['id']
    r = client.post(f'/api/invoices/{invoice_id}/confirm', {'amount': '100.00'}, format='json')
    assert r.status_code == 400


def test_only_front_desk_confirms(client_for, doctor, patient, cleaning):
    client = client_for(doctor)
    invoice_id = _invoice(client, patient, cleaning, payment='100.00').data['id']
    r = client.post(f'/api/invoices/{invoice_id}/confirm', {}, format='json')
    assert r.status_code == 403


def test_invoice_of_other_branch_is_hidden(client_for, reception, other_branch, cleaning):
    stranger = Patient.objects.create(card_no='X-1', first_name='Other Person', branch=other_branch)
    r = client_for(reception).post(f'/api/patients/{stranger.id}/invoices',
                                   {'items': [{'service': cleaning.id}], 'status': 'Pending', 'currentPayment': '0'},
                                   format='json')
    assert r.status_code == 404


def test_items_below_paid_amount_are_rejected(client_for, reception, patient, cleaning):
    client = client_for(reception)
    invoice_id = _invoice(client, patient, cleaning, payment='400.00').data['id']
    client.post(f'/api/invoices/{invoice_id}/confirm', {}, format='json')
    r = client.patch(f'/api/invoices/{invoice_id}',
                     {'items': [{'service': cleaning.id, 'price': '100.00'}]}, format='json')
    assert r.status_code == 400
    assert Invoice.objects.get(id=invoice_id).total_amount == Decimal('500.00')


def test_proforma_quotes_without_touching_payments(client_for, doctor, reception, other_branch, patient, cleaning):
    client = client_for(doctor)
    r = client.post(f'/api/patients/{patient.id}/proformas',
                    {'items': [{'service': cleaning.id, 'quantity': 3}]}, format='json')
    assert r.status_code == 201
    proforma_id = r.data['id']
    assert r.data['totalAmount'] == 1500.0
    assert r.data['cardNo'] == 'C-010'

    r = client.put(f'/api/proformas/{proforma_id}', {'items': [{'service': cleaning.id}]}, format='json')
    assert r.data['totalAmount'] == 500.0
    assert len(r.data['items']) == 1
    assert client.put(f'/api/proformas/{proforma_id}', {'items': [{'service': 999}]},
                      format='json').status_code == 404
    assert client.get(f'/api/patients/{patient.id}/proformas').data[0]['totalAmount'] == 500.0
    assert not Invoice.objects.exists()
    assert not PaymentHistory.objects.exists()

    outsider = make_user('reception2', 'reception', other_branch)
    assert client_for(outsider).get(f'/api/proformas/{proforma_id}').status_code == 404
    assert client.delete(f'/api/proformas/{proforma_id}').status_code == 403
    assert client_for(reception).delete(f'/api/proformas/{proforma_id}').status_code == 204


def test_payment_report(client_for, reception, patient, cleaning):
    client = client_for(reception)
    invoice_id = _invoice(client, patient, cleaning, payment='500.00').data['id']
    client.post(f'/api/invoices/{invoice_id}/confirm', {}, format='json')
    client.post(f'/api/patients/{patient.id}/advance', {'amount': '50.00'}, format='json')

    today = timezone.localdate()
    params = {'startDate': (today - timedelta(days=1)).isoformat(), 'endDate': today.isoformat()}
    r = client.get('/api/payments/report', params)
    assert r.status_code == 200
    assert r.data['count'] == 2
    assert r.data['total'] == 550.0

    r = client.get('/api/payments/report', {**params, 'source': 'advance'})
    assert r.data['total'] == 50.0

    assert client.get('/api/payments/report', {'startDate': today.isoformat()}).status_code == 400
    assert client.get('/api/payments/report', {'startDate': 'yesterday', 'endDate': 'today'}).status_code == 400
    assert client.get('/api/payments/report', {**params, 'source': 'cash'}).status_code == 400


def test_credit_bulk_confirm_skips_bad_entries(client_for, reception, patient, org_service):
    client = client_for(reception)
    r = client.post(f'/api/patients/{patient.id}/credits', {
        'items': [{'service': org_service.id}], 'status': 'Credit', 'currentPayment': '0',
        'organizationId': org_service.organization_id,
    }, format='json')
    assert r.status_code == 201
    assert r.data['organizationName'] == 'Ethio Telecom'
    credit_id = r.data['id']

    r = client.post('/api/credits/confirm', {'creditsToUpdate': [
        {'creditId': credit_id, 'paymentAmount': 300},
        {'creditId': 999, 'paymentAmount': 10},
        {'creditId': credit_id, 'paymentAmount': 'abc'},
        {'creditId': credit_id, 'paymentAmount': 5000},
    ]}, format='json')
    assert r.status_code == 200
    assert len(r.data['updated']) == 1
    assert r.data['updated'][0]['balance'] == 500.0
    assert [s['reason'] for s in r.data['skipped']] == [
        'credit not found', 'invalid entry', 'Payment exceeds the outstanding balance',
    ]

    r = client.post('/api/credits/confirm', {'creditsToUpdate': []}, format='json')
    assert r.status_code == 400


def test_credit_bulk_confirm_ignores_other_branches(client_for, reception, other_branch, org_service):
    outsider = Patient.objects.create(card_no='C-900', first_name='Hana Girma', branch=other_branch)
    credit = Credit.objects.create(patient=outsider, branch=other_branch, status='Credit')
    credit.items.create(service=org_service, service_name=org_service.name, price=org_service.price)
    credit.recalculate()
    credit.save()

    client = client_for(reception)
    assert client.post(f'/api/credits/{credit.id}/confirm', {'amount': '50'}, format='json').status_code == 404

    r = client.post('/api/credits/confirm', {'creditsToUpdate': [
        {'creditId': credit.id, 'paymentAmount': 50},
    ]}, format='json')
    assert r.status_code == 200
    assert r.data['updated'] == []
    assert r.data['skipped'] == [{'creditId': credit.id, 'reason': 'credit not found'}]
    credit.refresh_from_db()
    assert credit.total_paid == Decimal('0')
    assert not PaymentHistory.objects.filter(credit=credit).exists()


@pytest.mark.parametrize('credit_id', ['abc', None, {'id': 1}])
def test_credit_bulk_confirm_rejects_malformed_ids(client_for, reception, credit_id):
    r = client_for(reception).post('/api/credits/confirm', {'creditsToUpdate': [
        {'creditId': credit_id, 'paymentAmount': '5'},
    ]}, format='json')
    assert r.status_code == 200
    assert r.data['updated'] == []
    assert [s['reason'] for s in r.data['skipped']] == ['invalid entry']


def test_credit_update_with_unknown_organization_is_404(client_for, reception, patient, org_service):
    client = client_for(reception)
    body = {'items': [{'service': org_service.id}], 'status': 'Credit', 'currentPayment': '0'}
    assert client.post(f'/api/patients/{patient.id}/credits', {**body, 'organizationId': 999},
                       format='json').status_code == 404

    credit_id = client.post(f'/api/patients/{patient.id}/credits',
                            {**body, 'organizationId': org_service.organization_id}, format='json').data['id']
    r = client.patch(f'/api/credits/{credit_id}', {'organizationId': 999}, format='json')
    assert r.status_code == 404
    assert Credit.objects.get(id=credit_id).organization_id == org_service.organization_id


def test_settle_credit_records_outstanding_balance(client_for, reception, patient, org_service):
    client = client_for(reception)
    credit_id = client.post(f'/api/patients/{patient.id}/credits', {
        'items': [{'service': org_service.id}], 'status': 'Credit', 'currentPayment': '0',
    }, format='json').data['id']
    r = client.post(f'/api/credits/{credit_id}/settle')
    assert r.status_code == 200
    assert r.data['credit']['status'] == 'Paid'
    assert r.data['credit']['balance'] == 0.0
    assert PaymentHistory.objects.get(credit_id=credit_id).amount == Decimal('800.00')
    assert Credit.objects.get(id=credit_id).total_paid == Decimal('800.00')


def test_financial_summary(client_for, admin_user, reception, patient, branch):
    PaymentHistory.objects.create(source='invoice', amount=Decimal('1000'), branch=branch)
    Card.objects.create(patient=patient, price=Decimal('100'), branch=branch)
    Expense.objects.create(description='Gloves', amount=Decimal('300'), branch=branch)

    assert client_for(reception).get('/api/finance/summary').status_code == 403
    r = client_for(admin_user).get('/api/finance/summary')
    assert r.status_code == 200
    assert r.data == {'historyTotal': 1000.0, 'cardTotal': 100.0, 'expenseTotal': 300.0, 'grandTotal': 800.0}


def test_expense_report_groups_by_category(client_for, reception, branch):
    client = client_for(reception)
    for desc, category, amount in [('Gloves', 'Supplies', '100'), ('Masks', 'Supplies', '50'),
                                   ('Power', 'Utilities', '200')]:
        r = client.post('/api/expenses', {'description': desc, 'category': category, 'amount': amount},
                        format='json')
        assert r.status_code == 201
        assert r.data['branchId'] == branch.id
    assert client.post('/api/expenses', {'description': 'Refund', 'amount': '-5'}, format='json').status_code == 400

    today = timezone.localdate().isoformat()
    r = client.get('/api/expenses/report', {'startDate': today, 'endDate': today})
    assert r.data['total'] == 350.0
    assert r.data['byCategory'] == [{'category': 'Supplies', 'total': 150.0}, {'category': 'Utilities', 'total': 200.0}]

    nurse = make_user('nurse1', 'nurse', branch)
    assert client_for(nurse).get('/api/expenses').status_code == 403
