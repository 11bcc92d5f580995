"""
Invoice and credit reconciliation.

Invoices and organisation credits share one flow; proforma quotes reuse
the item pricing but never take payments. Items are priced from
the service catalogue, totals are recomputed from the saved items, and a
payment is only counted once a cashier confirms it. Every confirmation
moves the amount from the document's current payment into ``total_paid``
and writes a :class:`PaymentHistory` row in the same transaction.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

from django.db import transaction
from django.db.models import Sum
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from clinic.exceptions import PaymentError
from clinic.models import (
    Invoice, InvoiceItem, Service, Credit, CreditItem, OrgService, Organization, Proforma, ProformaItem,
    PaymentHistory, Card, Expense,
)
from clinic.services.audit import log_action
from clinic.services.scope import branch_filter

logger = logging.getLogger(__name__)

ZERO = Decimal('0')

DOCUMENTS = {
    'invoice': (Invoice, InvoiceItem, Service),
    'credit': (Credit, CreditItem, OrgService),
}


def _money(value) -> float:
    return float(value or ZERO)


def serialize_item(item) -> dict:
    return {
        'id': item.id,
        'serviceId': item.service_id,
        'serviceName': item.service_name,
        'description': item.description,
        'quantity': item.quantity,
        'price': _money(item.price),
        'totalPrice': _money(item.total_price),
    }


def serialize_document(doc) -> dict:
    data = {
        'id': doc.id,
        'patientId': doc.patient_id,
        'customerName': doc.customer_name,
        'cardNo': doc.card_no,
        'branchId': doc.branch_id,
        'status': doc.status,
        'items': [serialize_item(i) for i in doc.items.all()],
        'totalAmount': _money(doc.total_amount),
        'totalPaid': _money(doc.total_paid),
        'balance': _money(doc.balance),
        'currentPayment': {
            'amount': _money(doc.current_payment_amount),
            'date': doc.current_payment_date.isoformat() if doc.current_payment_date else None,
            'confirm': doc.current_payment_confirmed,
            'receipt': doc.current_payment_receipt,
        },
        'createdBy': doc.created_by_id,
        'createdAt': doc.created_at.isoformat() if doc.created_at else None,
        'updatedAt': doc.updated_at.isoformat() if doc.updated_at else None,
    }
    if isinstance(doc, Credit):
        data['organizationId'] = doc.organization_id
        data['organizationName'] = doc.organization.name if doc.organization_id else None
        data['creditDate'] = doc.credit_date.isoformat()
    else:
        data['invoiceDate'] = doc.invoice_date.isoformat()
    return data


def serialize_history(h: PaymentHistory) -> dict:
    return {
        'id': h.id,
        'source': h.source,
        'advance': h.is_advance,
        'invoiceId': h.invoice_id,
        'creditId': h.credit_id,
        'patientId': h.patient_id,
        'customerName': h.customer_name,
        'cardNo': h.card_no,
        'amount': _money(h.amount),
        'receipt': h.receipt,
        'documentCreator': h.document_creator_id,
        'createdBy': h.created_by_id,
        'branchId': h.branch_id,
        'createdAt': h.created_at.isoformat(),
    }


def _check_status(model, status: str) -> None:
    allowed = [value for value, _ in model.STATUS_CHOICES]
    if status not in allowed:
        raise ValidationError({'status': f"status must be one of {', '.join(allowed)}"})


def _resolve_items(service_model, items: list[dict]) -> list[dict]:
    """Attach catalogue services to item payloads; unknown services are 404."""
    if not items:
        raise ValidationError({'items': 'At least one item is required'})
    resolved = []
    for item in items:
        service = service_model.objects.filter(id=item['service']).first()
        if not service:
            raise NotFound(f"service {item['service']} not found")
        price = item.get('price')
        resolved.append({
            'service': service,
            'service_name': service.name,
            'description': item.get('description') or '',
            'quantity': item.get('quantity') or 1,
            'price': service.price if price is None else price,
        })
    return resolved


ITEM_PARENTS = {InvoiceItem: 'invoice', CreditItem: 'credit', ProformaItem: 'proforma'}


def _write_items(item_model, doc, resolved: list[dict]) -> None:
    parent = ITEM_PARENTS[item_model]
    for data in resolved:
        item_model.objects.create(**{parent: doc}, **data)


def create_document(kind: str, user, patient, *, items: list[dict], status: str,
                    current_payment: Decimal = ZERO, organization_id: Optional[int] = None):
    model, item_model, service_model = DOCUMENTS[kind]
    _check_status(model, status)
    resolved = _resolve_items(service_model, items)
    extra = {}
    if kind == 'credit' and organization_id:
        organization = Organization.objects.filter(id=organization_id).first()
        if not organization:
            raise NotFound('organization not found')
        extra['organization'] = organization
    with transaction.atomic():
        doc = model.objects.create(
            patient=patient,
            customer_name=patient.first_name,
            card_no=patient.card_no,
            branch=patient.branch,
            status=status,
            current_payment_amount=current_payment or ZERO,
            created_by=user,
            **extra,
        )
        _write_items(item_model, doc, resolved)
        doc.recalculate()
        doc.save()
    logger.info('%s %s created for patient %s total=%s', kind, doc.id, patient.id, doc.total_amount)
    return doc


def update_document(kind: str, doc, *, items=None, status=None, current_payment=None, organization_id=None):
    model, item_model, service_model = DOCUMENTS[kind]
    if status is not None:
        _check_status(model, status)
    resolved = _resolve_items(service_model, items) if items is not None else None
    with transaction.atomic():
        doc = model.objects.select_for_update().get(pk=doc.pk)
        if resolved is not None:
            doc.items.all().delete()
            _write_items(item_model, doc, resolved)
        if status is not None:
            doc.status = status
        if current_payment is not None:
            if current_payment < 0:
                raise ValidationError({'currentPayment': 'amount cannot be negative'})
            doc.current_payment_amount = current_payment
            doc.current_payment_confirmed = False
            doc.current_payment_receipt = False
        if kind == 'credit' and organization_id is not None:
            organization = Organization.objects.filter(id=organization_id).first()
            if not organization:
                raise NotFound('organization not found')
            doc.organization = organization
        doc.recalculate()
        if doc.balance < 0:
            raise PaymentError('Items total is below the amount already paid', totalPaid=_money(doc.total_paid))
        doc.save()
    return doc


def serialize_proforma(p: Proforma) -> dict:
    return {
        'id': p.id,
        'patientId': p.patient_id,
        'customerName': p.customer_name,
        'cardNo': p.card_no,
        'branchId': p.branch_id,
        'proformaDate': p.proforma_date.isoformat(),
        'items': [serialize_item(i) for i in p.items.all()],
        'totalAmount': _money(p.total_amount),
        'createdBy': p.created_by_id,
        'createdAt': p.created_at.isoformat() if p.created_at else None,
    }


def create_proforma(user, patient, items: list[dict]) -> Proforma:
    """Quote services for a patient at catalogue prices."""
    resolved = _resolve_items(Service, items)
    with transaction.atomic():
        proforma = Proforma.objects.create(
            patient=patient, customer_name=patient.first_name, card_no=patient.card_no,
            branch=patient.branch, created_by=user,
        )
        _write_items(ProformaItem, proforma, resolved)
        proforma.recalculate()
        proforma.save()
    logger.info('proforma %s created for patient %s total=%s', proforma.id, patient.id, proforma.total_amount)
    return proforma


def replace_proforma_items(proforma: Proforma, items: list[dict]) -> Proforma:
    resolved = _resolve_items(Service, items)
    with transaction.atomic():
        proforma = Proforma.objects.select_for_update().get(pk=proforma.pk)
        proforma.items.all().delete()
        _write_items(ProformaItem, proforma, resolved)
        proforma.recalculate()
        proforma.save()
    return proforma


def confirm_payment(kind: str, user, doc_id: int, amount: Optional[Decimal] = None, receipt: bool = True):
    """Confirm a payment on an invoice or credit.

    ``amount`` defaults to the document's pending current payment. The
    amount must be positive and may not exceed the outstanding balance.
    """
    model = DOCUMENTS[kind][0]
    with transaction.atomic():
        doc = model.objects.select_for_update().filter(pk=doc_id).first()
        if doc is None:
            raise NotFound(f'{kind} not found')
        if doc.status == 'Cancel':
            raise PaymentError(f'Cannot take a payment on a cancelled {kind}')
        if amount is None:
            amount = doc.current_payment_amount
        if amount is None or amount <= 0:
            raise PaymentError('Payment amount must be greater than zero')
        if amount > doc.balance:
            raise PaymentError('Payment exceeds the outstanding balance', balance=_money(doc.balance))
        doc.total_paid = (doc.total_paid or ZERO) + amount
        doc.balance = doc.total_amount - doc.total_paid
        doc.status = 'Paid' if doc.is_fully_paid else 'Pending'
        doc.current_payment_amount = ZERO
        doc.current_payment_confirmed = True
        doc.current_payment_receipt = bool(receipt)
        doc.current_payment_date = timezone.now()
        doc.save()
        history = PaymentHistory.objects.create(
            source=kind,
            invoice=doc if kind == 'invoice' else None,
            credit=doc if kind == 'credit' else None,
            patient_id=doc.patient_id,
            customer_name=doc.customer_name,
            card_no=doc.card_no,
            amount=amount,
            receipt=bool(receipt),
            document_creator_id=doc.created_by_id,
            created_by=user,
            branch_id=doc.branch_id,
        )
        log_action(user=user, action='payment_confirm', object_type=kind, object_id=doc.id,
                   detail={'amount': str(amount), 'status': doc.status})
    logger.info('%s %s payment %s confirmed, balance=%s', kind, doc.id, amount, doc.balance)
    return doc, history


def bulk_confirm_credits(user, entries: list) -> dict:
    """Apply payments to several credits.

    Entries with an unknown credit or an unusable amount are skipped and
    reported; each applied payment commits on its own. Credits outside the
    caller's branch are reported as not found.
    """
    if not entries:
        raise ValidationError({'creditsToUpdate': 'No credits to update'})
    visible = branch_filter(Credit.objects.all(), user)
    updated, skipped = [], []
    for entry in entries:
        raw_id = entry.get('creditId') if isinstance(entry, dict) else None
        try:
            credit_id = int(raw_id)
            amount = Decimal(str(entry.get('paymentAmount')))
        except (InvalidOperation, AttributeError, TypeError, ValueError):
            credit_id, amount = None, None
        if not credit_id or amount is None or not amount.is_finite() or amount <= 0:
            skipped.append({'creditId': raw_id, 'reason': 'invalid entry'})
            continue
        if not visible.filter(pk=credit_id).exists():
            skipped.append({'creditId': credit_id, 'reason': 'credit not found'})
            continue
        try:
            credit, _ = confirm_payment('credit', user, credit_id, amount=amount)
        except PaymentError as e:
            skipped.append({'creditId': credit_id, 'reason': e.message})
            continue
        updated.append(serialize_document(credit))
    return {'updated': updated, 'skipped': skipped}


def settle_credit(user, credit: Credit) -> Credit:
    """Close a credit, recording any outstanding balance as the final payment."""
    if credit.balance > 0:
        credit, _ = confirm_payment('credit', user, credit.id, amount=credit.balance)
        return credit
    with transaction.atomic():
        credit = Credit.objects.select_for_update().get(pk=credit.pk)
        credit.status = 'Paid'
        credit.current_payment_amount = ZERO
        credit.current_payment_confirmed = True
        credit.save()
    return credit


def unconfirmed(kind: str, user, branch=None):
    model = DOCUMENTS[kind][0]
    qs = model.objects.select_related('patient').prefetch_related('items')
    qs = branch_filter(qs, user, branch)
    return qs.filter(current_payment_confirmed=False, current_payment_amount__gt=0).order_by('-updated_at')


def _in_range(qs, field: str, start=None, end=None):
    if start:
        qs = qs.filter(**{f'{field}__date__gte': start})
    if end:
        qs = qs.filter(**{f'{field}__date__lte': end})
    return qs


def payment_report(user, start, end, *, source=None, branch=None) -> dict:
    qs = branch_filter(PaymentHistory.objects.all(), user, branch)
    qs = _in_range(qs, 'created_at', start, end)
    if source:
        qs = qs.filter(source=source)
    qs = qs.order_by('-created_at')
    total = qs.aggregate(total=Sum('amount'))['total'] or ZERO
    return {'entries': [serialize_history(h) for h in qs], 'total': _money(total), 'count': qs.count()}


def credit_report(user, start, end, *, organization_id=None, branch=None) -> dict:
    qs = branch_filter(Credit.objects.select_related('organization').prefetch_related('items'), user, branch)
    qs = _in_range(qs, 'credit_date', start, end)
    if organization_id:
        qs = qs.filter(organization_id=organization_id)
    totals = qs.aggregate(amount=Sum('total_amount'), paid=Sum('total_paid'), balance=Sum('balance'))
    return {
        'credits': [serialize_document(c) for c in qs.order_by('-credit_date')],
        'totalAmount': _money(totals['amount']),
        'totalPaid': _money(totals['paid']),
        'totalBalance': _money(totals['balance']),
    }


def financial_summary(user, start=None, end=None, branch=None) -> dict:
    """Payments plus card fees minus expenses."""
    payments = _in_range(branch_filter(PaymentHistory.objects.all(), user, branch), 'created_at', start, end)
    cards = _in_range(branch_filter(Card.objects.all(), user, branch), 'created_at', start, end)
    expenses = branch_filter(Expense.objects.all(), user, branch)
    if start:
        expenses = expenses.filter(expense_date__gte=start)
    if end:
        expenses = expenses.filter(expense_date__lte=end)
    history_total = payments.aggregate(t=Sum('amount'))['t'] or ZERO
    card_total = cards.aggregate(t=Sum('price'))['t'] or ZERO
    expense_total = expenses.aggregate(t=Sum('amount'))['t'] or ZERO
    return {
        'historyTotal': _money(history_total),
        'cardTotal': _money(card_total),
        'expenseTotal': _money(expense_total),
        'grandTotal': _money(history_total + card_total - expense_total),
    }
