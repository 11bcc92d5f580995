import logging
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from django.db import transaction
from django.db.models import Count, Q
from django.db.models.functions import TruncMonth
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from clinic.models import Patient, PaymentHistory, Card
from clinic.services.scope import branch_filter, resolve_branch

logger = logging.getLogger(__name__)

SEX_FILTERS = {
    'male': 'Male',
    'female': 'Female',
    'none': 'none',
}

# camelCase request key -> model field
PATIENT_FIELDS = {
    'cardNo': 'card_no',
    'firstName': 'first_name',
    'age': 'age',
    'sex': 'sex',
    'phone': 'phone',
    'town': 'town',
    'kebele': 'kebele',
    'houseNo': 'house_no',
    'woreda': 'woreda',
    'region': 'region',
    'address': 'address',
    'description': 'description',
    'dateOfBirth': 'date_of_birth',
    'disability': 'disability',
    'credit': 'credit',
    'finish': 'finish',
    'locked': 'locked',
    'price': 'price',
}


def serialize_patient(p: Patient) -> dict:
    return {
        'id': p.id,
        'cardNo': p.card_no,
        'firstName': p.first_name,
        'age': p.age,
        'sex': p.sex,
        'phone': p.phone,
        'town': p.town,
        'kebele': p.kebele,
        'houseNo': p.house_no,
        'woreda': p.woreda,
        'region': p.region,
        'address': p.address,
        'description': p.description,
        'dateOfBirth': p.date_of_birth.isoformat() if p.date_of_birth else None,
        'disability': p.disability,
        'credit': p.credit,
        'finish': p.finish,
        'locked': p.locked,
        'price': float(p.price),
        'advance': float(p.advance),
        'branchId': p.branch_id,
        'branchName': p.branch.name if p.branch_id else None,
        'createdBy': p.created_by_id,
        'createdAt': p.created_at.isoformat() if p.created_at else None,
    }


def search_patients(user, *, name=None, card_no=None, phone=None, branch=None, sex=None):
    qs = Patient.objects.select_related('branch')
    qs = branch_filter(qs, user, branch)
    if name:
        qs = qs.filter(first_name__icontains=name)
    if card_no:
        qs = qs.filter(card_no__icontains=card_no)
    if phone:
        qs = qs.filter(phone__icontains=phone)
    if sex and sex.lower() != 'all':
        key = sex.lower()
        if key not in SEX_FILTERS:
            raise ValidationError({'sex': 'sex must be one of all, male, female, none'})
        qs = qs.filter(sex__iexact=SEX_FILTERS[key])
    return qs.order_by('-created_at', '-id')


def register_patient(user, data: dict, branch_id=None) -> Patient:
    """Create a patient in the caller's branch.

    The card number must be unique within that branch.
    """
    branch = resolve_branch(user, branch_id)
    card_no = data['card_no']
    if Patient.objects.filter(card_no=card_no, branch=branch).exists():
        raise ValidationError({'cardNo': 'A patient with this card number already exists in this branch'})
    with transaction.atomic():
        patient = Patient.objects.create(branch=branch, created_by=user, **data)
    logger.info('registered patient %s card=%s branch=%s', patient.id, card_no, branch.id if branch else None)
    return patient


def update_patient(patient: Patient, data: dict) -> Patient:
    card_no = data.get('card_no')
    if card_no and card_no != patient.card_no:
        clash = Patient.objects.filter(card_no=card_no, branch_id=patient.branch_id).exclude(id=patient.id)
        if clash.exists():
            raise ValidationError({'cardNo': 'A patient with this card number already exists in this branch'})
    for field, value in data.items():
        setattr(patient, field, value)
    patient.save()
    return patient


def recent_patients(user, days: int = 3, branch=None):
    since = timezone.now() - timedelta(days=days)
    qs = branch_filter(Patient.objects.select_related('branch'), user, branch)
    return qs.filter(created_at__gte=since).order_by('-created_at')


def monthly_registrations(user, year: int, branch=None) -> list[dict]:
    qs = branch_filter(Patient.objects.all(), user, branch).filter(created_at__year=year)
    rows = (qs.annotate(month=TruncMonth('created_at'))
            .values('month')
            .annotate(count=Count('id'))
            .order_by('month'))
    counts = {row['month'].month: row['count'] for row in rows if row['month']}
    return [{'month': m, 'count': counts.get(m, 0)} for m in range(1, 13)]


def advance_summary(patient: Patient) -> dict:
    price = patient.price or Decimal('0')
    advance = patient.advance or Decimal('0')
    return {
        'patientId': patient.id,
        'patientName': patient.first_name,
        'cardNo': patient.card_no,
        'price': float(price),
        'advance': float(advance),
        'remainingBalance': float(max(Decimal('0'), price - advance)),
        'isPaymentComplete': advance >= price,
        'advanceCoverage': float(min(advance, price)),
        'excessAdvance': float(max(Decimal('0'), advance - price)),
    }


def add_advance(user, patient: Patient, amount: Decimal) -> Patient:
    """Add an advance payment and record it in the payment history."""
    if amount is None or amount <= 0:
        raise ValidationError({'amount': 'amount must be greater than zero'})
    with transaction.atomic():
        locked = Patient.objects.select_for_update().get(pk=patient.pk)
        locked.advance = (locked.advance or Decimal('0')) + amount
        locked.save(update_fields=['advance', 'updated_at'])
        PaymentHistory.objects.create(
            source='advance',
            patient=locked,
            customer_name=locked.first_name,
            card_no=locked.card_no,
            amount=amount,
            receipt=True,
            created_by=user,
            branch=locked.branch,
        )
    logger.info('advance %s added for patient %s', amount, patient.id)
    return locked


def add_card(user, patient: Patient, price: Decimal) -> Card:
    return Card.objects.create(patient=patient, price=price, branch=patient.branch, created_by=user)


def last_card(patient: Patient) -> Optional[Card]:
    return patient.cards.order_by('-created_at', '-id').first()


def sex_counts(qs) -> dict:
    return qs.aggregate(
        male=Count('id', filter=Q(sex__iexact='male')),
        female=Count('id', filter=Q(sex__iexact='female')),
        none=Count('id', filter=Q(sex__iexact='none')),
    )
