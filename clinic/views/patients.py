"""
Patient management views.

Front desk staff register and edit patients; every authenticated user
of the branch can search them. Listings are newest first and limited to
``PATIENT_LIST_LIMIT`` rows unless a page size is given.
"""
from __future__ import annotations

from django.conf import settings
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import Patient
from ..pagination import paginate
from ..permissions import has_role, FRONT_DESK_ROLES
from ..serializers.patient import PatientSerializer, PatientListQuerySerializer, AdvanceSerializer, CardSerializer
from ..services.audit import log_action
from ..services.patients import (
    serialize_patient, search_patients, register_patient, update_patient, recent_patients,
    monthly_registrations, advance_summary, add_advance, add_card, last_card,
)
from ..services.scope import get_scoped_or_404


def get_patient(user, pk) -> Patient:
    return get_scoped_or_404(Patient.objects.select_related('branch'), user, pk, 'patient')


def _forbidden():
    return Response({'detail': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def patients_list(request):
    user = request.user
    if request.method == 'GET':
        q = PatientListQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        vd = q.validated_data
        qs = search_patients(
            user,
            name=vd.get('name'), card_no=vd.get('cardno'), phone=vd.get('phone'),
            branch=vd.get('branch'), sex=vd.get('sex'),
        )
        rows, meta = paginate(qs, vd.get('page'), vd.get('pageSize'), default_size=settings.PATIENT_LIST_LIMIT)
        return Response({'ok': True, 'data': [serialize_patient(p) for p in rows], 'pagination': meta})
    if not has_role(user, FRONT_DESK_ROLES):
        return _forbidden()
    s = PatientSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    patient = register_patient(user, dict(s.validated_data), branch_id=request.data.get('branchId'))
    return Response(serialize_patient(patient), status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def patient_detail(request, pk: int):
    user = request.user
    patient = get_patient(user, pk)
    if request.method == 'GET':
        return Response(serialize_patient(patient))
    if not has_role(user, FRONT_DESK_ROLES):
        return _forbidden()
    if request.method == 'DELETE':
        log_action(user=user, action='patient_delete', object_type='patient', object_id=patient.id,
                   detail={'cardNo': patient.card_no})
        patient.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
    s = PatientSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    update_patient(patient, dict(s.validated_data))
    return Response(serialize_patient(patient))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def patients_recent(request):
    try:
        days = int(request.query_params.get('days') or 3)
    except ValueError:
        return Response({'detail': 'days must be a number'}, status=status.HTTP_400_BAD_REQUEST)
    qs = recent_patients(request.user, days=days, branch=request.query_params.get('branch'))
    return Response([serialize_patient(p) for p in qs])


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def patients_monthly(request):
    try:
        year = int(request.query_params.get('year') or timezone.localdate().year)
    except ValueError:
        return Response({'detail': 'year must be a number'}, status=status.HTTP_400_BAD_REQUEST)
    data = monthly_registrations(request.user, year, branch=request.query_params.get('branch'))
    return Response({'ok': True, 'year': year, 'data': data})


@api_view(['GET', 'POST', 'PATCH'])
@permission_classes([IsAuthenticated])
def patient_advance(request, pk: int):
    """Read the advance position of a patient or add an advance payment."""
    patient = get_patient(request.user, pk)
    if request.method == 'GET':
        return Response(advance_summary(patient))
    if not has_role(request.user, FRONT_DESK_ROLES):
        return _forbidden()
    s = AdvanceSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    patient = add_advance(request.user, patient, s.validated_data['amount'])
    return Response({'ok': True, **advance_summary(patient)})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def patient_cards(request, pk: int):
    patient = get_patient(request.user, pk)
    if request.method == 'GET':
        cards = patient.cards.order_by('-created_at', '-id')
        latest = last_card(patient)
        return Response({
            'cards': [{
                'id': c.id,
                'price': float(c.price),
                'createdBy': c.created_by_id,
                'createdAt': c.created_at.isoformat(),
            } for c in cards],
            'lastCardPrice': float(latest.price) if latest else None,
        })
    if not has_role(request.user, FRONT_DESK_ROLES):
        return _forbidden()
    s = CardSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    card = add_card(request.user, patient, s.validated_data['price'])
    return Response({'id': card.id, 'price': float(card.price), 'createdAt': card.created_at.isoformat()},
                    status=status.HTTP_201_CREATED)
