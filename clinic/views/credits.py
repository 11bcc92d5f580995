from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import Credit
from ..permissions import has_role, FRONT_DESK_ROLES
from ..serializers.billing import (
    DocumentCreateSerializer, DocumentUpdateSerializer, PaymentConfirmSerializer, BulkCreditConfirmSerializer,
    DateRangeSerializer,
)
from ..services.audit import log_action
from ..services.billing import (
    serialize_document, serialize_history, create_document, update_document, confirm_payment,
    bulk_confirm_credits, settle_credit, unconfirmed, credit_report,
)
from ..services.scope import get_scoped_or_404
from .patients import get_patient


def _forbidden():
    return Response({'detail': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)


def _get_credit(user, pk):
    return get_scoped_or_404(Credit.objects.select_related('organization').prefetch_related('items'),
                             user, pk, 'credit')


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def patient_credits(request, pk: int):
    patient = get_patient(request.user, pk)
    if request.method == 'GET':
        qs = patient.credits.select_related('organization').prefetch_related('items').order_by('-created_at', '-id')
        return Response([serialize_document(c) for c in qs])
    s = DocumentCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    credit = create_document(
        'credit', request.user, patient,
        items=[dict(i) for i in vd['items']], status=vd['status'],
        current_payment=vd['current_payment'], organization_id=vd.get('organization_id'),
    )
    return Response(serialize_document(credit), status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def credit_detail(request, pk: int):
    credit = _get_credit(request.user, pk)
    if request.method == 'GET':
        data = serialize_document(credit)
        data['payments'] = [serialize_history(h) for h in credit.payments.order_by('-created_at')]
        return Response(data)
    if request.method == 'DELETE':
        if not has_role(request.user, FRONT_DESK_ROLES):
            return _forbidden()
        log_action(user=request.user, action='credit_delete', object_type='credit', object_id=credit.id,
                   detail={'total': str(credit.total_amount), 'paid': str(credit.total_paid)})
        credit.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
    s = DocumentUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    credit = update_document(
        'credit', credit,
        items=[dict(i) for i in vd['items']] if 'items' in vd else None,
        status=vd.get('status'),
        current_payment=vd.get('current_payment'),
        organization_id=vd.get('organization_id'),
    )
    return Response(serialize_document(credit))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def credit_confirm(request, pk: int):
    if not has_role(request.user, FRONT_DESK_ROLES):
        return _forbidden()
    _get_credit(request.user, pk)
    s = PaymentConfirmSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    credit, history = confirm_payment(
        'credit', request.user, pk, amount=s.validated_data.get('amount'), receipt=s.validated_data['receipt'],
    )
    return Response({'ok': True, 'credit': serialize_document(credit), 'payment': serialize_history(history)})


@api_view(['POST', 'PUT'])
@permission_classes([IsAuthenticated])
def credits_bulk_confirm(request):
    """Apply ``creditsToUpdate: [{creditId, paymentAmount}]``; bad entries are skipped."""
    if not has_role(request.user, FRONT_DESK_ROLES):
        return _forbidden()
    s = BulkCreditConfirmSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    result = bulk_confirm_credits(request.user, s.validated_data['creditsToUpdate'])
    return Response({'ok': True, **result})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def credit_settle(request, pk: int):
    if not has_role(request.user, FRONT_DESK_ROLES):
        return _forbidden()
    credit = settle_credit(request.user, _get_credit(request.user, pk))
    return Response({'ok': True, 'credit': serialize_document(credit)})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def credits_unconfirmed(request):
    qs = unconfirmed('credit', request.user, request.query_params.get('branch'))
    return Response([serialize_document(c) for c in qs])


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def credit_report_view(request):
    q = DateRangeSerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    organization = request.query_params.get('organization')
    if organization and not organization.isdigit():
        return Response({'detail': 'organization must be an id'}, status=status.HTTP_400_BAD_REQUEST)
    report = credit_report(
        request.user, q.validated_data['startDate'], q.validated_data['endDate'],
        organization_id=int(organization) if organization else None,
        branch=request.query_params.get('branch'),
    )
    return Response(report)
