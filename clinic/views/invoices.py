"""
Invoice views.

Any staff member of the branch may raise an invoice for a patient;
confirming the payment is a reception task.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import Invoice
from ..permissions import has_role, FRONT_DESK_ROLES
from ..serializers.billing import (
    DocumentCreateSerializer, DocumentUpdateSerializer, PaymentConfirmSerializer, DateRangeSerializer,
)
from ..services.audit import log_action
from ..services.billing import (
    serialize_document, serialize_history, create_document, update_document, confirm_payment,
    unconfirmed, payment_report,
)
from ..services.scope import get_scoped_or_404
from .patients import get_patient


def _items(validated):
    return [dict(i) for i in validated]


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def patient_invoices(request, pk: int):
    patient = get_patient(request.user, pk)
    if request.method == 'GET':
        qs = patient.invoices.prefetch_related('items').order_by('-created_at', '-id')
        return Response({
            'patient': {'id': patient.id, 'name': patient.first_name, 'cardNo': patient.card_no},
            'cards': [{'id': c.id, 'price': float(c.price), 'createdAt': c.created_at.isoformat()}
                      for c in patient.cards.order_by('-created_at')],
            'invoices': [serialize_document(i) for i in qs],
        })
    s = DocumentCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    invoice = create_document(
        'invoice', request.user, patient,
        items=_items(vd['items']), status=vd['status'], current_payment=vd['current_payment'],
    )
    return Response(serialize_document(invoice), status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def invoice_detail(request, pk: int):
    invoice = get_scoped_or_404(Invoice.objects.prefetch_related('items'), request.user, pk, 'invoice')
    if request.method == 'GET':
        data = serialize_document(invoice)
        data['payments'] = [serialize_history(h) for h in invoice.payments.order_by('-created_at')]
        return Response(data)
    if request.method == 'DELETE':
        if not has_role(request.user, FRONT_DESK_ROLES):
            return Response({'detail': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
        log_action(user=request.user, action='invoice_delete', object_type='invoice', object_id=invoice.id,
                   detail={'total': str(invoice.total_amount), 'paid': str(invoice.total_paid)})
        invoice.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
    s = DocumentUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    invoice = update_document(
        'invoice', invoice,
        items=_items(vd['items']) if 'items' in vd else None,
        status=vd.get('status'),
        current_payment=vd.get('current_payment'),
    )
    return Response(serialize_document(invoice))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def invoice_confirm(request, pk: int):
    if not has_role(request.user, FRONT_DESK_ROLES):
        return Response({'detail': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
    get_scoped_or_404(Invoice.objects.all(), request.user, pk, 'invoice')
    s = PaymentConfirmSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    invoice, history = confirm_payment(
        'invoice', request.user, pk, amount=s.validated_data.get('amount'), receipt=s.validated_data['receipt'],
    )
    return Response({'ok': True, 'invoice': serialize_document(invoice), 'payment': serialize_history(history)})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def invoices_unconfirmed(request):
    qs = unconfirmed('invoice', request.user, request.query_params.get('branch'))
    return Response([serialize_document(i) for i in qs])


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def payment_report_view(request):
    """Confirmed payments between ``startDate`` and ``endDate``.

    ``source`` narrows the report to invoice, credit or advance payments.
    """
    q = DateRangeSerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    source = request.query_params.get('source') or None
    if source and source not in ('invoice', 'credit', 'advance'):
        return Response({'detail': 'source must be invoice, credit or advance'}, status=status.HTTP_400_BAD_REQUEST)
    report = payment_report(
        request.user, q.validated_data['startDate'], q.validated_data['endDate'],
        source=source, branch=request.query_params.get('branch'),
    )
    return Response(report)
