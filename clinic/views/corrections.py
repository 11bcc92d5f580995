from __future__ import annotations

from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import NotFound
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import ManualStockCorrection, Location, User
from ..permissions import IsInventoryManager
from ..serializers.inventory import CorrectionSerializer, CorrectionUpdateSerializer
from ..services.audit import log_action
from ..services.inventory import create_correction, update_correction, delete_correction
from .stock import serialize_line, line_queryset


def _serialize(c: ManualStockCorrection, with_items: bool = True) -> dict:
    data = {
        'id': c.id,
        'reference': c.reference,
        'reason': c.reason,
        'status': c.status,
        'stock': c.stock,
        'locationId': c.location_id,
        'holderId': c.holder_id,
        'notes': c.notes,
        'createdBy': c.created_by_id,
        'approvedBy': c.approved_by_id,
        'approvedAt': c.approved_at.isoformat() if c.approved_at else None,
        'createdAt': c.created_at.isoformat() if c.created_at else None,
    }
    if with_items:
        data['items'] = [serialize_line(i, quantity=i.quantity, notes=i.notes) for i in line_queryset(c)]
    return data


def _lookup(model, pk, label):
    if not pk:
        return None
    obj = model.objects.filter(pk=pk).first()
    if obj is None:
        raise NotFound(f'{label} not found')
    return obj


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsInventoryManager])
def corrections_list(request):
    if request.method == 'GET':
        qs = ManualStockCorrection.objects.order_by('-created_at', '-id')
        if request.query_params.get('status'):
            qs = qs.filter(status=request.query_params['status'].upper())
        return Response([_serialize(c, with_items=False) for c in qs])
    s = CorrectionSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    correction = create_correction(
        request.user,
        reference=vd['reference'], reason=vd['reason'], stock=vd['stock'], items=vd['items'],
        location=_lookup(Location, vd.get('locationId'), 'location'),
        holder=_lookup(User, vd.get('holderId'), 'holder'),
        notes=vd.get('notes', ''),
    )
    return Response(_serialize(correction), status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsInventoryManager])
def correction_detail(request, pk: int):
    """Read, edit, decide or delete a correction; only pending ones can change."""
    correction = get_object_or_404(ManualStockCorrection, pk=pk)
    if request.method == 'GET':
        return Response(_serialize(correction))
    if request.method == 'DELETE':
        delete_correction(correction)
        log_action(user=request.user, action='stock_correction_delete', object_type='stock_correction',
                   object_id=pk, detail={'reference': correction.reference})
        return Response(status=status.HTTP_204_NO_CONTENT)
    s = CorrectionUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    correction = update_correction(
        request.user, correction,
        status=vd.get('status'), reason=vd.get('reason'), notes=vd.get('notes'), items=vd.get('items'),
    )
    return Response(_serialize(correction))
