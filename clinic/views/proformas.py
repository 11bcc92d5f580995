"""
Proforma quotes.

A proforma lists services and prices for a patient before treatment is
agreed. It has no status or payments; raising an invoice is a separate
step at the front desk.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import Proforma
from ..permissions import has_role, FRONT_DESK_ROLES
from ..serializers.billing import ProformaSerializer
from ..services.audit import log_action
from ..services.billing import serialize_proforma, create_proforma, replace_proforma_items
from ..services.scope import get_scoped_or_404
from .patients import get_patient


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def patient_proformas(request, pk: int):
    patient = get_patient(request.user, pk)
    if request.method == 'GET':
        qs = patient.proformas.prefetch_related('items').order_by('-created_at', '-id')
        return Response([serialize_proforma(p) for p in qs])
    s = ProformaSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    proforma = create_proforma(request.user, patient, [dict(i) for i in s.validated_data['items']])
    return Response(serialize_proforma(proforma), status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated])
def proforma_detail(request, pk: int):
    proforma = get_scoped_or_404(Proforma.objects.prefetch_related('items'), request.user, pk, 'proforma')
    if request.method == 'GET':
        return Response(serialize_proforma(proforma))
    if request.method == 'DELETE':
        if not has_role(request.user, FRONT_DESK_ROLES):
            return Response({'detail': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
        log_action(user=request.user, action='proforma_delete', object_type='proforma', object_id=proforma.id,
                   detail={'total': str(proforma.total_amount)})
        proforma.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
    s = ProformaSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    proforma = replace_proforma_items(proforma, [dict(i) for i in s.validated_data['items']])
    return Response(serialize_proforma(proforma))
