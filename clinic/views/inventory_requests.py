"""
Requests for stock from the main store into a staff member's personal
stock. Staff see their own requests; inventory managers see and decide
all of them.
"""
from __future__ import annotations

from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import NotFound
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import InventoryRequest
from ..permissions import has_role, INVENTORY_ROLES, IsInventoryManager
from ..serializers.inventory import InventoryRequestSerializer, InventoryRequestUpdateSerializer, RequestApprovalSerializer
from ..services.inventory import create_inventory_request, update_inventory_request, approve_inventory_request
from .stock import serialize_line, line_queryset


def _serialize(r: InventoryRequest, with_items: bool = True) -> dict:
    data = {
        'id': r.id,
        'requestNo': r.request_no,
        'requestedBy': r.requested_by_id,
        'requestedByName': r.requested_by.username,
        'approvalStatus': r.approval_status,
        'totalProducts': r.total_products,
        'totalQuantity': r.total_quantity,
        'notes': r.notes,
        'approvedBy': r.approved_by_id,
        'approvedAt': r.approved_at.isoformat() if r.approved_at else None,
        'createdAt': r.created_at.isoformat() if r.created_at else None,
    }
    if with_items:
        data['items'] = [
            serialize_line(i, requestedQuantity=i.requested_quantity, approvedQuantity=i.approved_quantity)
            for i in line_queryset(r)
        ]
    return data


def _get(user, pk) -> InventoryRequest:
    req = get_object_or_404(InventoryRequest.objects.select_related('requested_by'), pk=pk)
    if req.requested_by_id != user.id and not has_role(user, INVENTORY_ROLES):
        raise NotFound('request not found')
    return req


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def requests_list(request):
    if request.method == 'GET':
        qs = InventoryRequest.objects.select_related('requested_by').order_by('-created_at', '-id')
        if not has_role(request.user, INVENTORY_ROLES) or request.query_params.get('mine') == '1':
            qs = qs.filter(requested_by=request.user)
        if request.query_params.get('status'):
            qs = qs.filter(approval_status=request.query_params['status'].upper())
        return Response([_serialize(r, with_items=False) for r in qs])
    s = InventoryRequestSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    req = create_inventory_request(request.user, items=s.validated_data['items'],
                                   notes=s.validated_data.get('notes', ''))
    return Response(_serialize(req), status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH'])
@permission_classes([IsAuthenticated])
def request_detail(request, pk: int):
    req = _get(request.user, pk)
    if request.method == 'GET':
        return Response(_serialize(req))
    s = InventoryRequestUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    req = update_inventory_request(request.user, req, items=s.validated_data.get('items'),
                                   notes=s.validated_data.get('notes'))
    return Response(_serialize(req))


@api_view(['POST', 'PATCH'])
@permission_classes([IsAuthenticated, IsInventoryManager])
def request_approval(request, pk: int):
    """Approve (optionally with per-item quantities) or reject a pending request."""
    req = get_object_or_404(InventoryRequest, pk=pk)
    s = RequestApprovalSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    req = approve_inventory_request(request.user, req, s.validated_data['status'], s.validated_data.get('items'))
    return Response(_serialize(req))
