"""
Personal withdrawals and stock transfers.

A withdrawal consumes a staff member's personal stock once it is
issued; a transfer moves stock between the main store and treatment
locations.
"""
from __future__ import annotations

from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import NotFound
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import InventoryWithdrawalRequest, StockWithdrawalRequest
from ..permissions import has_role, INVENTORY_ROLES, IsInventoryManager
from ..serializers.inventory import InventoryRequestSerializer, StatusSerializer, StockWithdrawalSerializer
from ..services.inventory import (
    create_withdrawal, change_withdrawal_status, create_stock_withdrawal, change_stock_withdrawal_status,
)
from .stock import serialize_line, line_queryset


def _iso(value):
    return value.isoformat() if value else None


def _withdrawal(w: InventoryWithdrawalRequest, with_items: bool = True) -> dict:
    data = {
        'id': w.id,
        'user': w.user_id,
        'userName': w.user.username,
        'status': w.status,
        'notes': w.notes,
        'approvedBy': w.approved_by_id,
        'requestedAt': _iso(w.requested_at),
        'approvedAt': _iso(w.approved_at),
        'issuedAt': _iso(w.issued_at),
        'returnedAt': _iso(w.returned_at),
    }
    if with_items:
        data['items'] = [
            serialize_line(i, requestedQuantity=i.requested_quantity, personalStock=i.personal_stock_id)
            for i in line_queryset(w)
        ]
    return data


def _transfer(t: StockWithdrawalRequest, with_items: bool = True) -> dict:
    data = {
        'id': t.id,
        'reference': t.reference,
        'user': t.user_id,
        'kind': t.kind,
        'status': t.status,
        'notes': t.notes,
        'issuedBy': t.issued_by_id,
        'issuedAt': _iso(t.issued_at),
        'createdAt': _iso(t.created_at),
    }
    if with_items:
        data['items'] = [
            serialize_line(i, requestedQuantity=i.requested_quantity,
                           fromLocation=i.from_location_id, toLocation=i.to_location_id)
            for i in line_queryset(t)
        ]
    return data


def _get_withdrawal(user, pk) -> InventoryWithdrawalRequest:
    w = get_object_or_404(InventoryWithdrawalRequest.objects.select_related('user'), pk=pk)
    if w.user_id != user.id and not has_role(user, INVENTORY_ROLES):
        raise NotFound('withdrawal not found')
    return w


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def withdrawals_list(request):
    if request.method == 'GET':
        qs = InventoryWithdrawalRequest.objects.select_related('user').order_by('-requested_at', '-id')
        if not has_role(request.user, INVENTORY_ROLES) or request.query_params.get('mine') == '1':
            qs = qs.filter(user=request.user)
        if request.query_params.get('status'):
            qs = qs.filter(status=request.query_params['status'].upper())
        return Response([_withdrawal(w, with_items=False) for w in qs])
    s = InventoryRequestSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    w = create_withdrawal(request.user, items=s.validated_data['items'], notes=s.validated_data.get('notes', ''))
    return Response(_withdrawal(w), status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def withdrawal_detail(request, pk: int):
    return Response(_withdrawal(_get_withdrawal(request.user, pk)))


@api_view(['POST', 'PATCH'])
@permission_classes([IsAuthenticated, IsInventoryManager])
def withdrawal_status(request, pk: int):
    w = get_object_or_404(InventoryWithdrawalRequest, pk=pk)
    s = StatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    w = change_withdrawal_status(request.user, w, s.validated_data['status'])
    return Response(_withdrawal(w))


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsInventoryManager])
def transfers_list(request):
    if request.method == 'GET':
        qs = StockWithdrawalRequest.objects.order_by('-created_at', '-id')
        if request.query_params.get('status'):
            qs = qs.filter(status=request.query_params['status'].upper())
        if request.query_params.get('kind'):
            qs = qs.filter(kind=request.query_params['kind'].upper())
        return Response([_transfer(t, with_items=False) for t in qs])
    s = StockWithdrawalSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    t = create_stock_withdrawal(request.user, kind=vd['kind'], items=vd['items'], notes=vd.get('notes', ''))
    return Response(_transfer(t), status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsInventoryManager])
def transfer_detail(request, pk: int):
    return Response(_transfer(get_object_or_404(StockWithdrawalRequest, pk=pk)))


@api_view(['POST', 'PATCH'])
@permission_classes([IsAuthenticated, IsInventoryManager])
def transfer_status(request, pk: int):
    t = get_object_or_404(StockWithdrawalRequest, pk=pk)
    s = StatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    t = change_stock_withdrawal_status(request.user, t, s.validated_data['status'])
    return Response(_transfer(t))
