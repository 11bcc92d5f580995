from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from django.shortcuts import get_object_or_404

from ..models import Purchase
from ..permissions import IsInventoryManager
from ..serializers.inventory import PurchaseSerializer, PurchaseUpdateSerializer, StatusSerializer
from ..services.audit import log_action
from ..services.inventory import create_purchase, update_purchase, delete_purchase, set_purchase_status
from .stock import serialize_line, line_queryset


def _serialize(p: Purchase, with_items: bool = True) -> dict:
    data = {
        'id': p.id,
        'invoiceNo': p.invoice_no,
        'supplier': p.supplier_id,
        'supplierName': p.supplier.name,
        'approvalStatus': p.approval_status,
        'totalProducts': p.total_products,
        'totalQuantity': p.total_quantity,
        'total': float(p.total),
        'notes': p.notes,
        'purchaseDate': p.purchase_date.isoformat(),
        'createdBy': p.created_by_id,
        'approvedAt': p.approved_at.isoformat() if p.approved_at else None,
        'createdAt': p.created_at.isoformat() if p.created_at else None,
    }
    if with_items:
        data['items'] = [
            serialize_line(i, quantity=i.quantity, unitPrice=float(i.unit_price), totalPrice=float(i.total_price))
            for i in line_queryset(p)
        ]
    return data


def _get(pk) -> Purchase:
    return get_object_or_404(Purchase.objects.select_related('supplier'), pk=pk)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsInventoryManager])
def purchases_list(request):
    if request.method == 'GET':
        qs = Purchase.objects.select_related('supplier').order_by('-purchase_date', '-id')
        status_filter = request.query_params.get('status')
        if status_filter:
            qs = qs.filter(approval_status=status_filter.upper())
        if (request.query_params.get('supplier') or '').isdigit():
            qs = qs.filter(supplier_id=int(request.query_params['supplier']))
        return Response([_serialize(p, with_items=False) for p in qs])
    s = PurchaseSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    purchase = create_purchase(
        request.user, invoice_no=vd['invoiceNo'], supplier_id=vd['supplier'], items=vd['items'],
        notes=vd.get('notes', ''), purchase_date=vd.get('purchaseDate'),
    )
    return Response(_serialize(_get(purchase.pk)), status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsInventoryManager])
def purchase_detail(request, pk: int):
    purchase = _get(pk)
    if request.method == 'GET':
        return Response(_serialize(purchase))
    if request.method == 'DELETE':
        delete_purchase(purchase)
        log_action(user=request.user, action='purchase_delete', object_type='purchase', object_id=pk,
                   detail={'invoiceNo': purchase.invoice_no})
        return Response(status=status.HTTP_204_NO_CONTENT)
    s = PurchaseUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    update_purchase(request.user, purchase, supplier_id=vd.get('supplier'), items=vd.get('items'),
                    notes=vd.get('notes'))
    return Response(_serialize(_get(pk)))


@api_view(['POST', 'PATCH'])
@permission_classes([IsAuthenticated, IsInventoryManager])
def purchase_status(request, pk: int):
    """Approve or reject a pending purchase."""
    purchase = _get(pk)
    s = StatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    set_purchase_status(request.user, purchase, s.validated_data['status'])
    return Response(_serialize(_get(pk)))
