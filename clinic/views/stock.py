"""
Stock positions, ledger and inventory dashboard.

Quantities are reported in base units.
"""
from __future__ import annotations

from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import Stock, PersonalStock, Location, User
from ..pagination import paginate
from ..permissions import has_role, INVENTORY_ROLES
from ..serializers.inventory import LedgerQuerySerializer
from ..services.inventory import dashboard, low_stock, stock_overview, ledger_queryset, expiring_batches


def _position(row, **extra) -> dict:
    data = {
        'id': row.id,
        'productId': row.product_id,
        'productName': row.product.name,
        'batchId': row.batch_id,
        'batchNumber': row.batch.batch_number,
        'expiryDate': row.batch.expiry_date.isoformat() if row.batch.expiry_date else None,
        'quantity': row.quantity,
        'status': row.status,
        'lastUpdated': row.last_updated.isoformat() if row.last_updated else None,
    }
    data.update(extra)
    return data


def _ledger(e) -> dict:
    return {
        'id': e.id,
        'productId': e.product_id,
        'productName': e.product.name,
        'batchId': e.batch_id,
        'batchNumber': e.batch.batch_number if e.batch_id else None,
        'stockType': e.stock_type,
        'movementType': e.movement_type,
        'quantity': e.quantity,
        'productUnit': e.product_unit_id,
        'originalQuantity': e.original_quantity,
        'reference': e.reference,
        'userId': e.user_id,
        'locationId': e.location_id,
        'notes': e.notes,
        'createdBy': e.created_by_id,
        'movementDate': e.movement_date.isoformat(),
    }


def _forbidden():
    return Response({'detail': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def main_stock(request):
    qs = Stock.objects.select_related('product', 'batch').order_by('product__name', 'batch__expiry_date')
    if (request.query_params.get('product') or '').isdigit():
        qs = qs.filter(product_id=int(request.query_params['product']))
    if request.query_params.get('available') == '1':
        qs = qs.filter(quantity__gt=0)
    return Response([_position(s, originalQuantity=s.original_quantity) for s in qs])


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def location_stock(request, pk: int):
    location = get_object_or_404(Location, pk=pk)
    qs = location.stocks.select_related('product', 'batch').order_by('product__name')
    return Response({
        'location': {'id': location.id, 'name': location.name},
        'data': [_position(s, locationId=location.id) for s in qs],
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def personal_stock(request):
    """The caller's personal stock; inventory managers may pass ``user``."""
    holder = request.user
    requested = request.query_params.get('user')
    if requested and str(requested) != str(request.user.id):
        if not has_role(request.user, INVENTORY_ROLES):
            return _forbidden()
        holder = get_object_or_404(User, pk=requested)
    qs = (PersonalStock.objects.select_related('product', 'batch')
          .filter(user=holder).order_by('product__name'))
    return Response([_position(s, userId=holder.id) for s in qs])


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def ledger(request):
    if not has_role(request.user, INVENTORY_ROLES):
        return _forbidden()
    q = LedgerQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    qs = ledger_queryset(
        product=vd.get('product'), batch=vd.get('batch'), stock_type=vd.get('stockType'),
        movement_type=vd.get('movementType'), start=vd.get('startDate'), end=vd.get('endDate'),
    )
    rows, meta = paginate(qs, vd.get('page'), vd.get('pageSize'), default_size=100)
    return Response({'ok': True, 'data': [_ledger(e) for e in rows], 'pagination': meta})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def overview(request):
    product = request.query_params.get('product')
    if product and not product.isdigit():
        return Response({'detail': 'product must be an id'}, status=status.HTTP_400_BAD_REQUEST)
    return Response(stock_overview(int(product) if product else None))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def inventory_dashboard(request):
    if not has_role(request.user, INVENTORY_ROLES):
        return _forbidden()
    return Response(dashboard())


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def low_stock_view(request):
    threshold = request.query_params.get('threshold')
    if threshold and not threshold.isdigit():
        return Response({'detail': 'threshold must be a number'}, status=status.HTTP_400_BAD_REQUEST)
    return Response(low_stock(int(threshold) if threshold else None))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def expiring_view(request):
    days = request.query_params.get('days')
    if days and not days.isdigit():
        return Response({'detail': 'days must be a number'}, status=status.HTTP_400_BAD_REQUEST)
    return Response(expiring_batches(int(days) if days else None))


def serialize_line(item, **extra) -> dict:
    """One product line of a purchase, request, withdrawal, transfer or correction."""
    data = {
        'id': item.id,
        'product': item.product_id,
        'productName': item.product.name,
        'batch': item.batch_id,
        'batchNumber': item.batch.batch_number,
        'productUnit': item.product_unit_id,
        'unitName': item.product_unit.name,
        'conversionToBase': item.product_unit.conversion_to_base,
    }
    data.update(extra)
    return data


def line_queryset(doc):
    return doc.items.select_related('product', 'batch', 'product_unit').order_by('id')
