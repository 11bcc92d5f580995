"""
Inventory catalogue: categories, suppliers, units, products, batches and
storage locations.

Everyone signed in can browse the catalogue; inventory managers maintain
it. Records still referenced by stock documents cannot be deleted.
"""
from __future__ import annotations

from django.db import IntegrityError, transaction
from django.db.models import ProtectedError, Sum
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import NotFound
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import (
    ProductCategory, SubCategory, Supplier, UnitOfMeasure, Product, ProductUnit, ProductBatch, Location, Branch,
    Stock, LocationItemStock, PersonalStock,
)
from ..permissions import has_role, INVENTORY_ROLES
from ..serializers.inventory import (
    NamedSerializer, SubCategorySerializer, SupplierSerializer, UnitOfMeasureSerializer, LocationSerializer,
    ProductSerializer, ProductUnitSerializer, ProductBatchSerializer,
)


def _category(c):
    return {'id': c.id, 'name': c.name, 'description': c.description}


def _subcategory(s):
    return {'id': s.id, 'name': s.name, 'categoryId': s.category_id}


def _supplier(s):
    return {'id': s.id, 'name': s.name, 'contactPerson': s.contact_person, 'phone': s.phone,
            'email': s.email, 'address': s.address}


def _uom(u):
    return {'id': u.id, 'name': u.name, 'symbol': u.symbol}


def _location(loc):
    return {'id': loc.id, 'name': loc.name, 'description': loc.description, 'branchId': loc.branch_id}


def _product(p):
    return {
        'id': p.id,
        'productCode': p.product_code,
        'name': p.name,
        'description': p.description,
        'categoryId': p.category_id,
        'subCategoryId': p.sub_category_id,
        'createdAt': p.created_at.isoformat() if p.created_at else None,
    }


def _unit(u):
    return {'id': u.id, 'productId': u.product_id, 'name': u.name, 'conversionToBase': u.conversion_to_base,
            'unitOfMeasureId': u.unit_of_measure_id, 'isBase': u.is_base}


def _batch(b):
    return {
        'id': b.id,
        'productId': b.product_id,
        'batchNumber': b.batch_number,
        'manufactureDate': b.manufacture_date.isoformat() if b.manufacture_date else None,
        'expiryDate': b.expiry_date.isoformat() if b.expiry_date else None,
        'warningQuantity': b.warning_quantity,
    }


# field name in validated data -> model the id must point at
FOREIGN_KEYS = {
    'category_id': ProductCategory,
    'sub_category_id': SubCategory,
    'unit_of_measure_id': UnitOfMeasure,
    'branch_id': Branch,
}


def _check_foreign_keys(data: dict) -> None:
    for field, model in FOREIGN_KEYS.items():
        value = data.get(field)
        if value and not model.objects.filter(id=value).exists():
            raise NotFound(f"{field[:-3].replace('_', ' ')} {value} not found")


def _denied(request):
    if request.method != 'GET' and not has_role(request.user, INVENTORY_ROLES):
        return Response({'detail': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
    return None


def _list(request, qs, serializer_class, serialize, **fixed):
    denied = _denied(request)
    if denied:
        return denied
    if request.method == 'GET':
        return Response([serialize(obj) for obj in qs])
    s = serializer_class(data=request.data)
    s.is_valid(raise_exception=True)
    data = dict(s.validated_data)
    _check_foreign_keys(data)
    try:
        with transaction.atomic():
            obj = qs.model.objects.create(**fixed, **data)
    except IntegrityError:
        return Response({'detail': 'A record with this name already exists'}, status=status.HTTP_400_BAD_REQUEST)
    return Response(serialize(obj), status=status.HTTP_201_CREATED)


def _detail(request, obj, serializer_class, serialize):
    denied = _denied(request)
    if denied:
        return denied
    if request.method == 'GET':
        return Response(serialize(obj))
    if request.method == 'DELETE':
        try:
            obj.delete()
        except ProtectedError:
            return Response({'detail': 'Record is in use and cannot be deleted'}, status=status.HTTP_400_BAD_REQUEST)
        return Response(status=status.HTTP_204_NO_CONTENT)
    s = serializer_class(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    data = dict(s.validated_data)
    _check_foreign_keys(data)
    for field, value in data.items():
        setattr(obj, field, value)
    try:
        with transaction.atomic():
            obj.save()
    except IntegrityError:
        return Response({'detail': 'A record with this name already exists'}, status=status.HTTP_400_BAD_REQUEST)
    return Response(serialize(obj))


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def product_categories(request):
    return _list(request, ProductCategory.objects.order_by('name'), NamedSerializer, _category)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def product_category_detail(request, pk: int):
    return _detail(request, get_object_or_404(ProductCategory, pk=pk), NamedSerializer, _category)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def subcategories(request):
    qs = SubCategory.objects.order_by('name')
    category = request.query_params.get('category')
    if category and category.isdigit():
        qs = qs.filter(category_id=int(category))
    return _list(request, qs, SubCategorySerializer, _subcategory)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def subcategory_detail(request, pk: int):
    return _detail(request, get_object_or_404(SubCategory, pk=pk), SubCategorySerializer, _subcategory)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def suppliers(request):
    return _list(request, Supplier.objects.order_by('name'), SupplierSerializer, _supplier)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def supplier_detail(request, pk: int):
    return _detail(request, get_object_or_404(Supplier, pk=pk), SupplierSerializer, _supplier)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def units_of_measure(request):
    return _list(request, UnitOfMeasure.objects.order_by('name'), UnitOfMeasureSerializer, _uom)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def unit_of_measure_detail(request, pk: int):
    return _detail(request, get_object_or_404(UnitOfMeasure, pk=pk), UnitOfMeasureSerializer, _uom)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def locations(request):
    return _list(request, Location.objects.order_by('name'), LocationSerializer, _location)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def location_detail(request, pk: int):
    return _detail(request, get_object_or_404(Location, pk=pk), LocationSerializer, _location)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def products(request):
    qs = Product.objects.order_by('name')
    params = request.query_params
    if params.get('q'):
        qs = qs.filter(name__icontains=params['q']) | qs.filter(product_code__icontains=params['q'])
    if (params.get('category') or '').isdigit():
        qs = qs.filter(category_id=int(params['category']))
    if request.method == 'POST' and Product.objects.filter(product_code=request.data.get('productCode')).exists():
        return Response({'detail': 'A product with this code already exists'}, status=status.HTTP_400_BAD_REQUEST)
    return _list(request, qs, ProductSerializer, _product, created_by=request.user)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def product_detail(request, pk: int):
    """Product with its units, batches and stock totals per batch."""
    product = get_object_or_404(Product, pk=pk)
    if request.method != 'GET':
        return _detail(request, product, ProductSerializer, _product)
    data = _product(product)
    data['units'] = [_unit(u) for u in product.units.order_by('conversion_to_base')]

    def per_batch(model):
        rows = model.objects.filter(product=product).values('batch_id').annotate(q=Sum('quantity'))
        return {row['batch_id']: row['q'] or 0 for row in rows}

    main, located, personal = per_batch(Stock), per_batch(LocationItemStock), per_batch(PersonalStock)
    batches = []
    for b in product.batches.order_by('expiry_date', 'id'):
        row = _batch(b)
        row.update(main=main.get(b.id, 0), location=located.get(b.id, 0), personal=personal.get(b.id, 0))
        row['total'] = row['main'] + row['location'] + row['personal']
        batches.append(row)
    data['batches'] = batches
    data['totals'] = {
        'main': sum(main.values()),
        'location': sum(located.values()),
        'personal': sum(personal.values()),
    }
    data['totals']['total'] = sum(data['totals'].values())
    return Response(data)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def product_units(request, pk: int):
    product = get_object_or_404(Product, pk=pk)
    return _list(request, product.units.order_by('conversion_to_base'), ProductUnitSerializer, _unit,
                 product=product)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def product_unit_detail(request, pk: int):
    return _detail(request, get_object_or_404(ProductUnit, pk=pk), ProductUnitSerializer, _unit)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def product_batches(request, pk: int):
    product = get_object_or_404(Product, pk=pk)
    return _list(request, product.batches.order_by('expiry_date', 'id'), ProductBatchSerializer, _batch,
                 product=product)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def product_batch_detail(request, pk: int):
    return _detail(request, get_object_or_404(ProductBatch, pk=pk), ProductBatchSerializer, _batch)
