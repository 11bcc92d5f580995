"""
Service catalogue and credit organisations.

Prices here seed invoice and credit items; editing a price does not
change documents that were already issued.
"""
from __future__ import annotations

from django.db import IntegrityError, transaction
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import ServiceCategory, Service, Organization, OrgService, Branch
from ..permissions import has_role, ADMIN_ROLES
from ..serializers.billing import (
    ServiceCategorySerializer, ServiceSerializer, OrganizationSerializer, OrgServiceSerializer,
)


def _category(c: ServiceCategory) -> dict:
    return {'id': c.id, 'name': c.name, 'serviceCount': c.services.count()}


def _service(s: Service) -> dict:
    return {
        'id': s.id,
        'name': s.name,
        'description': s.description,
        'price': float(s.price),
        'categoryId': s.category_id,
        'categoryName': s.category.name if s.category_id else None,
    }


def _organization(o: Organization) -> dict:
    return {'id': o.id, 'name': o.name, 'phone': o.phone, 'address': o.address, 'branchId': o.branch_id}


def _org_service(s: OrgService) -> dict:
    return {'id': s.id, 'name': s.name, 'price': float(s.price), 'organizationId': s.organization_id}


def _denied(request):
    if request.method != 'GET' and not has_role(request.user, ADMIN_ROLES):
        return Response({'detail': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
    return None


def _save(obj, duplicate_message):
    try:
        with transaction.atomic():
            obj.save()
    except IntegrityError:
        return Response({'detail': duplicate_message}, status=status.HTTP_400_BAD_REQUEST)
    return None


def _lookup(model, pk, label):
    if pk in (None, ''):
        return None, None
    obj = model.objects.filter(id=pk).first()
    if not obj:
        return None, Response({'detail': f'{label} not found'}, status=status.HTTP_404_NOT_FOUND)
    return obj, None


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def categories_list(request):
    denied = _denied(request)
    if denied:
        return denied
    if request.method == 'GET':
        return Response([_category(c) for c in ServiceCategory.objects.order_by('name')])
    s = ServiceCategorySerializer(data=request.data)
    s.is_valid(raise_exception=True)
    category = ServiceCategory(name=s.validated_data['name'].strip())
    error = _save(category, 'A category with this name already exists')
    return error or Response(_category(category), status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def category_detail(request, pk: int):
    denied = _denied(request)
    if denied:
        return denied
    category = get_object_or_404(ServiceCategory, pk=pk)
    if request.method == 'GET':
        data = _category(category)
        data['services'] = [_service(s) for s in category.services.order_by('name')]
        return Response(data)
    if request.method == 'DELETE':
        category.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
    s = ServiceCategorySerializer(data=request.data)
    s.is_valid(raise_exception=True)
    category.name = s.validated_data['name'].strip()
    error = _save(category, 'A category with this name already exists')
    return error or Response(_category(category))


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def services_list(request):
    denied = _denied(request)
    if denied:
        return denied
    if request.method == 'GET':
        qs = Service.objects.select_related('category').order_by('name')
        category = request.query_params.get('category')
        if category and category.isdigit():
            qs = qs.filter(category_id=int(category))
        return Response([_service(s) for s in qs])
    s = ServiceSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    data = dict(s.validated_data)
    category, error = _lookup(ServiceCategory, data.pop('category_id', None), 'category')
    if error:
        return error
    service = Service.objects.create(category=category, **data)
    return Response(_service(service), status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def service_detail(request, pk: int):
    denied = _denied(request)
    if denied:
        return denied
    service = get_object_or_404(Service.objects.select_related('category'), pk=pk)
    if request.method == 'GET':
        return Response(_service(service))
    if request.method == 'DELETE':
        service.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
    s = ServiceSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    data = dict(s.validated_data)
    if 'category_id' in data:
        service.category, error = _lookup(ServiceCategory, data.pop('category_id'), 'category')
        if error:
            return error
    for field, value in data.items():
        setattr(service, field, value)
    service.save()
    return Response(_service(service))


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def organizations_list(request):
    denied = _denied(request)
    if denied:
        return denied
    if request.method == 'GET':
        return Response([_organization(o) for o in Organization.objects.order_by('name')])
    s = OrganizationSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    data = dict(s.validated_data)
    branch, error = _lookup(Branch, data.pop('branch_id', None), 'branch')
    if error:
        return error
    org = Organization(branch=branch, **data)
    error = _save(org, 'An organization with this name already exists')
    return error or Response(_organization(org), status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def organization_detail(request, pk: int):
    denied = _denied(request)
    if denied:
        return denied
    org = get_object_or_404(Organization, pk=pk)
    if request.method == 'GET':
        data = _organization(org)
        data['services'] = [_org_service(s) for s in org.services.order_by('name')]
        return Response(data)
    if request.method == 'DELETE':
        org.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
    s = OrganizationSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    data = dict(s.validated_data)
    if 'branch_id' in data:
        org.branch, error = _lookup(Branch, data.pop('branch_id'), 'branch')
        if error:
            return error
    for field, value in data.items():
        setattr(org, field, value)
    error = _save(org, 'An organization with this name already exists')
    return error or Response(_organization(org))


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def org_services_list(request):
    denied = _denied(request)
    if denied:
        return denied
    if request.method == 'GET':
        qs = OrgService.objects.order_by('name')
        organization = request.query_params.get('organization')
        if organization and organization.isdigit():
            qs = qs.filter(organization_id=int(organization))
        return Response([_org_service(s) for s in qs])
    s = OrgServiceSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    data = dict(s.validated_data)
    org, error = _lookup(Organization, data.pop('organization_id', None), 'organization')
    if error:
        return error
    service = OrgService.objects.create(organization=org, **data)
    return Response(_org_service(service), status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def org_service_detail(request, pk: int):
    denied = _denied(request)
    if denied:
        return denied
    service = get_object_or_404(OrgService, pk=pk)
    if request.method == 'GET':
        return Response(_org_service(service))
    if request.method == 'DELETE':
        service.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
    s = OrgServiceSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    data = dict(s.validated_data)
    if 'organization_id' in data:
        service.organization, error = _lookup(Organization, data.pop('organization_id'), 'organization')
        if error:
            return error
    for field, value in data.items():
        setattr(service, field, value)
    service.save()
    return Response(_org_service(service))
