from __future__ import annotations

from django.db import IntegrityError, transaction
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import Branch, User
from ..permissions import has_role, ADMIN_ROLES
from ..serializers.auth import BranchSerializer


def _serialize(b: Branch) -> dict:
    return {
        'id': b.id,
        'name': b.name,
        'location': b.location,
        'phone': b.phone,
        'managerId': b.manager_id,
        'managerName': (b.manager.get_full_name() or b.manager.username) if b.manager_id else None,
        'createdAt': b.created_at.isoformat() if b.created_at else None,
    }


def _apply(branch: Branch, data: dict):
    manager_id = data.pop('manager_id', None)
    if manager_id:
        manager = User.objects.filter(id=manager_id).first()
        if not manager:
            return Response({'detail': 'manager not found'}, status=status.HTTP_404_NOT_FOUND)
        branch.manager = manager
    for field, value in data.items():
        setattr(branch, field, value)
    try:
        with transaction.atomic():
            branch.save()
    except IntegrityError:
        return Response({'detail': 'A branch with this name already exists'}, status=status.HTTP_400_BAD_REQUEST)
    return None


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def branches_list(request):
    if request.method == 'GET':
        return Response([_serialize(b) for b in Branch.objects.select_related('manager').order_by('name')])
    if not has_role(request.user, ADMIN_ROLES):
        return Response({'detail': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
    s = BranchSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    branch = Branch()
    error = _apply(branch, dict(s.validated_data))
    if error:
        return error
    return Response(_serialize(branch), status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def branch_detail(request, pk: int):
    branch = get_object_or_404(Branch.objects.select_related('manager'), pk=pk)
    if request.method == 'GET':
        return Response(_serialize(branch))
    if not has_role(request.user, ADMIN_ROLES):
        return Response({'detail': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
    if request.method == 'DELETE':
        branch.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
    s = BranchSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    error = _apply(branch, dict(s.validated_data))
    if error:
        return error
    return Response(_serialize(branch))
