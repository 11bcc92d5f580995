"""
Staff account management.

Administrators create, edit, lock and delete accounts. Everyone can read
the doctor directory. The screen lock check is public to authenticated
users so a locked front-end can be reopened by any staff member who
knows the lock password.
"""
from __future__ import annotations

from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import User
from ..permissions import IsAdminRole
from ..serializers.auth import UserCreateSerializer, UserUpdateSerializer, PasswordResetSerializer, LockVerifySerializer
from ..services.audit import log_action
from ..services.users import serialize_user, create_user, update_user, set_password, verify_system_lock


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def users_list(request):
    if request.method == 'GET':
        qs = User.objects.select_related('branch').order_by('username')
        role = request.query_params.get('role')
        if role:
            qs = qs.filter(role=role)
        branch = request.query_params.get('branch')
        if branch:
            qs = qs.filter(branch_id=branch) if branch.isdigit() else qs.filter(branch__isnull=True)
        q = (request.query_params.get('q') or '').strip()
        if q:
            qs = qs.filter(username__icontains=q) | qs.filter(first_name__icontains=q)
        return Response([serialize_user(u) for u in qs])
    s = UserCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    user = create_user(**s.validated_data)
    log_action(user=request.user, action='user_create', object_type='user', object_id=user.id,
               detail={'username': user.username, 'role': user.role})
    return Response(serialize_user(user), status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def user_detail(request, pk: int):
    user = get_object_or_404(User.objects.select_related('branch'), pk=pk)
    if request.method == 'GET':
        return Response(serialize_user(user))
    if request.method == 'DELETE':
        if user.id == request.user.id:
            return Response({'detail': 'You cannot delete your own account'}, status=status.HTTP_400_BAD_REQUEST)
        log_action(user=request.user, action='user_delete', object_type='user', object_id=user.id,
                   detail={'username': user.username})
        user.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
    s = UserUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    update_user(user, **s.validated_data)
    return Response(serialize_user(user))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def user_reset_password(request, pk: int):
    user = get_object_or_404(User, pk=pk)
    s = PasswordResetSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    set_password(user, s.validated_data['password'])
    log_action(user=request.user, action='password_reset', object_type='user', object_id=user.id)
    return Response({'ok': True})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def user_lock(request, pk: int):
    """Lock (``{"lock": true}``) or unlock an account."""
    user = get_object_or_404(User, pk=pk)
    if user.id == request.user.id:
        return Response({'detail': 'You cannot lock your own account'}, status=status.HTTP_400_BAD_REQUEST)
    lock = str(request.data.get('lock', 'true')).lower() in ('1', 'true', 'yes')
    user.lock = lock
    user.save(update_fields=['lock'])
    log_action(user=request.user, action='user_lock', object_type='user', object_id=user.id, detail={'lock': lock})
    return Response(serialize_user(user))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def doctors_list(request):
    qs = User.objects.filter(role='doctor', is_active=True).select_related('branch').order_by('first_name', 'username')
    branch = request.query_params.get('branch')
    if branch and branch.isdigit():
        qs = qs.filter(branch_id=int(branch))
    return Response([{
        'id': u.id,
        'username': u.username,
        'name': u.get_full_name() or u.username,
        'position': u.position,
        'branchId': u.branch_id,
    } for u in qs])


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def system_lock_verify(request):
    s = LockVerifySerializer(data=request.data)
    s.is_valid(raise_exception=True)
    password = s.validated_data['password']
    if not password:
        return Response({'detail': 'Password is required'}, status=status.HTTP_400_BAD_REQUEST)
    verify_system_lock(password)
    return Response({'ok': True})
