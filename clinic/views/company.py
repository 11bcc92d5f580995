"""
Company letterhead and staff announcements.

Both resources can be read by any authenticated user and changed by
administrators only.
"""
from __future__ import annotations

import bleach
from django.db import transaction
from django.shortcuts import get_object_or_404
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework import serializers, status

from ..models import CompanyProfile, Announcement
from ..permissions import has_role, ADMIN_ROLES


class CompanyProfileSerializer(serializers.Serializer):
    name = serializers.CharField(required=False, allow_blank=True, max_length=160)
    address = serializers.CharField(required=False, allow_blank=True, max_length=255)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=64)
    email = serializers.CharField(required=False, allow_blank=True, max_length=120)
    logoUrl = serializers.CharField(required=False, allow_blank=True, max_length=255, source='logo_url')
    footer = serializers.CharField(required=False, allow_blank=True)


class AnnouncementSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=160)
    text = serializers.CharField(required=False, allow_blank=True)
    active = serializers.BooleanField(required=False)

    def validate_text(self, v):
        return bleach.clean(v, strip=True)


def _profile(p) -> dict:
    if p is None:
        return {'name': '', 'address': '', 'phone': '', 'email': '', 'logoUrl': '', 'footer': ''}
    return {
        'name': p.name, 'address': p.address, 'phone': p.phone, 'email': p.email,
        'logoUrl': p.logo_url, 'footer': p.footer,
    }


def _announcement(a: Announcement) -> dict:
    return {
        'id': a.id, 'title': a.title, 'text': a.text, 'active': a.active,
        'createdBy': a.created_by_id, 'createdAt': a.created_at.isoformat(),
    }


def _forbidden():
    return Response({'detail': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)


@api_view(['GET', 'PUT', 'PATCH'])
@permission_classes([IsAuthenticated])
def company_profile(request):
    """Return the letterhead, or update it (admins)."""
    if request.method == 'GET':
        return Response(_profile(CompanyProfile.objects.first()))
    if not has_role(request.user, ADMIN_ROLES):
        return _forbidden()
    s = CompanyProfileSerializer(data=request.data, partial=request.method == 'PATCH')
    s.is_valid(raise_exception=True)
    with transaction.atomic():
        profile, _ = CompanyProfile.objects.get_or_create(pk=1)
        for field, value in s.validated_data.items():
            setattr(profile, field, value)
        profile.save()
    return Response(_profile(profile))


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def announcements_list(request):
    if request.method == 'GET':
        qs = Announcement.objects.order_by('-created_at', '-id')
        if request.query_params.get('all') != '1':
            qs = qs.filter(active=True)
        return Response([_announcement(a) for a in qs])
    if not has_role(request.user, ADMIN_ROLES):
        return _forbidden()
    s = AnnouncementSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    a = Announcement.objects.create(created_by=request.user, **s.validated_data)
    return Response(_announcement(a), status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def announcement_detail(request, pk: int):
    a = get_object_or_404(Announcement, pk=pk)
    if request.method == 'GET':
        return Response(_announcement(a))
    if not has_role(request.user, ADMIN_ROLES):
        return _forbidden()
    if request.method == 'DELETE':
        a.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
    s = AnnouncementSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    for field, value in s.validated_data.items():
        setattr(a, field, value)
    a.save()
    return Response(_announcement(a))
