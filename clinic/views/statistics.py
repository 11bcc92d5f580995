"""
Statistics and dashboard endpoints.

Payloads are cached for ``STATS_CACHE_SECONDS`` under a key built from
the endpoint, the caller's branch scope and the query parameters.
"""
from __future__ import annotations

from django.conf import settings
from django.core.cache import cache
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..permissions import has_role, ADMIN_ROLES
from ..serializers.billing import DateRangeSerializer, OptionalDateRangeSerializer
from ..services.scope import is_admin
from ..services.statistics import demographics, disease_statistics, service_ranking, branch_summary, front_desk


def _cache_key(name: str, user, **params) -> str:
    scope = 'all' if is_admin(user) else f'b{user.branch_id or 0}'
    parts = ':'.join(f'{k}={params[k] or ""}' for k in sorted(params))
    return f'stats:{name}:{scope}:{parts}'


def _cached(key, build):
    payload = cache.get(key)
    if payload is None:
        payload = build()
        cache.set(key, payload, settings.STATS_CACHE_SECONDS)
    return payload


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def demographics_view(request):
    branch = request.query_params.get('branch')
    key = _cache_key('demographics', request.user, branch=branch)
    return Response(_cached(key, lambda: demographics(request.user, branch)))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def disease_statistics_view(request):
    q = DateRangeSerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    start, end = q.validated_data['startDate'], q.validated_data['endDate']
    key = _cache_key('diseases', request.user, start=start.isoformat(), end=end.isoformat())
    data = _cached(key, lambda: disease_statistics(request.user, start, end))
    return Response({'startDate': start.isoformat(), 'endDate': end.isoformat(), 'data': data})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def service_ranking_view(request):
    q = OptionalDateRangeSerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    try:
        limit = int(request.query_params.get('limit') or 10)
    except ValueError:
        return Response({'detail': 'limit must be a number'}, status=status.HTTP_400_BAD_REQUEST)
    start, end, branch = vd.get('startDate'), vd.get('endDate'), vd.get('branch') or None
    key = _cache_key('services', request.user, start=start and start.isoformat(), end=end and end.isoformat(),
                     branch=branch, limit=limit)
    return Response(_cached(key, lambda: service_ranking(request.user, start, end, branch=branch, limit=limit)))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def branch_summary_view(request):
    if not has_role(request.user, ADMIN_ROLES):
        return Response({'detail': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
    q = OptionalDateRangeSerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    start, end = q.validated_data.get('startDate'), q.validated_data.get('endDate')
    key = _cache_key('branches', request.user, start=start and start.isoformat(), end=end and end.isoformat())
    return Response(_cached(key, lambda: branch_summary(start, end)))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def front_desk_view(request):
    """Today's reception counters; not cached since they change by the minute."""
    return Response(front_desk(request.user, request.query_params.get('branch')))
