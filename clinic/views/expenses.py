from __future__ import annotations

from django.db.models import Sum
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import Expense
from ..permissions import has_role, FRONT_DESK_ROLES, ADMIN_ROLES
from ..serializers.billing import ExpenseSerializer, DateRangeSerializer, OptionalDateRangeSerializer
from ..services.audit import log_action
from ..services.billing import financial_summary
from ..services.scope import branch_filter, get_scoped_or_404, resolve_branch


def _serialize(e: Expense) -> dict:
    return {
        'id': e.id,
        'description': e.description,
        'category': e.category,
        'amount': float(e.amount),
        'expenseDate': e.expense_date.isoformat(),
        'branchId': e.branch_id,
        'createdBy': e.created_by_id,
        'createdAt': e.created_at.isoformat() if e.created_at else None,
    }


def _forbidden():
    return Response({'detail': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def expenses_list(request):
    if not has_role(request.user, FRONT_DESK_ROLES):
        return _forbidden()
    if request.method == 'GET':
        qs = branch_filter(Expense.objects.all(), request.user, request.query_params.get('branch'))
        return Response([_serialize(e) for e in qs.order_by('-expense_date', '-id')])
    s = ExpenseSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    expense = Expense.objects.create(
        branch=resolve_branch(request.user, request.data.get('branchId')),
        created_by=request.user,
        **s.validated_data,
    )
    return Response(_serialize(expense), status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def expense_detail(request, pk: int):
    if not has_role(request.user, FRONT_DESK_ROLES):
        return _forbidden()
    expense = get_scoped_or_404(Expense.objects.all(), request.user, pk, 'expense')
    if request.method == 'GET':
        return Response(_serialize(expense))
    if request.method == 'DELETE':
        log_action(user=request.user, action='expense_delete', object_type='expense', object_id=expense.id,
                   detail={'amount': str(expense.amount)})
        expense.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
    s = ExpenseSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    for field, value in s.validated_data.items():
        setattr(expense, field, value)
    expense.save()
    return Response(_serialize(expense))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def expense_report(request):
    if not has_role(request.user, FRONT_DESK_ROLES):
        return _forbidden()
    q = DateRangeSerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    qs = branch_filter(Expense.objects.all(), request.user, request.query_params.get('branch'))
    qs = qs.filter(expense_date__gte=q.validated_data['startDate'], expense_date__lte=q.validated_data['endDate'])
    by_category = (qs.values('category').annotate(total=Sum('amount')).order_by('category'))
    total = qs.aggregate(total=Sum('amount'))['total'] or 0
    return Response({
        'expenses': [_serialize(e) for e in qs.order_by('-expense_date', '-id')],
        'byCategory': [{'category': row['category'], 'total': float(row['total'])} for row in by_category],
        'total': float(total),
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def financial_summary_view(request):
    """Payments plus card fees minus expenses, optionally for a date range."""
    if not has_role(request.user, ADMIN_ROLES):
        return _forbidden()
    q = OptionalDateRangeSerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    return Response(financial_summary(
        request.user, vd.get('startDate'), vd.get('endDate'), branch=vd.get('branch') or None,
    ))
