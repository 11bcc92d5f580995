"""
Branch isolation helpers shared by the views.

Administrators work across branches and may narrow a listing with
``?branch=<id>``; everyone else is pinned to their own branch.
"""
from typing import Optional

from rest_framework.exceptions import NotFound, ValidationError

from clinic.models import Branch
from clinic.permissions import has_role, ADMIN_ROLES


def is_admin(user) -> bool:
    return has_role(user, ADMIN_ROLES)


def branch_filter(qs, user, requested: Optional[str] = None, field: str = 'branch'):
    """Restrict ``qs`` to the branches ``user`` may see."""
    if is_admin(user):
        if requested in (None, ''):
            return qs
        if requested == 'no-branch':
            return qs.filter(**{f'{field}__isnull': True})
        try:
            branch_id = int(requested)
        except (TypeError, ValueError):
            raise ValidationError({'branch': 'Invalid branch id'})
        return qs.filter(**{f'{field}_id': branch_id})
    if not user.branch_id:
        return qs.filter(**{f'{field}__isnull': True})
    return qs.filter(**{f'{field}_id': user.branch_id})


def get_scoped_or_404(qs, user, pk, label: str = 'record'):
    """Fetch ``pk`` from ``qs`` honouring branch isolation.

    Records of other branches are reported as missing.
    """
    obj = qs.filter(pk=pk).first()
    if obj is None:
        raise NotFound(f'{label} not found')
    if is_admin(user):
        return obj
    if getattr(obj, 'branch_id', None) != user.branch_id:
        raise NotFound(f'{label} not found')
    return obj


def resolve_branch(user, branch_id=None) -> Optional[Branch]:
    """Branch new records are stamped with."""
    if is_admin(user) and branch_id:
        branch = Branch.objects.filter(id=branch_id).first()
        if not branch:
            raise NotFound('branch not found')
        return branch
    return user.branch
