import logging
from typing import Optional

from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError
from django.db import transaction
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError as DRFValidation

from clinic.models import Branch

User = get_user_model()
logger = logging.getLogger(__name__)

LOCK_ROLE = 'locked'
PROFILE_FIELDS = ('first_name', 'last_name', 'email', 'phone', 'image', 'position', 'experience')


def _check_password(password: str, user=None) -> None:
    try:
        validate_password(password, user=user)
    except ValidationError as e:
        raise DRFValidation({'password': e.messages})


def _ensure_single_lock_account(role: str, exclude_id: Optional[int] = None) -> None:
    if role != LOCK_ROLE:
        return
    qs = User.objects.filter(role=LOCK_ROLE)
    if exclude_id:
        qs = qs.exclude(id=exclude_id)
    if qs.exists():
        raise DRFValidation({'role': 'A screen lock account already exists'})


def serialize_user(user) -> dict:
    return {
        'id': user.id,
        'username': user.username,
        'name': user.get_full_name() or user.username,
        'firstName': user.first_name,
        'lastName': user.last_name,
        'email': user.email,
        'role': user.role,
        'phone': user.phone,
        'image': user.image,
        'position': user.position,
        'experience': user.experience,
        'branchId': user.branch_id,
        'branchName': user.branch.name if user.branch_id else None,
        'lock': user.lock,
        'deadline': user.deadline.isoformat() if user.deadline else None,
        'isActive': user.is_active,
    }


def create_user(*, username: str, password: str, role: str, branch_id=None, deadline=None, **profile):
    if User.objects.filter(username=username).exists():
        raise DRFValidation({'username': 'Username already taken'})
    _ensure_single_lock_account(role)
    branch = None
    if branch_id:
        branch = Branch.objects.filter(id=branch_id).first()
        if not branch:
            raise NotFound('branch not found')
    fields = {k: v for k, v in profile.items() if k in PROFILE_FIELDS and v is not None}
    candidate = User(username=username, **fields)
    _check_password(password, candidate)
    with transaction.atomic():
        user = User.objects.create_user(
            username=username, password=password, role=role, branch=branch, deadline=deadline,
            **fields,
        )
    logger.info('created user %s role=%s', user.username, role)
    return user


def update_user(user, *, role=None, branch_id=None, deadline=None, lock=None, is_active=None, **profile):
    if role is not None and role != user.role:
        _ensure_single_lock_account(role, exclude_id=user.id)
        user.role = role
    if branch_id is not None:
        if branch_id == 0:
            user.branch = None
        else:
            branch = Branch.objects.filter(id=branch_id).first()
            if not branch:
                raise NotFound('branch not found')
            user.branch = branch
    if deadline is not None:
        user.deadline = deadline
    if lock is not None:
        user.lock = lock
    if is_active is not None:
        user.is_active = is_active
    for field in PROFILE_FIELDS:
        if field in profile and profile[field] is not None:
            setattr(user, field, profile[field])
    user.save()
    return user


def set_password(user, password: str) -> None:
    _check_password(password, user)
    user.set_password(password)
    user.save(update_fields=['password'])


def change_own_password(user, old_password: str, new_password: str) -> None:
    if not user.check_password(old_password):
        raise DRFValidation({'oldPassword': 'Current password is incorrect'})
    set_password(user, new_password)


def verify_system_lock(password: str) -> None:
    """Check ``password`` against the screen lock account.

    Raises NotFound when no lock account is configured and
    PermissionDenied when the password does not match.
    """
    lock_user = User.objects.filter(role=LOCK_ROLE).first()
    if not lock_user:
        raise NotFound('No lock account configured')
    if not lock_user.check_password(password):
        logger.warning('screen unlock rejected')
        raise PermissionDenied('Invalid password')
