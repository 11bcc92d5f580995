from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import AuditEvent
from ..pagination import paginate
from ..permissions import IsAdminRole


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def audit_events(request):
    qs = AuditEvent.objects.select_related('user').order_by('-created_at', '-id')
    action = request.query_params.get('action')
    if action:
        qs = qs.filter(action=action)
    object_type = request.query_params.get('objectType')
    if object_type:
        qs = qs.filter(object_type=object_type)
    try:
        page = int(request.query_params.get('page') or 1)
        page_size = int(request.query_params.get('pageSize') or 50)
    except ValueError:
        return Response({'ok': False, 'detail': 'Invalid pagination parameters'}, status=400)
    rows, meta = paginate(qs, page, page_size)
    return Response({'ok': True, 'data': [{
        'id': e.id,
        'userId': e.user_id,
        'username': e.user.username if e.user_id else None,
        'action': e.action,
        'objectType': e.object_type,
        'objectId': e.object_id,
        'detail': e.detail,
        'createdAt': e.created_at.isoformat(),
    } for e in rows], 'pagination': meta})
