"""
Patient health information and free-text notes.

Health records (vital signs and medical background) are written by
clinical staff. Notes may be left by any staff member of the branch but
only their author or an administrator may change them.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import HealthInfo, PatientNote
from ..permissions import has_role, CLINICAL_ROLES
from ..serializers.clinical import HealthInfoSerializer, NoteSerializer
from ..services.audit import log_action
from ..services.findings import serialize_health_info, create_health_info, update_health_info
from ..services.scope import get_scoped_or_404, is_admin
from .patients import get_patient


def _forbidden():
    return Response({'detail': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)


def _note(n: PatientNote) -> dict:
    return {
        'id': n.id,
        'patientId': n.patient_id,
        'text': n.text,
        'createdBy': n.created_by_id,
        'author': n.created_by.username if n.created_by_id else None,
        'createdAt': n.created_at.isoformat(),
        'updatedAt': n.updated_at.isoformat(),
    }


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def patient_health_info(request, pk: int):
    patient = get_patient(request.user, pk)
    if request.method == 'GET':
        qs = patient.health_records.order_by('-created_at', '-id')
        return Response([serialize_health_info(h) for h in qs])
    if not has_role(request.user, CLINICAL_ROLES):
        return _forbidden()
    s = HealthInfoSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    record = create_health_info(request.user, patient, dict(s.validated_data))
    return Response(serialize_health_info(record), status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def health_info_detail(request, pk: int):
    record = get_scoped_or_404(HealthInfo.objects.all(), request.user, pk, 'health record')
    if request.method == 'GET':
        return Response(serialize_health_info(record))
    if not has_role(request.user, CLINICAL_ROLES):
        return _forbidden()
    if request.method == 'DELETE':
        log_action(user=request.user, action='health_info_delete', object_type='health_info', object_id=record.id,
                   detail={'patient': record.patient_id})
        record.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
    s = HealthInfoSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    record = update_health_info(request.user, record, dict(s.validated_data))
    return Response(serialize_health_info(record))


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def patient_notes(request, pk: int):
    patient = get_patient(request.user, pk)
    if request.method == 'GET':
        qs = patient.notes.select_related('created_by').order_by('-created_at', '-id')
        return Response([_note(n) for n in qs])
    s = NoteSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    note = PatientNote.objects.create(
        patient=patient, branch=patient.branch, text=s.validated_data['text'], created_by=request.user
    )
    return Response(_note(note), status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def note_detail(request, pk: int):
    note = get_scoped_or_404(PatientNote.objects.select_related('created_by'), request.user, pk, 'note')
    if request.method == 'GET':
        return Response(_note(note))
    if note.created_by_id != request.user.id and not is_admin(request.user):
        return _forbidden()
    if request.method == 'DELETE':
        note.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
    s = NoteSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    note.text = s.validated_data['text']
    note.save(update_fields=['text', 'updated_at'])
    return Response(_note(note))
