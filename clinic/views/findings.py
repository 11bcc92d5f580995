"""
Clinical examination records and the disease catalogue.

Findings are written by clinical staff; anyone in the branch may read
them. Diseases referenced by a finding cannot be deleted. The procedure
catalogue is maintained by administrators.
"""
from __future__ import annotations

from django.db import IntegrityError, transaction
from django.db.models import ProtectedError
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import MedicalFinding, Disease, Procedure
from ..permissions import has_role, CLINICAL_ROLES, ADMIN_ROLES
from ..serializers.clinical import MedicalFindingSerializer, DiseaseSerializer, ProcedureSerializer
from ..services.audit import log_action
from ..services.findings import serialize_finding, create_finding, update_finding
from ..services.scope import get_scoped_or_404
from .patients import get_patient


def _forbidden():
    return Response({'detail': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)


def _disease(d: Disease) -> dict:
    return {'id': d.id, 'name': d.name, 'code': d.code}


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def patient_findings(request, pk: int):
    patient = get_patient(request.user, pk)
    if request.method == 'GET':
        qs = patient.findings.order_by('-created_at', '-id')
        return Response([serialize_finding(f) for f in qs])
    if not has_role(request.user, CLINICAL_ROLES):
        return _forbidden()
    s = MedicalFindingSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    finding = create_finding(request.user, patient, s.validated_data)
    return Response(serialize_finding(finding), status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def finding_detail(request, pk: int):
    finding = get_scoped_or_404(MedicalFinding.objects.all(), request.user, pk, 'finding')
    if request.method == 'GET':
        return Response(serialize_finding(finding))
    if not has_role(request.user, CLINICAL_ROLES):
        return _forbidden()
    if request.method == 'DELETE':
        log_action(user=request.user, action='finding_delete', object_type='finding', object_id=finding.id,
                   detail={'patient': finding.patient_id})
        finding.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
    s = MedicalFindingSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    finding = update_finding(request.user, finding, s.validated_data)
    return Response(serialize_finding(finding))


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def diseases_list(request):
    if request.method == 'GET':
        qs = Disease.objects.order_by('name')
        q = request.query_params.get('q')
        if q:
            qs = qs.filter(name__icontains=q)
        return Response([_disease(d) for d in qs])
    if not has_role(request.user, CLINICAL_ROLES):
        return _forbidden()
    s = DiseaseSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    try:
        with transaction.atomic():
            disease = Disease.objects.create(**s.validated_data)
    except IntegrityError:
        return Response({'detail': 'A disease with this name already exists'}, status=status.HTTP_400_BAD_REQUEST)
    return Response(_disease(disease), status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def disease_detail(request, pk: int):
    disease = get_object_or_404(Disease, pk=pk)
    if request.method == 'GET':
        return Response(_disease(disease))
    if request.method == 'DELETE':
        if not has_role(request.user, ADMIN_ROLES):
            return _forbidden()
        try:
            disease.delete()
        except ProtectedError:
            return Response({'detail': 'Disease is referenced by medical findings'},
                            status=status.HTTP_400_BAD_REQUEST)
        return Response(status=status.HTTP_204_NO_CONTENT)
    if not has_role(request.user, CLINICAL_ROLES):
        return _forbidden()
    s = DiseaseSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    for field, value in s.validated_data.items():
        setattr(disease, field, value)
    try:
        with transaction.atomic():
            disease.save()
    except IntegrityError:
        return Response({'detail': 'A disease with this name already exists'}, status=status.HTTP_400_BAD_REQUEST)
    return Response(_disease(disease))


def _procedure(p: Procedure) -> dict:
    return {'id': p.id, 'title': p.title, 'description': p.description, 'createdAt': p.created_at.isoformat()}


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def procedures_list(request):
    if request.method == 'GET':
        return Response([_procedure(p) for p in Procedure.objects.order_by('-created_at', '-id')])
    if not has_role(request.user, ADMIN_ROLES):
        return _forbidden()
    s = ProcedureSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    try:
        with transaction.atomic():
            procedure = Procedure.objects.create(**s.validated_data)
    except IntegrityError:
        return Response({'detail': 'A procedure with this title already exists'}, status=status.HTTP_400_BAD_REQUEST)
    return Response(_procedure(procedure), status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def procedure_detail(request, pk: int):
    procedure = get_object_or_404(Procedure, pk=pk)
    if request.method == 'GET':
        return Response(_procedure(procedure))
    if not has_role(request.user, ADMIN_ROLES):
        return _forbidden()
    if request.method == 'DELETE':
        procedure.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
    s = ProcedureSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    for field, value in s.validated_data.items():
        setattr(procedure, field, value)
    try:
        with transaction.atomic():
            procedure.save()
    except IntegrityError:
        return Response({'detail': 'A procedure with this title already exists'}, status=status.HTTP_400_BAD_REQUEST)
    return Response(_procedure(procedure))
