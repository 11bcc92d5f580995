"""Medical findings and health records, each with an edit trail."""
import logging

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound

from clinic.models import MedicalFinding, FindingDisease, FindingChange, Disease, HealthInfo, HealthInfoChange

logger = logging.getLogger(__name__)


def _iso(value):
    return value.isoformat() if value else None


def serialize_finding(f: MedicalFinding) -> dict:
    return {
        'id': f.id,
        'patientId': f.patient_id,
        'branchId': f.branch_id,
        'recommendation': f.recommendation,
        'chiefComplaint': f.chief_complaint,
        'dentalHistory': f.dental_history,
        'physicalExamination': f.physical_examination,
        'historyPresent': f.history_present,
        'presentCondition': f.present_condition,
        'drugAllergy': f.drug_allergy,
        'diagnosis': f.diagnosis,
        'intraoralExamination': f.intraoral_examination,
        'extraoralExamination': f.extraoral_examination,
        'investigation': f.investigation,
        'assessment': f.assessment,
        'nextProcedure': f.next_procedure,
        'treatmentPlan': f.treatment_plan,
        'treatmentDone': f.treatment_done,
        'diseases': [{
            'disease': d.disease_id,
            'name': d.disease.name,
            'code': d.disease.code,
            'diseaseTime': _iso(d.diagnosed_at),
        } for d in f.diseases.select_related('disease').order_by('id')],
        'changes': [{'updatedBy': c.updated_by_id, 'updatedAt': _iso(c.updated_at)}
                    for c in f.changes.order_by('updated_at', 'id')],
        'createdBy': f.created_by_id,
        'createdAt': _iso(f.created_at),
        'updatedAt': _iso(f.updated_at),
    }


def _resolve_diseases(entries):
    ids = {e['disease'] for e in entries}
    known = Disease.objects.in_bulk(ids)
    missing = sorted(ids - set(known))
    if missing:
        raise NotFound(f'disease {missing[0]} not found')
    return [(known[e['disease']], e.get('diagnosed_at') or timezone.now()) for e in entries]


def _write_diseases(finding, resolved):
    for disease, when in resolved:
        FindingDisease.objects.create(finding=finding, disease=disease, diagnosed_at=when)


def create_finding(user, patient, data: dict) -> MedicalFinding:
    data = dict(data)
    resolved = _resolve_diseases(data.pop('diseases', None) or [])
    with transaction.atomic():
        finding = MedicalFinding.objects.create(patient=patient, branch=patient.branch, created_by=user, **data)
        _write_diseases(finding, resolved)
    logger.info('finding %s recorded for patient %s', finding.id, patient.id)
    return finding


def update_finding(user, finding: MedicalFinding, data: dict) -> MedicalFinding:
    """Apply ``data``; a ``diseases`` list replaces the diagnoses. Every update is logged in the trail."""
    data = dict(data)
    diseases = data.pop('diseases', None)
    resolved = _resolve_diseases(diseases) if diseases is not None else None
    with transaction.atomic():
        for field, value in data.items():
            setattr(finding, field, value)
        finding.save()
        if resolved is not None:
            finding.diseases.all().delete()
            _write_diseases(finding, resolved)
        FindingChange.objects.create(finding=finding, updated_by=user)
    return finding


def serialize_health_info(h: HealthInfo) -> dict:
    return {
        'id': h.id,
        'patientId': h.patient_id,
        'branchId': h.branch_id,
        'bloodGroup': h.blood_group,
        'weight': h.weight,
        'height': h.height,
        'allergies': h.allergies,
        'habits': h.habits,
        'medication': h.medication,
        'description': h.description,
        'vitals': h.vitals,
        'conditions': h.conditions,
        'changes': [{'updatedBy': c.updated_by_id, 'updatedAt': _iso(c.updated_at)}
                    for c in h.changes.order_by('updated_at', 'id')],
        'createdBy': h.created_by_id,
        'createdAt': _iso(h.created_at),
        'updatedAt': _iso(h.updated_at),
    }


def create_health_info(user, patient, data: dict) -> HealthInfo:
    record = HealthInfo.objects.create(patient=patient, branch=patient.branch, created_by=user, **data)
    logger.info('health info %s recorded for patient %s', record.id, patient.id)
    return record


def update_health_info(user, record: HealthInfo, data: dict) -> HealthInfo:
    """Apply ``data``. ``vitals`` and ``conditions`` are merged into the stored maps."""
    with transaction.atomic():
        for field, value in data.items():
            if field in ('vitals', 'conditions'):
                value = {**getattr(record, field), **value}
            setattr(record, field, value)
        record.save()
        HealthInfoChange.objects.create(record=record, updated_by=user)
    return record
