import bleach
from rest_framework import serializers

CHIEF_COMPLAINT_OPTIONS = {
    'None', 'ImproveMySmile', 'CrookedTeeth', 'Crowding', 'Spacing', 'Crown', 'Overbite',
    'Underbite', 'Deepbite', 'Crossbite', 'ImpactedTeeth',
}

DENTAL_HISTORY_OPTIONS = {
    'None', 'PreviousOrthodonticTreatment', 'MissingTooth', 'UnderSizedTooth', 'Attrition', 'ImpactedTooth',
}

GENERAL_TREATMENTS = {
    'Extraction', 'Scaling', 'Rootcanal', 'Filling', 'Bridge', 'Crown', 'Apecectomy',
    'Fixedorthodonticappliance', 'Removableorthodonticappliance', 'Removabledenture', 'Splinting',
}

TREATMENT_GROUPS = {
    'Restorative': {
        'AmalgamFilling', 'CompositeFilling', 'GlassIonomer', 'TemporaryFilling', 'CrownPreparation',
        'CrownCementation', 'VeneerPlacement', 'CoreBuildUp', 'OnlayInlay', 'ToothRecontouring',
    },
    'Endodontic': {
        'RootCanalTreatment', 'ReRootCanalTreatment', 'PulpCappingDirect', 'PulpCappingIndirect', 'Pulpectomy',
        'Pulpotomy', 'Apexification', 'Apicoectomy', 'RootCanalPost',
    },
    'ImplantMaxillofacial': {
        'ImplantPlacement', 'BoneGraft', 'RidgeAugmentation', 'SinusLift', 'SoftTissueGraft', 'ImplantExposure',
        'ImplantCrownDelivery', 'MaxillofacialFractureRepair', 'TMJDisorderManagement',
    },
    'CosmeticAesthetic': {
        'TeethWhiteningOffice', 'TeethWhiteningHomeKit', 'CompositeBonding', 'DiastemaClosure', 'VeneerPorcelain',
        'SmileMakeover', 'GumContouring', 'GingivalDepigmentation', 'EnamelMicroabrasion', 'ToothJewelry',
    },
    'Prosthodontic': {
        'CompleteDenture', 'PartialDenture', 'FlexibleDenture', 'ImplantSupportedOverdenture',
        'FixedPartialDenture', 'CrownAndBridgeMaintenance', 'ReliningRebasing', 'DentureRepair',
        'OcclusalAdjustment', 'NightGuardFabrication',
    },
    'Orthodontic': {
        'FixedAppliance', 'RemovableAppliance', 'RetainerPlacement', 'BracketBonding', 'WireChange', 'Debonding',
        'SpaceMaintainer', 'InterceptiveTreatment',
    },
}

TOOTH_FIELDS = {'ToothNumber', 'Surface', 'Quadrant', 'Note'}


def _check_options(value, options, label):
    """Validate a ``{option: bool, 'other': str}`` map."""
    if not isinstance(value, dict):
        raise serializers.ValidationError(f'{label} must be an object')
    cleaned = {}
    for key, flag in value.items():
        if key == 'other':
            cleaned['other'] = bleach.clean(str(flag or ''), strip=True)
        elif key in options:
            if not isinstance(flag, bool):
                raise serializers.ValidationError(f'{label}.{key} must be true or false')
            cleaned[key] = flag
        else:
            raise serializers.ValidationError(f'Unknown {label} option: {key}')
    return cleaned


def _check_treatments(entries, label):
    if not isinstance(entries, list):
        raise serializers.ValidationError(f'{label} must be a list')
    cleaned = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise serializers.ValidationError(f'{label} entries must be objects')
        row = {}
        for key, value in entry.items():
            if key in GENERAL_TREATMENTS:
                if not isinstance(value, bool):
                    raise serializers.ValidationError(f'{label}.{key} must be true or false')
                row[key] = value
            elif key in TREATMENT_GROUPS:
                row[key] = _check_options(value, TREATMENT_GROUPS[key], f'{label}.{key}')
            elif key in TOOTH_FIELDS:
                row[key] = bleach.clean(str(value or ''), strip=True)
            else:
                raise serializers.ValidationError(f'Unknown {label} field: {key}')
        cleaned.append(row)
    return cleaned


class DiagnosisSerializer(serializers.Serializer):
    disease = serializers.IntegerField()
    diseaseTime = serializers.DateTimeField(required=False, source='diagnosed_at')


TEXT_FIELDS = {
    'recommendation': 'recommendation',
    'physicalExamination': 'physical_examination',
    'historyPresent': 'history_present',
    'presentCondition': 'present_condition',
    'drugAllergy': 'drug_allergy',
    'diagnosis': 'diagnosis',
    'intraoralExamination': 'intraoral_examination',
    'extraoralExamination': 'extraoral_examination',
    'investigation': 'investigation',
    'assessment': 'assessment',
    'nextProcedure': 'next_procedure',
}


class MedicalFindingSerializer(serializers.Serializer):
    recommendation = serializers.CharField(required=False, allow_blank=True)
    physicalExamination = serializers.CharField(required=False, allow_blank=True, source='physical_examination')
    historyPresent = serializers.CharField(required=False, allow_blank=True, source='history_present')
    presentCondition = serializers.CharField(required=False, allow_blank=True, source='present_condition')
    drugAllergy = serializers.CharField(required=False, allow_blank=True, source='drug_allergy')
    diagnosis = serializers.CharField(required=False, allow_blank=True)
    intraoralExamination = serializers.CharField(required=False, allow_blank=True, source='intraoral_examination')
    extraoralExamination = serializers.CharField(required=False, allow_blank=True, source='extraoral_examination')
    investigation = serializers.CharField(required=False, allow_blank=True)
    assessment = serializers.CharField(required=False, allow_blank=True)
    nextProcedure = serializers.CharField(required=False, allow_blank=True, source='next_procedure')
    chiefComplaint = serializers.JSONField(required=False, source='chief_complaint')
    dentalHistory = serializers.JSONField(required=False, source='dental_history')
    treatmentPlan = serializers.JSONField(required=False, source='treatment_plan')
    treatmentDone = serializers.JSONField(required=False, source='treatment_done')
    diseases = DiagnosisSerializer(many=True, required=False)

    def validate_chiefComplaint(self, v):
        return _check_options(v, CHIEF_COMPLAINT_OPTIONS, 'chiefComplaint')

    def validate_dentalHistory(self, v):
        return _check_options(v, DENTAL_HISTORY_OPTIONS, 'dentalHistory')

    def validate_treatmentPlan(self, v):
        return _check_treatments(v, 'treatmentPlan')

    def validate_treatmentDone(self, v):
        return _check_treatments(v, 'treatmentDone')

    def validate(self, attrs):
        for field in TEXT_FIELDS.values():
            if field in attrs:
                attrs[field] = bleach.clean(attrs[field], strip=True)
        return attrs


class DiseaseSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=160)
    code = serializers.CharField(required=False, allow_blank=True, max_length=32)


VITAL_SIGNS = {'coreTemperature', 'respiratoryRate', 'bloodOxygen', 'bloodPressure', 'heartRate'}

MEDICAL_CONDITIONS = {
    'Hypertension', 'Hypotension', 'Diabetes', 'BleedingTendency', 'Tuberculosis', 'Epilepsy', 'Hepatitis',
    'Allergies', 'Asthma', 'TakingMedication', 'Pregnancy', 'Kidney', 'Hormone', 'ProstheticLimb',
    'KnownMedicalCondition', 'MajorSurgery',
}


class HealthInfoSerializer(serializers.Serializer):
    bloodGroup = serializers.ChoiceField(
        required=False, choices=['A+', 'A-', 'B+', 'B-', 'AB+', 'AB-', 'O+', 'O-', ''], source='blood_group'
    )
    weight = serializers.CharField(required=False, allow_blank=True, max_length=16)
    height = serializers.CharField(required=False, allow_blank=True, max_length=16)
    allergies = serializers.CharField(required=False, allow_blank=True)
    habits = serializers.CharField(required=False, allow_blank=True)
    medication = serializers.CharField(required=False, allow_blank=True)
    description = serializers.CharField(required=False, allow_blank=True)
    vitals = serializers.JSONField(required=False)
    conditions = serializers.JSONField(required=False)

    def validate_vitals(self, v):
        if not isinstance(v, dict):
            raise serializers.ValidationError('vitals must be an object')
        unknown = sorted(set(v) - VITAL_SIGNS)
        if unknown:
            raise serializers.ValidationError(f'Unknown vital sign: {unknown[0]}')
        return {key: bleach.clean(str(value or ''), strip=True) for key, value in v.items()}

    def validate_conditions(self, v):
        return _check_options(v, MEDICAL_CONDITIONS, 'conditions')

    def validate(self, attrs):
        for field in ('weight', 'height', 'allergies', 'habits', 'medication', 'description'):
            if field in attrs:
                attrs[field] = bleach.clean(attrs[field], strip=True)
        return attrs


class NoteSerializer(serializers.Serializer):
    text = serializers.CharField()

    def validate_text(self, v):
        v = bleach.clean(v, strip=True).strip()
        if not v:
            raise serializers.ValidationError('Note text is required')
        return v


class ProcedureSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=160)
    description = serializers.CharField(required=False, allow_blank=True)
