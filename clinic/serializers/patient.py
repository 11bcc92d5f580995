import bleach
from rest_framework import serializers


def _clean(v):
    return bleach.clean((v or '').strip(), strip=True)


class PatientSerializer(serializers.Serializer):
    """Patient registration and update payload (camelCase in, model fields out)."""
    cardNo = serializers.CharField(max_length=32, source='card_no')
    firstName = serializers.CharField(max_length=50, source='first_name')
    age = serializers.IntegerField(required=False, allow_null=True, min_value=0, max_value=150)
    sex = serializers.ChoiceField(choices=['Male', 'Female', 'none'], required=False)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    town = serializers.CharField(required=False, allow_blank=True, max_length=64)
    kebele = serializers.CharField(required=False, allow_blank=True, max_length=64)
    houseNo = serializers.CharField(required=False, allow_blank=True, max_length=32, source='house_no')
    woreda = serializers.CharField(required=False, allow_blank=True, max_length=64)
    region = serializers.CharField(required=False, allow_blank=True, max_length=64)
    address = serializers.CharField(required=False, allow_blank=True, max_length=255)
    description = serializers.CharField(required=False, allow_blank=True)
    dateOfBirth = serializers.DateField(required=False, allow_null=True, source='date_of_birth')
    disability = serializers.BooleanField(required=False)
    credit = serializers.BooleanField(required=False)
    finish = serializers.BooleanField(required=False)
    locked = serializers.BooleanField(required=False)
    price = serializers.DecimalField(required=False, max_digits=12, decimal_places=2, min_value=0)

    def validate_cardNo(self, v):
        v = _clean(v)
        if not v:
            raise serializers.ValidationError('Card number is required')
        return v

    def validate_firstName(self, v):
        v = _clean(v)
        if len(v) < 3:
            raise serializers.ValidationError('First name must be at least 3 characters')
        return v

    def validate_description(self, v):
        return _clean(v)


class PatientListQuerySerializer(serializers.Serializer):
    name = serializers.CharField(required=False, allow_blank=True)
    cardno = serializers.CharField(required=False, allow_blank=True)
    phone = serializers.CharField(required=False, allow_blank=True)
    branch = serializers.CharField(required=False, allow_blank=True)
    sex = serializers.CharField(required=False, allow_blank=True)
    page = serializers.IntegerField(required=False, min_value=1)
    pageSize = serializers.IntegerField(required=False, min_value=1, max_value=200)


class AdvanceSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)

    def validate_amount(self, v):
        if v <= 0:
            raise serializers.ValidationError('Amount must be greater than zero')
        return v


class CardSerializer(serializers.Serializer):
    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)


class AppointmentSerializer(serializers.Serializer):
    appointmentDate = serializers.DateField(source='appointment_date')
    appointmentTime = serializers.TimeField(required=False, allow_null=True, source='appointment_time')
    appointmentEndTime = serializers.TimeField(required=False, allow_null=True, source='appointment_end_time')
    reasonForVisit = serializers.CharField(required=False, allow_blank=True, source='reason_for_visit')
    doctorId = serializers.IntegerField(required=False, allow_null=True, source='doctor_id')
    status = serializers.ChoiceField(choices=['Scheduled', 'Completed', 'Cancelled'], required=False)

    def validate(self, attrs):
        start, end = attrs.get('appointment_time'), attrs.get('appointment_end_time')
        if start and end and end <= start:
            raise serializers.ValidationError({'appointmentEndTime': 'End time must be after the start time'})
        return attrs
