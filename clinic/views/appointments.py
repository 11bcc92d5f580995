from __future__ import annotations

from datetime import timedelta

from django.db import transaction
from django.utils import timezone
from django.utils.dateparse import parse_date
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import Appointment, User
from ..serializers.patient import AppointmentSerializer
from ..services.scope import branch_filter, get_scoped_or_404
from .patients import get_patient


def _serialize(a: Appointment) -> dict:
    return {
        'id': a.id,
        'appointmentDate': a.appointment_date.isoformat(),
        'appointmentTime': a.appointment_time.strftime('%H:%M') if a.appointment_time else None,
        'appointmentEndTime': a.appointment_end_time.strftime('%H:%M') if a.appointment_end_time else None,
        'reasonForVisit': a.reason_for_visit,
        'status': a.status,
        'doctor': {
            'id': a.doctor.id,
            'username': a.doctor.username,
            'name': a.doctor.get_full_name() or a.doctor.username,
        } if a.doctor_id else None,
        'patient': {
            'id': a.patient.id,
            'name': a.patient.first_name,
            'cardNo': a.patient.card_no,
        },
        'branchId': a.branch_id,
        'createdBy': a.created_by_id,
        'createdAt': a.created_at.isoformat() if a.created_at else None,
    }


def _doctor_or_none(doctor_id):
    return User.objects.filter(id=doctor_id).first()


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def patient_appointments(request, pk: int):
    user = request.user
    patient = get_patient(user, pk)
    if request.method == 'GET':
        qs = patient.appointments.select_related('doctor', 'patient').order_by('-created_at', '-id')
        return Response([_serialize(a) for a in qs])
    s = AppointmentSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    data = dict(s.validated_data)
    doctor_id = data.pop('doctor_id', None)
    doctor = user
    if doctor_id:
        doctor = _doctor_or_none(doctor_id)
        if not doctor:
            return Response({'detail': 'doctor not found'}, status=status.HTTP_404_NOT_FOUND)
    data['status'] = 'Scheduled'
    with transaction.atomic():
        appt = Appointment.objects.create(
            patient=patient, doctor=doctor, branch=patient.branch, created_by=user, **data
        )
    return Response(_serialize(appt), status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def appointment_detail(request, pk: int):
    appt = get_scoped_or_404(Appointment.objects.select_related('doctor', 'patient'), request.user, pk, 'appointment')
    if request.method == 'GET':
        return Response(_serialize(appt))
    if request.method == 'DELETE':
        appt.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
    s = AppointmentSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    data = dict(s.validated_data)
    if 'doctor_id' in data:
        doctor_id = data.pop('doctor_id')
        if doctor_id:
            doctor = _doctor_or_none(doctor_id)
            if not doctor:
                return Response({'detail': 'doctor not found'}, status=status.HTTP_404_NOT_FOUND)
            appt.doctor = doctor
        else:
            appt.doctor = None
    for field, value in data.items():
        setattr(appt, field, value)
    appt.save()
    return Response(_serialize(appt))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def appointments_by_day(request):
    """Appointments for ``day`` (today|tomorrow) or an explicit ``date``.

    Optional filters: ``doctor``, ``status``, ``branch``.
    """
    params = request.query_params
    today = timezone.localdate()
    if params.get('date'):
        day = parse_date(params['date'])
        if day is None:
            return Response({'detail': 'date must be YYYY-MM-DD'}, status=status.HTTP_400_BAD_REQUEST)
    elif (params.get('day') or 'today') == 'tomorrow':
        day = today + timedelta(days=1)
    else:
        day = today
    qs = Appointment.objects.select_related('doctor', 'patient').filter(appointment_date=day)
    qs = branch_filter(qs, request.user, params.get('branch'))
    if (params.get('doctor') or '').isdigit():
        qs = qs.filter(doctor_id=params['doctor'])
    if params.get('status'):
        qs = qs.filter(status=params['status'])
    qs = qs.order_by('appointment_time', 'id')
    return Response({'date': day.isoformat(), 'data': [_serialize(a) for a in qs]})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_appointments_today(request):
    qs = (Appointment.objects.select_related('doctor', 'patient')
          .filter(doctor=request.user, appointment_date=timezone.localdate())
          .order_by('appointment_time', 'id'))
    return Response([_serialize(a) for a in qs])
