"""
Integration tests for the clinic API.

These tests cover patient registration and branch isolation,
appointments, the service catalogue, medical findings, health records and
notes, using DRF's APIClient within the APITestCase base class.

To run the tests:

```
pytest -q clinic/tests
```
"""
from datetime import timedelta

from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase, APIClient

from ..models import Branch, User, Patient, Appointment, Disease, MedicalFinding, ServiceCategory, PaymentHistory

PASSWORD = 'Str0ng-Pass!x'


class ClinicAPITests(APITestCase):
    def setUp(self) -> None:
        self.branch1 = Branch.objects.create(name='Bole')
        self.branch2 = Branch.objects.create(name='Piassa')
        self.admin_user = User.objects.create_user(username='admin1', password=PASSWORD, role='admin')
        self.reception1 = User.objects.create_user(
            username='reception1', password=PASSWORD, role='reception', branch=self.branch1
        )
        self.doctor1 = User.objects.create_user(
            username='doctor1', password=PASSWORD, role='doctor', branch=self.branch1, first_name='Sara'
        )
        self.nurse2 = User.objects.create_user(
            username='nurse2', password=PASSWORD, role='nurse', branch=self.branch2
        )
        self.patient1 = Patient.objects.create(
            card_no='C-001', first_name='Abebe Kebede', age=34, sex='Male', branch=self.branch1
        )
        self.patient2 = Patient.objects.create(
            card_no='C-002', first_name='Hana Tesfaye', age=8, sex='Female', branch=self.branch2
        )

    def authenticate(self, user: User) -> APIClient:
        """Return an authenticated APIClient for the given user."""
        client = APIClient()
        client.force_authenticate(user=user)
        return client

    # patients

    def test_reception_registers_patient_in_own_branch(self):
        client = self.authenticate(self.reception1)
        response = client.post('/api/patients', {
            'cardNo': 'C-100', 'firstName': 'Meron Alemu', 'age': 27, 'sex': 'Female', 'phone': '0911000000',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['branchId'], self.branch1.id)
        self.assertEqual(response.data['firstName'], 'Meron Alemu')

    def test_duplicate_card_in_branch_is_rejected(self):
        client = self.authenticate(self.reception1)
        response = client.post('/api/patients', {'cardNo': 'C-001', 'firstName': 'Someone Else'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_short_first_name_is_rejected(self):
        client = self.authenticate(self.reception1)
        response = client.post('/api/patients', {'cardNo': 'C-101', 'firstName': 'Al'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_doctor_cannot_register_patients(self):
        client = self.authenticate(self.doctor1)
        response = client.post('/api/patients', {'cardNo': 'C-102', 'firstName': 'Yonas Bekele'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_patient_list_is_branch_scoped(self):
        response = self.authenticate(self.reception1).get('/api/patients')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        ids = [p['id'] for p in response.data['data']]
        self.assertIn(self.patient1.id, ids)
        self.assertNotIn(self.patient2.id, ids)

        response = self.authenticate(self.admin_user).get('/api/patients')
        self.assertEqual(response.data['pagination']['total'], 2)
        response = self.authenticate(self.admin_user).get('/api/patients', {'branch': self.branch2.id})
        self.assertEqual([p['id'] for p in response.data['data']], [self.patient2.id])

    def test_other_branch_patient_is_not_found(self):
        response = self.authenticate(self.reception1).get(f'/api/patients/{self.patient2.id}')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_patient_search_filters(self):
        client = self.authenticate(self.admin_user)
        response = client.get('/api/patients', {'sex': 'female'})
        self.assertEqual([p['id'] for p in response.data['data']], [self.patient2.id])
        response = client.get('/api/patients', {'name': 'abebe'})
        self.assertEqual([p['id'] for p in response.data['data']], [self.patient1.id])
        response = client.get('/api/patients', {'sex': 'other'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_advance_payment_updates_summary_and_history(self):
        self.patient1.price = 1000
        self.patient1.save()
        client = self.authenticate(self.reception1)
        response = client.post(f'/api/patients/{self.patient1.id}/advance', {'amount': '400.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['advance'], 400.0)
        self.assertEqual(response.data['remainingBalance'], 600.0)
        self.assertFalse(response.data['isPaymentComplete'])
        self.assertTrue(PaymentHistory.objects.filter(patient=self.patient1, source='advance').exists())

        response = client.post(f'/api/patients/{self.patient1.id}/advance', {'amount': '0'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    # appointments

    def test_appointment_defaults_to_calling_doctor(self):
        client = self.authenticate(self.doctor1)
        today = timezone.localdate()
        response = client.post(f'/api/patients/{self.patient1.id}/appointments', {
            'appointmentDate': today.isoformat(), 'appointmentTime': '09:30', 'reasonForVisit': 'Toothache',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['doctor']['id'], self.doctor1.id)
        self.assertEqual(response.data['status'], 'Scheduled')

        response = client.get('/api/appointments/mine')
        self.assertEqual(len(response.data), 1)
        response = client.get('/api/appointments', {'day': 'tomorrow'})
        self.assertEqual(response.data['data'], [])

    def test_appointment_end_before_start_is_rejected(self):
        client = self.authenticate(self.reception1)
        response = client.post(f'/api/patients/{self.patient1.id}/appointments', {
            'appointmentDate': timezone.localdate().isoformat(),
            'appointmentTime': '10:00', 'appointmentEndTime': '09:00', 'doctorId': self.doctor1.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_appointments_by_day_are_branch_scoped(self):
        tomorrow = timezone.localdate() + timedelta(days=1)
        Appointment.objects.create(patient=self.patient1, doctor=self.doctor1, appointment_date=tomorrow,
                                   branch=self.branch1)
        Appointment.objects.create(patient=self.patient2, appointment_date=tomorrow, branch=self.branch2)
        response = self.authenticate(self.reception1).get('/api/appointments', {'day': 'tomorrow'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['data']), 1)
        self.assertEqual(response.data['data'][0]['patient']['id'], self.patient1.id)

    # catalogue

    def test_service_catalogue_admin_writes(self):
        client = self.authenticate(self.admin_user)
        response = client.post('/api/service-categories', {'name': 'Surgery'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        response = client.post('/api/service-categories', {'name': 'Surgery'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        category = ServiceCategory.objects.get(name='Surgery')
        response = client.post('/api/services', {'name': 'Extraction', 'price': '400.00',
                                                 'categoryId': category.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['categoryName'], 'Surgery')

        response = self.authenticate(self.doctor1).post('/api/service-categories', {'name': 'Hygiene'},
                                                        format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        response = self.authenticate(self.doctor1).get('/api/services')
        self.assertEqual(len(response.data), 1)

    # findings

    def test_finding_records_diseases_and_change_history(self):
        caries = Disease.objects.create(name='Dental caries', code='K02')
        client = self.authenticate(self.doctor1)
        response = client.post(f'/api/patients/{self.patient1.id}/findings', {
            'diagnosis': 'Deep caries on 36',
            'chiefComplaint': {'CrookedTeeth': True, 'other': 'pain when chewing'},
            'treatmentPlan': [{'ToothNumber': '36', 'Filling': True, 'Restorative': {'CompositeFilling': True}}],
            'diseases': [{'disease': caries.id}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        finding_id = response.data['id']
        self.assertEqual(response.data['diseases'][0]['name'], 'Dental caries')

        response = client.patch(f'/api/findings/{finding_id}', {'nextProcedure': 'Root canal'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['nextProcedure'], 'Root canal')
        self.assertEqual(len(response.data['changes']), 1)
        self.assertEqual(response.data['changes'][0]['updatedBy'], self.doctor1.id)

    def test_finding_with_unknown_disease_or_option_is_rejected(self):
        client = self.authenticate(self.doctor1)
        response = client.post(f'/api/patients/{self.patient1.id}/findings', {
            'diseases': [{'disease': 999}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        response = client.post(f'/api/patients/{self.patient1.id}/findings', {
            'chiefComplaint': {'Toothache': True},
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(MedicalFinding.objects.exists())

    def test_reception_cannot_write_findings(self):
        response = self.authenticate(self.reception1).post(
            f'/api/patients/{self.patient1.id}/findings', {'diagnosis': 'none'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_referenced_disease_cannot_be_deleted(self):
        caries = Disease.objects.create(name='Dental caries')
        self.authenticate(self.doctor1).post(f'/api/patients/{self.patient1.id}/findings', {
            'diseases': [{'disease': caries.id}],
        }, format='json')
        response = self.authenticate(self.admin_user).delete(f'/api/diseases/{caries.id}')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    # health information, notes & procedures

    def test_health_info_records_vitals_and_merges_updates(self):
        client = self.authenticate(self.doctor1)
        response = client.post(f'/api/patients/{self.patient1.id}/health-info', {
            'bloodGroup': 'O+', 'weight': '70',
            'vitals': {'bloodPressure': '120/80', 'heartRate': '72'},
            'conditions': {'Diabetes': False, 'Hypertension': True, 'other': 'gastritis'},
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        record_id = response.data['id']
        self.assertEqual(response.data['branchId'], self.branch1.id)
        self.assertEqual(response.data['conditions']['other'], 'gastritis')

        response = client.patch(f'/api/health-info/{record_id}', {'vitals': {'heartRate': '80'}}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['vitals'], {'bloodPressure': '120/80', 'heartRate': '80'})
        self.assertEqual(len(response.data['changes']), 1)

        response = client.get(f'/api/patients/{self.patient1.id}/health-info')
        self.assertEqual([r['id'] for r in response.data], [record_id])
        response = self.authenticate(self.nurse2).get(f'/api/health-info/{record_id}')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_health_info_validation_and_roles(self):
        url = f'/api/patients/{self.patient1.id}/health-info'
        client = self.authenticate(self.doctor1)
        self.assertEqual(client.post(url, {'bloodGroup': 'C+'}, format='json').status_code,
                         status.HTTP_400_BAD_REQUEST)
        self.assertEqual(client.post(url, {'vitals': {'pulse': '70'}}, format='json').status_code,
                         status.HTTP_400_BAD_REQUEST)
        self.assertEqual(client.post(url, {'conditions': {'Flu': True}}, format='json').status_code,
                         status.HTTP_400_BAD_REQUEST)
        response = self.authenticate(self.reception1).post(url, {'bloodGroup': 'A+'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_notes_are_edited_only_by_author(self):
        response = self.authenticate(self.reception1).post(
            f'/api/patients/{self.patient1.id}/notes', {'text': 'Prefers morning visits'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        note_id = response.data['id']
        self.assertEqual(response.data['author'], 'reception1')

        response = self.authenticate(self.doctor1).put(f'/api/notes/{note_id}', {'text': 'changed'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        response = self.authenticate(self.reception1).put(f'/api/notes/{note_id}', {'text': 'Evening only'},
                                                          format='json')
        self.assertEqual(response.data['text'], 'Evening only')
        response = self.authenticate(self.reception1).post(
            f'/api/patients/{self.patient1.id}/notes', {'text': '   '}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.authenticate(self.admin_user).delete(f'/api/notes/{note_id}')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)

    def test_procedure_catalogue_is_admin_managed(self):
        response = self.authenticate(self.doctor1).post('/api/procedures', {'title': 'Scaling'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        client = self.authenticate(self.admin_user)
        response = client.post('/api/procedures', {'title': 'Scaling', 'description': 'Ultrasonic'},
                               format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        response = client.post('/api/procedures', {'title': 'Scaling'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.authenticate(self.nurse2).get('/api/procedures')
        self.assertEqual([p['title'] for p in response.data], ['Scaling'])

    # company

    def test_company_profile_reads_for_all_writes_for_admin(self):
        response = self.authenticate(self.nurse2).put('/api/company', {'name': 'Smile Dental'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        response = self.authenticate(self.admin_user).put('/api/company', {'name': 'Smile Dental'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        response = self.authenticate(self.nurse2).get('/api/company')
        self.assertEqual(response.data['name'], 'Smile Dental')
