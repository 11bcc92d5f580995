"""
Management command to populate the database with demo data.

Safe to run more than once: existing records are reused by name.
"""
from datetime import time, timedelta
from decimal import Decimal
import random

from django.contrib.auth.hashers import make_password
from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from clinic.models import (
    Branch, User, Patient, Appointment, ServiceCategory, Service, Organization, OrgService, Disease,
    CompanyProfile, Announcement, ProductCategory, Supplier, UnitOfMeasure, Product, ProductUnit, Location,
    Purchase,
)
from clinic.services.billing import create_document, confirm_payment
from clinic.services.inventory import create_purchase, set_purchase_status

FIRST_NAMES = ['Abebe', 'Hana', 'Dawit', 'Selam', 'Yonas', 'Meron', 'Kebede', 'Liya', 'Samuel', 'Ruth']


class Command(BaseCommand):
    help = 'Populate database with demo data'

    def add_arguments(self, parser):
        parser.add_argument('--patients', type=int, default=10)

    @transaction.atomic
    def handle(self, *args, **options):
        self.stdout.write('Creating demo data...')
        branch = self.create_branch()
        admin, doctor = self.create_staff(branch)
        services = self.create_services()
        self.create_organizations(branch)
        self.create_diseases()
        self.create_company(admin)
        patients = self.create_patients(branch, admin, options['patients'])
        self.create_appointments(patients, doctor, admin)
        self.create_invoices(patients, services, admin)
        self.create_inventory(admin, branch)
        self.stdout.write(self.style.SUCCESS('Demo data created.'))

    def create_branch(self):
        branch, _ = Branch.objects.get_or_create(name='Main Branch', defaults={'location': 'Head office'})
        return branch

    def create_staff(self, branch):
        admin, _ = User.objects.get_or_create(
            username='demo_admin', defaults={'role': 'admin', 'password': make_password('Clinic-Demo-2024')}
        )
        doctor, _ = User.objects.get_or_create(
            username='demo_doctor',
            defaults={'role': 'doctor', 'branch': branch, 'first_name': 'Demo', 'last_name': 'Dentist',
                      'password': make_password('Clinic-Demo-2024')},
        )
        return admin, doctor

    def create_services(self):
        catalogue = {
            'Consultation': [('General check-up', '150.00'), ('Follow-up visit', '80.00')],
            'Restorative': [('Composite filling', '600.00'), ('Amalgam filling', '450.00')],
            'Surgery': [('Simple extraction', '400.00'), ('Surgical extraction', '1200.00')],
            'Hygiene': [('Scaling and polishing', '500.00')],
        }
        services = []
        for category_name, entries in catalogue.items():
            category, _ = ServiceCategory.objects.get_or_create(name=category_name)
            for name, price in entries:
                service, _ = Service.objects.get_or_create(
                    category=category, name=name, defaults={'price': Decimal(price)}
                )
                services.append(service)
        return services

    def create_organizations(self, branch):
        org, _ = Organization.objects.get_or_create(name='City Insurance', defaults={'branch': branch})
        for name, price in [('Check-up (insured)', '120.00'), ('Filling (insured)', '500.00')]:
            OrgService.objects.get_or_create(organization=org, name=name, defaults={'price': Decimal(price)})

    def create_diseases(self):
        for name, code in [('Dental caries', 'K02'), ('Gingivitis', 'K05.1'), ('Periodontitis', 'K05.3'),
                           ('Pulpitis', 'K04.0')]:
            Disease.objects.get_or_create(name=name, defaults={'code': code})

    def create_company(self, admin):
        CompanyProfile.objects.get_or_create(pk=1, defaults={'name': 'Demo Dental Clinic', 'phone': '+251 11 000 0000'})
        Announcement.objects.get_or_create(title='Welcome', defaults={'text': 'Demo data loaded.', 'created_by': admin})

    def create_patients(self, branch, admin, count):
        patients = []
        for i in range(count):
            patient, _ = Patient.objects.get_or_create(
                branch=branch, card_no=f'DEMO-{1000 + i}',
                defaults={
                    'first_name': f'{random.choice(FIRST_NAMES)} {random.choice(FIRST_NAMES)}',
                    'age': random.randint(3, 80),
                    'sex': random.choice(['Male', 'Female']),
                    'phone': f'09{random.randint(10000000, 99999999)}',
                    'created_by': admin,
                },
            )
            patients.append(patient)
        return patients

    def create_appointments(self, patients, doctor, admin):
        today = timezone.localdate()
        for i, patient in enumerate(patients[:5]):
            Appointment.objects.get_or_create(
                patient=patient, appointment_date=today + timedelta(days=i % 2),
                defaults={
                    'doctor': doctor,
                    'appointment_time': time(9 + i, 0),
                    'reason_for_visit': 'Check-up',
                    'branch': patient.branch,
                    'created_by': admin,
                },
            )

    def create_invoices(self, patients, services, admin):
        for patient in patients[:5]:
            if patient.invoices.exists():
                continue
            service = random.choice(services)
            invoice = create_document(
                'invoice', admin, patient,
                items=[{'service': service.id, 'quantity': 1}], status='Pending', current_payment=service.price,
            )
            confirm_payment('invoice', admin, invoice.id)

    def create_inventory(self, admin, branch):
        category, _ = ProductCategory.objects.get_or_create(name='Consumables')
        supplier, _ = Supplier.objects.get_or_create(name='Addis Dental Supply')
        piece, _ = UnitOfMeasure.objects.get_or_create(name='Piece', defaults={'symbol': 'pc'})
        box, _ = UnitOfMeasure.objects.get_or_create(name='Box', defaults={'symbol': 'box'})
        Location.objects.get_or_create(name='Treatment room 1', defaults={'branch': branch})
        product, _ = Product.objects.get_or_create(
            product_code='GLV-001', defaults={'name': 'Examination gloves', 'category': category, 'created_by': admin}
        )
        ProductUnit.objects.get_or_create(product=product, name='Piece',
                                          defaults={'unit_of_measure': piece, 'conversion_to_base': 1, 'is_base': True})
        box_unit, _ = ProductUnit.objects.get_or_create(product=product, name='Box of 100',
                                                        defaults={'unit_of_measure': box, 'conversion_to_base': 100})
        if Purchase.objects.filter(invoice_no='DEMO-PO-1').exists():
            return
        purchase = create_purchase(
            admin, invoice_no='DEMO-PO-1', supplier_id=supplier.id,
            items=[{
                'product': product.id, 'productUnit': box_unit.id, 'batchNumber': 'GLV-B1',
                'expiryDate': timezone.localdate() + timedelta(days=365), 'quantity': 5,
                'unitPrice': Decimal('350.00'),
            }],
        )
        set_purchase_status(admin, purchase, 'APPROVED')
