"""
Database models for the dental clinic backend.

The models cover staff and branches, patients and their appointments,
billing (invoices, proforma quotes, organisation credit, payment history,
expenses), clinical records (medical findings, diseases, health
information and notes) and the inventory side of the clinic: catalogue,
purchases, requests, transfers and the stock ledger that every quantity
change is written to.
"""
from __future__ import annotations

from decimal import Decimal

from django.contrib.auth.models import AbstractUser
from django.core.validators import MinValueValidator
from django.db import IntegrityError, models, transaction
from django.db.models.functions import Length
from django.utils import timezone


class Branch(models.Model):
    """A physical clinic site. Most records are scoped to one branch."""
    name = models.CharField(max_length=120, unique=True)
    location = models.CharField(max_length=255, blank=True)
    phone = models.CharField(max_length=32, blank=True)
    manager = models.ForeignKey(
        'User', null=True, blank=True, on_delete=models.SET_NULL, related_name='managed_branches'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return self.name


class User(AbstractUser):
    """Staff account with a clinic role and an optional branch binding.

    ``locked`` is a special role: exactly one account may hold it and its
    password unlocks the front-end screen lock. ``lock`` disables an
    account without deleting it and ``deadline`` expires it.
    """
    ROLE_CHOICES = [
        ('admin', 'Administrator'),
        ('doctor', 'Doctor'),
        ('reception', 'Reception'),
        ('nurse', 'Nurse'),
        ('laboratory', 'Laboratory'),
        ('user', 'Inventory user'),
        ('locked', 'Screen lock'),
    ]
    role = models.CharField(max_length=16, choices=ROLE_CHOICES, default='user', db_index=True)
    phone = models.CharField(max_length=32, blank=True)
    image = models.CharField(max_length=255, blank=True)
    branch = models.ForeignKey(
        Branch, null=True, blank=True, on_delete=models.SET_NULL, related_name='users', db_index=True
    )
    lock = models.BooleanField(default=False)
    deadline = models.DateTimeField(null=True, blank=True)
    position = models.CharField(max_length=64, blank=True)
    experience = models.CharField(max_length=64, blank=True)

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"

    @property
    def is_clinic_admin(self) -> bool:
        return self.role == 'admin' or self.is_superuser

    def is_expired(self, now=None) -> bool:
        if not self.deadline:
            return False
        return self.deadline <= (now or timezone.now())


# ---------------------------------------------------------------------------
# Patients & appointments
# ---------------------------------------------------------------------------

class Patient(models.Model):
    """A clinic patient identified by a card number within a branch."""
    SEX_CHOICES = [
        ('Male', 'Male'),
        ('Female', 'Female'),
        ('none', 'Not specified'),
    ]
    card_no = models.CharField(max_length=32, db_index=True)
    first_name = models.CharField(max_length=50)
    age = models.PositiveSmallIntegerField(null=True, blank=True)
    sex = models.CharField(max_length=10, choices=SEX_CHOICES, default='none')
    phone = models.CharField(max_length=32, blank=True)
    town = models.CharField(max_length=64, blank=True)
    kebele = models.CharField(max_length=64, blank=True)
    house_no = models.CharField(max_length=32, blank=True)
    woreda = models.CharField(max_length=64, blank=True)
    region = models.CharField(max_length=64, blank=True)
    address = models.CharField(max_length=255, blank=True)
    description = models.TextField(blank=True)
    date_of_birth = models.DateField(null=True, blank=True)
    disability = models.BooleanField(default=False)
    credit = models.BooleanField(default=False)
    finish = models.BooleanField(default=False)
    locked = models.BooleanField(default=False)
    price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    advance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    branch = models.ForeignKey(Branch, null=True, blank=True, on_delete=models.SET_NULL, related_name='patients')
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['branch', 'card_no'], name='uniq_patient_card_per_branch'),
        ]

    def __str__(self) -> str:
        return f"{self.first_name} ({self.card_no})"


class Card(models.Model):
    """A card (registration) fee paid by a patient."""
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='cards')
    price = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal('0'))])
    branch = models.ForeignKey(Branch, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    def __str__(self) -> str:
        return f"card {self.patient_id} {self.price}"


class Appointment(models.Model):
    STATUS_CHOICES = [
        ('Scheduled', 'Scheduled'),
        ('Completed', 'Completed'),
        ('Cancelled', 'Cancelled'),
    ]
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='appointments')
    doctor = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='doctor_appointments'
    )
    appointment_date = models.DateField(db_index=True)
    appointment_time = models.TimeField(null=True, blank=True)
    appointment_end_time = models.TimeField(null=True, blank=True)
    reason_for_visit = models.TextField(blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default='Scheduled', db_index=True)
    branch = models.ForeignKey(Branch, null=True, blank=True, on_delete=models.SET_NULL, related_name='appointments')
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['doctor', 'appointment_date']),
        ]

    def __str__(self) -> str:
        return f"appt p={self.patient_id} {self.appointment_date} {self.status}"


# ---------------------------------------------------------------------------
# Services & organisations
# ---------------------------------------------------------------------------

class ServiceCategory(models.Model):
    name = models.CharField(max_length=120, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return self.name


class Service(models.Model):
    """A billable clinic service with a list price."""
    category = models.ForeignKey(
        ServiceCategory, null=True, blank=True, on_delete=models.SET_NULL, related_name='services'
    )
    name = models.CharField(max_length=120)
    description = models.TextField(blank=True)
    price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return self.name


class Organization(models.Model):
    """An organisation that takes patients on credit."""
    name = models.CharField(max_length=160, unique=True)
    phone = models.CharField(max_length=32, blank=True)
    address = models.CharField(max_length=255, blank=True)
    branch = models.ForeignKey(Branch, null=True, blank=True, on_delete=models.SET_NULL, related_name='organizations')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return self.name


class OrgService(models.Model):
    organization = models.ForeignKey(
        Organization, null=True, blank=True, on_delete=models.CASCADE, related_name='services'
    )
    name = models.CharField(max_length=120)
    price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return self.name


# ---------------------------------------------------------------------------
# Billing
# ---------------------------------------------------------------------------

class BillingDocument(models.Model):
    """Shared shape of invoices and credits.

    ``total_amount`` is the sum of the item totals and ``balance`` is what
    is still owed. The current payment is money taken at the desk that a
    cashier has not confirmed yet.
    """
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='%(class)ss')
    customer_name = models.CharField(max_length=120, blank=True)
    card_no = models.CharField(max_length=32, blank=True)
    branch = models.ForeignKey(Branch, null=True, blank=True, on_delete=models.SET_NULL, related_name='%(class)ss')
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    total_paid = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    current_payment_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    current_payment_date = models.DateTimeField(null=True, blank=True)
    current_payment_confirmed = models.BooleanField(default=False, db_index=True)
    current_payment_receipt = models.BooleanField(default=False)
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True

    def recalculate(self) -> None:
        """Recompute totals from the saved items."""
        total = sum((item.total_price for item in self.items.all()), Decimal('0'))
        self.total_amount = total
        self.balance = total - self.total_paid

    @property
    def is_fully_paid(self) -> bool:
        return self.total_paid >= self.total_amount


class Invoice(BillingDocument):
    STATUS_CHOICES = [
        ('Paid', 'Paid'),
        ('Pending', 'Pending'),
        ('Cancel', 'Cancel'),
        ('order', 'Order'),
    ]
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default='Pending', db_index=True)
    invoice_date = models.DateTimeField(default=timezone.now)

    def __str__(self) -> str:
        return f"invoice {self.id} p={self.patient_id} {self.status}"


class InvoiceItem(models.Model):
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name='items')
    service = models.ForeignKey(Service, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    service_name = models.CharField(max_length=120, blank=True)
    description = models.CharField(max_length=255, blank=True)
    quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    price = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal('0'))])
    total_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))

    def save(self, *args, **kwargs):
        self.total_price = self.price * self.quantity
        super().save(*args, **kwargs)


class Credit(BillingDocument):
    STATUS_CHOICES = [
        ('Paid', 'Paid'),
        ('Pending', 'Pending'),
        ('Cancel', 'Cancel'),
        ('Credit', 'Credit'),
    ]
    organization = models.ForeignKey(
        Organization, null=True, blank=True, on_delete=models.SET_NULL, related_name='credits'
    )
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default='Credit', db_index=True)
    credit_date = models.DateTimeField(default=timezone.now)

    def __str__(self) -> str:
        return f"credit {self.id} p={self.patient_id} {self.status}"


class CreditItem(models.Model):
    credit = models.ForeignKey(Credit, on_delete=models.CASCADE, related_name='items')
    service = models.ForeignKey(OrgService, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    service_name = models.CharField(max_length=120, blank=True)
    description = models.CharField(max_length=255, blank=True)
    quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    price = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal('0'))])
    total_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))

    def save(self, *args, **kwargs):
        self.total_price = self.price * self.quantity
        super().save(*args, **kwargs)


class Proforma(models.Model):
    """Priced quote for a patient. It carries no payments and never affects balances."""
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='proformas')
    customer_name = models.CharField(max_length=120, blank=True)
    card_no = models.CharField(max_length=32, blank=True)
    branch = models.ForeignKey(Branch, null=True, blank=True, on_delete=models.SET_NULL, related_name='proformas')
    proforma_date = models.DateTimeField(default=timezone.now)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"proforma {self.id} p={self.patient_id}"

    def recalculate(self) -> None:
        self.total_amount = sum((item.total_price for item in self.items.all()), Decimal('0'))


class ProformaItem(models.Model):
    proforma = models.ForeignKey(Proforma, on_delete=models.CASCADE, related_name='items')
    service = models.ForeignKey(Service, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    service_name = models.CharField(max_length=120, blank=True)
    description = models.CharField(max_length=255, blank=True)
    quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    price = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal('0'))])
    total_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))

    def save(self, *args, **kwargs):
        self.total_price = self.price * self.quantity
        super().save(*args, **kwargs)


class PaymentHistory(models.Model):
    """One confirmed payment: invoice, credit or patient advance."""
    SOURCE_CHOICES = [
        ('invoice', 'Invoice'),
        ('credit', 'Credit'),
        ('advance', 'Advance'),
    ]
    source = models.CharField(max_length=10, choices=SOURCE_CHOICES, default='invoice', db_index=True)
    invoice = models.ForeignKey(Invoice, null=True, blank=True, on_delete=models.SET_NULL, related_name='payments')
    credit = models.ForeignKey(Credit, null=True, blank=True, on_delete=models.SET_NULL, related_name='payments')
    patient = models.ForeignKey(Patient, null=True, blank=True, on_delete=models.SET_NULL, related_name='payments')
    customer_name = models.CharField(max_length=120, blank=True)
    card_no = models.CharField(max_length=32, blank=True)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    receipt = models.BooleanField(default=False)
    document_creator = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    branch = models.ForeignKey(Branch, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        indexes = [
            models.Index(fields=['source', 'created_at']),
        ]

    @property
    def is_advance(self) -> bool:
        return self.source == 'advance'


class Expense(models.Model):
    description = models.CharField(max_length=255)
    category = models.CharField(max_length=64, blank=True)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    expense_date = models.DateField(default=timezone.localdate, db_index=True)
    branch = models.ForeignKey(Branch, null=True, blank=True, on_delete=models.SET_NULL, related_name='expenses')
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.description} {self.amount}"


# ---------------------------------------------------------------------------
# Clinical records
# ---------------------------------------------------------------------------

class Disease(models.Model):
    name = models.CharField(max_length=160, unique=True)
    code = models.CharField(max_length=32, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return self.name


class MedicalFinding(models.Model):
    """Examination record written by a clinician for one visit.

    ``chief_complaint`` and ``dental_history`` map option keys to booleans
    (plus a free-text ``other``). ``treatment_plan`` and ``treatment_done``
    are lists of per-tooth treatment entries.
    """
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='findings')
    branch = models.ForeignKey(Branch, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    recommendation = models.TextField(blank=True)
    chief_complaint = models.JSONField(default=dict, blank=True)
    dental_history = models.JSONField(default=dict, blank=True)
    physical_examination = models.TextField(blank=True)
    history_present = models.TextField(blank=True)
    present_condition = models.TextField(blank=True)
    drug_allergy = models.TextField(blank=True)
    diagnosis = models.TextField(blank=True)
    intraoral_examination = models.TextField(blank=True)
    extraoral_examination = models.TextField(blank=True)
    investigation = models.TextField(blank=True)
    assessment = models.TextField(blank=True)
    next_procedure = models.TextField(blank=True)
    treatment_plan = models.JSONField(default=list, blank=True)
    treatment_done = models.JSONField(default=list, blank=True)
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"finding {self.id} p={self.patient_id}"


class FindingDisease(models.Model):
    finding = models.ForeignKey(MedicalFinding, on_delete=models.CASCADE, related_name='diseases')
    disease = models.ForeignKey(Disease, on_delete=models.PROTECT, related_name='findings')
    diagnosed_at = models.DateTimeField(default=timezone.now, db_index=True)


class FindingChange(models.Model):
    finding = models.ForeignKey(MedicalFinding, on_delete=models.CASCADE, related_name='changes')
    updated_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    updated_at = models.DateTimeField(default=timezone.now)


class HealthInfo(models.Model):
    """Vital signs and medical background taken before treatment.

    ``vitals`` holds the measured signs as entered (free text per sign) and
    ``conditions`` maps medical-history questions to yes/no answers plus a
    free-text ``other``.
    """
    BLOOD_GROUP_CHOICES = [(g, g) for g in ('A+', 'A-', 'B+', 'B-', 'AB+', 'AB-', 'O+', 'O-')] + [('', 'Unknown')]
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='health_records')
    branch = models.ForeignKey(Branch, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    blood_group = models.CharField(max_length=3, choices=BLOOD_GROUP_CHOICES, blank=True)
    weight = models.CharField(max_length=16, blank=True)
    height = models.CharField(max_length=16, blank=True)
    allergies = models.TextField(blank=True)
    habits = models.TextField(blank=True)
    medication = models.TextField(blank=True)
    vitals = models.JSONField(default=dict, blank=True)
    conditions = models.JSONField(default=dict, blank=True)
    description = models.TextField(blank=True)
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"health {self.id} p={self.patient_id}"


class HealthInfoChange(models.Model):
    record = models.ForeignKey(HealthInfo, on_delete=models.CASCADE, related_name='changes')
    updated_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    updated_at = models.DateTimeField(default=timezone.now)


class PatientNote(models.Model):
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='notes')
    branch = models.ForeignKey(Branch, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    text = models.TextField()
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"note {self.id} p={self.patient_id}"


class Procedure(models.Model):
    """Clinic procedure catalogue entry shown to clinicians when planning treatment."""
    title = models.CharField(max_length=160, unique=True)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return self.title


# ---------------------------------------------------------------------------
# Company profile & announcements
# ---------------------------------------------------------------------------

class CompanyProfile(models.Model):
    """Single-row clinic letterhead used on printed documents."""
    name = models.CharField(max_length=160, blank=True)
    address = models.CharField(max_length=255, blank=True)
    phone = models.CharField(max_length=64, blank=True)
    email = models.CharField(max_length=120, blank=True)
    logo_url = models.CharField(max_length=255, blank=True)
    footer = models.TextField(blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return self.name or 'Company profile'


class Announcement(models.Model):
    title = models.CharField(max_length=160)
    text = models.TextField(blank=True)
    active = models.BooleanField(default=True)
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return self.title


# ---------------------------------------------------------------------------
# Inventory catalogue
# ---------------------------------------------------------------------------

class ProductCategory(models.Model):
    name = models.CharField(max_length=120, unique=True)
    description = models.TextField(blank=True)

    def __str__(self) -> str:
        return self.name


class SubCategory(models.Model):
    category = models.ForeignKey(ProductCategory, on_delete=models.CASCADE, related_name='subcategories')
    name = models.CharField(max_length=120)

    class Meta:
        unique_together = [('category', 'name')]

    def __str__(self) -> str:
        return f"{self.category} / {self.name}"


class Supplier(models.Model):
    name = models.CharField(max_length=160, unique=True)
    contact_person = models.CharField(max_length=120, blank=True)
    phone = models.CharField(max_length=32, blank=True)
    email = models.CharField(max_length=120, blank=True)
    address = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return self.name


class UnitOfMeasure(models.Model):
    name = models.CharField(max_length=64, unique=True)
    symbol = models.CharField(max_length=16, blank=True)

    def __str__(self) -> str:
        return self.symbol or self.name


class Product(models.Model):
    product_code = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=160)
    description = models.TextField(blank=True)
    category = models.ForeignKey(
        ProductCategory, null=True, blank=True, on_delete=models.SET_NULL, related_name='products'
    )
    sub_category = models.ForeignKey(
        SubCategory, null=True, blank=True, on_delete=models.SET_NULL, related_name='products'
    )
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.product_code} {self.name}"


class ProductUnit(models.Model):
    """A packaging unit of a product and its size in base units."""
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='units')
    unit_of_measure = models.ForeignKey(
        UnitOfMeasure, null=True, blank=True, on_delete=models.SET_NULL, related_name='+'
    )
    name = models.CharField(max_length=64)
    conversion_to_base = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    is_base = models.BooleanField(default=False)

    def __str__(self) -> str:
        return f"{self.name} x{self.conversion_to_base}"

    def to_base(self, quantity: int) -> int:
        return int(quantity) * int(self.conversion_to_base or 1)


class ProductBatch(models.Model):
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='batches')
    batch_number = models.CharField(max_length=64)
    manufacture_date = models.DateField(null=True, blank=True)
    expiry_date = models.DateField(null=True, blank=True, db_index=True)
    warning_quantity = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = [('product', 'batch_number')]

    def __str__(self) -> str:
        return f"{self.product.product_code}#{self.batch_number}"


class Location(models.Model):
    """A storage point outside the main store, e.g. a treatment room."""
    name = models.CharField(max_length=120, unique=True)
    description = models.TextField(blank=True)
    branch = models.ForeignKey(Branch, null=True, blank=True, on_delete=models.SET_NULL, related_name='locations')

    def __str__(self) -> str:
        return self.name


# ---------------------------------------------------------------------------
# Stock & ledger
# ---------------------------------------------------------------------------

class Stock(models.Model):
    """Main-store quantity of one batch, in base units."""
    STATUS_CHOICES = [
        ('Available', 'Available'),
        ('OutOfStock', 'Out of stock'),
    ]
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='stocks')
    batch = models.OneToOneField(ProductBatch, on_delete=models.CASCADE, related_name='main_stock')
    quantity = models.PositiveIntegerField(default=0)
    original_quantity = models.PositiveIntegerField(default=0)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default='Available')
    updated_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    last_updated = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"main {self.batch} = {self.quantity}"


class LocationItemStock(models.Model):
    STATUS_CHOICES = [
        ('ACTIVE', 'Active'),
        ('RESERVED', 'Reserved'),
        ('FINISHED', 'Finished'),
        ('DAMAGED', 'Damaged'),
    ]
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='location_stocks')
    batch = models.ForeignKey(ProductBatch, on_delete=models.CASCADE, related_name='location_stocks')
    location = models.ForeignKey(Location, on_delete=models.CASCADE, related_name='stocks')
    quantity = models.PositiveIntegerField(default=0)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default='ACTIVE')
    last_updated = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = [('batch', 'location')]

    def __str__(self) -> str:
        return f"{self.location} {self.batch} = {self.quantity}"


class PersonalStock(models.Model):
    STATUS_CHOICES = [
        ('ACTIVE', 'Active'),
        ('RETURNED', 'Returned'),
        ('LOST', 'Lost'),
        ('FINISHED', 'Finished'),
    ]
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='personal_stocks')
    batch = models.ForeignKey(ProductBatch, on_delete=models.CASCADE, related_name='personal_stocks')
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='personal_stocks')
    quantity = models.PositiveIntegerField(default=0)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default='ACTIVE')
    last_updated = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = [('batch', 'user')]

    def __str__(self) -> str:
        return f"{self.user} {self.batch} = {self.quantity}"


class StockLedger(models.Model):
    """Append-only record of stock movements, quantities in base units."""
    STOCK_TYPE_CHOICES = [
        ('MAIN', 'Main store'),
        ('PERSONAL', 'Personal'),
        ('LOCATION', 'Location'),
    ]
    MOVEMENT_CHOICES = [
        ('IN', 'In'),
        ('OUT', 'Out'),
        ('TRANSFER', 'Transfer'),
        ('ADJUSTMENT', 'Adjustment'),
    ]
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='ledger')
    batch = models.ForeignKey(ProductBatch, null=True, blank=True, on_delete=models.SET_NULL, related_name='ledger')
    stock_type = models.CharField(max_length=10, choices=STOCK_TYPE_CHOICES)
    movement_type = models.CharField(max_length=10, choices=MOVEMENT_CHOICES)
    quantity = models.PositiveIntegerField()
    product_unit = models.ForeignKey(ProductUnit, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    original_quantity = models.IntegerField(null=True, blank=True)
    reference = models.CharField(max_length=64, blank=True, db_index=True)
    user = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='ledger_entries')
    location = models.ForeignKey(Location, null=True, blank=True, on_delete=models.SET_NULL, related_name='ledger')
    notes = models.CharField(max_length=255, blank=True)
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    movement_date = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        indexes = [
            models.Index(fields=['product', 'movement_date']),
            models.Index(fields=['stock_type', 'movement_type']),
        ]

    def __str__(self) -> str:
        return f"{self.stock_type} {self.movement_type} {self.quantity} {self.reference}"


# ---------------------------------------------------------------------------
# Purchases & requests
# ---------------------------------------------------------------------------

APPROVAL_CHOICES = [
    ('PENDING', 'Pending'),
    ('APPROVED', 'Approved'),
    ('REJECTED', 'Rejected'),
]


class Purchase(models.Model):
    invoice_no = models.CharField(max_length=64, unique=True)
    supplier = models.ForeignKey(Supplier, on_delete=models.PROTECT, related_name='purchases')
    approval_status = models.CharField(max_length=10, choices=APPROVAL_CHOICES, default='PENDING', db_index=True)
    total_products = models.PositiveIntegerField(default=0)
    total_quantity = models.PositiveIntegerField(default=0)
    total = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0'))
    notes = models.TextField(blank=True)
    purchase_date = models.DateField(default=timezone.localdate)
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    updated_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    approved_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"purchase {self.invoice_no} {self.approval_status}"


class PurchaseItem(models.Model):
    purchase = models.ForeignKey(Purchase, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='+')
    batch = models.ForeignKey(ProductBatch, on_delete=models.PROTECT, related_name='purchase_items')
    product_unit = models.ForeignKey(ProductUnit, on_delete=models.PROTECT, related_name='+')
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    total_price = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0'))

    def save(self, *args, **kwargs):
        self.total_price = self.unit_price * self.quantity
        super().save(*args, **kwargs)


REQUEST_NO_START = 100000


class InventoryRequest(models.Model):
    """Request to move stock from the main store to a staff member."""
    request_no = models.CharField(max_length=32, unique=True, blank=True)
    requested_by = models.ForeignKey(User, on_delete=models.CASCADE, related_name='inventory_requests')
    approval_status = models.CharField(max_length=10, choices=APPROVAL_CHOICES, default='PENDING', db_index=True)
    total_products = models.PositiveIntegerField(default=0)
    total_quantity = models.PositiveIntegerField(default=0)
    notes = models.TextField(blank=True)
    approved_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    approved_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.request_no} {self.approval_status}"

    NUMBERING_ATTEMPTS = 5

    @classmethod
    def next_request_no(cls) -> str:
        # longer digit strings are larger numbers, so sort by length first
        latest = (cls.objects.filter(request_no__regex=r'^REQ-[0-9]+$')
                  .order_by(Length('request_no').desc(), '-request_no')
                  .values_list('request_no', flat=True).first())
        return f"REQ-{int(latest[4:]) + 1 if latest else REQUEST_NO_START}"

    def save(self, *args, **kwargs):
        if self.request_no:
            return super().save(*args, **kwargs)
        # a concurrent insert may take the same number; retry with the next one
        for attempt in range(self.NUMBERING_ATTEMPTS):
            self.request_no = self.next_request_no()
            try:
                with transaction.atomic():
                    return super().save(*args, **kwargs)
            except IntegrityError:
                self.request_no = ''
                if attempt == self.NUMBERING_ATTEMPTS - 1:
                    raise


class InventoryRequestItem(models.Model):
    request = models.ForeignKey(InventoryRequest, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='+')
    batch = models.ForeignKey(ProductBatch, on_delete=models.PROTECT, related_name='+')
    product_unit = models.ForeignKey(ProductUnit, on_delete=models.PROTECT, related_name='+')
    requested_quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    approved_quantity = models.PositiveIntegerField(default=0)


class InventoryWithdrawalRequest(models.Model):
    """A staff member consuming items from their personal stock."""
    STATUS_CHOICES = [
        ('PENDING', 'Pending'),
        ('APPROVED', 'Approved'),
        ('REJECTED', 'Rejected'),
        ('ISSUED', 'Issued'),
        ('RETURNED', 'Returned'),
    ]
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='withdrawal_requests')
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='PENDING', db_index=True)
    notes = models.TextField(blank=True)
    approved_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    requested_at = models.DateTimeField(auto_now_add=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    issued_at = models.DateTimeField(null=True, blank=True)
    returned_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"withdrawal {self.id} {self.status}"


class InventoryWithdrawalItem(models.Model):
    request = models.ForeignKey(InventoryWithdrawalRequest, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='+')
    batch = models.ForeignKey(ProductBatch, on_delete=models.PROTECT, related_name='+')
    product_unit = models.ForeignKey(ProductUnit, on_delete=models.PROTECT, related_name='+')
    requested_quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    personal_stock = models.ForeignKey(
        PersonalStock, null=True, blank=True, on_delete=models.SET_NULL, related_name='+'
    )


class StockWithdrawalRequest(models.Model):
    """Transfer between the main store and locations."""
    KIND_CHOICES = [
        ('MAIN_TO_LOCATION', 'Main store to location'),
        ('LOCATION_TO_MAIN', 'Location to main store'),
        ('LOCATION_TO_LOCATION', 'Location to location'),
    ]
    STATUS_CHOICES = [
        ('PENDING', 'Pending'),
        ('REJECTED', 'Rejected'),
        ('ISSUED', 'Issued'),
    ]
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='stock_withdrawals')
    kind = models.CharField(max_length=24, choices=KIND_CHOICES, default='MAIN_TO_LOCATION')
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='PENDING', db_index=True)
    notes = models.TextField(blank=True)
    issued_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    issued_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def reference(self) -> str:
        return f"WD-{self.id}"

    def __str__(self) -> str:
        return f"{self.reference} {self.kind} {self.status}"


class StockWithdrawalItem(models.Model):
    request = models.ForeignKey(StockWithdrawalRequest, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='+')
    batch = models.ForeignKey(ProductBatch, on_delete=models.PROTECT, related_name='+')
    product_unit = models.ForeignKey(ProductUnit, on_delete=models.PROTECT, related_name='+')
    requested_quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    from_location = models.ForeignKey(Location, null=True, blank=True, on_delete=models.PROTECT, related_name='+')
    to_location = models.ForeignKey(Location, null=True, blank=True, on_delete=models.PROTECT, related_name='+')


class ManualStockCorrection(models.Model):
    """A counted difference between records and shelves, applied on approval."""
    TARGET_CHOICES = [
        ('MainStock', 'Main stock'),
        ('LocationStock', 'Location stock'),
        ('PersonalStock', 'Personal stock'),
    ]
    reference = models.CharField(max_length=64, unique=True)
    reason = models.CharField(max_length=255)
    status = models.CharField(max_length=10, choices=APPROVAL_CHOICES, default='PENDING', db_index=True)
    stock = models.CharField(max_length=16, choices=TARGET_CHOICES, default='MainStock')
    location = models.ForeignKey(Location, null=True, blank=True, on_delete=models.PROTECT, related_name='+')
    holder = models.ForeignKey(User, null=True, blank=True, on_delete=models.PROTECT, related_name='+')
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    approved_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    approved_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"correction {self.reference} {self.status}"


class ManualStockCorrectionItem(models.Model):
    correction = models.ForeignKey(ManualStockCorrection, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='+')
    batch = models.ForeignKey(ProductBatch, on_delete=models.PROTECT, related_name='+')
    product_unit = models.ForeignKey(ProductUnit, on_delete=models.PROTECT, related_name='+')
    quantity = models.IntegerField()
    notes = models.CharField(max_length=255, blank=True)


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------

class AuditEvent(models.Model):
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.IntegerField(blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at']),
            models.Index(fields=['object_type', 'object_id', 'created_at']),
        ]
