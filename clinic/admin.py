"""
Django admin registrations for the clinic models.

The admin doubles as the data-entry surface for staff records that have
no dedicated API form (company letterhead, catalogue clean-up).
"""

from django.contrib import admin

from .models import (
    Branch, User, Patient, Card, Appointment, ServiceCategory, Service, Organization, OrgService,
    Invoice, InvoiceItem, Credit, CreditItem, Proforma, ProformaItem, PaymentHistory, Expense, Disease,
    MedicalFinding, HealthInfo, PatientNote, Procedure,
    CompanyProfile, Announcement, ProductCategory, SubCategory, Supplier, UnitOfMeasure, Product, ProductUnit,
    ProductBatch, Location, Stock, LocationItemStock, PersonalStock, StockLedger, Purchase, PurchaseItem,
    InventoryRequest, InventoryRequestItem, InventoryWithdrawalRequest, StockWithdrawalRequest,
    ManualStockCorrection, AuditEvent,
)


@admin.register(Branch)
class BranchAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'location', 'phone', 'manager')
    search_fields = ('name', 'location')


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'role', 'branch', 'lock', 'deadline', 'is_active')
    list_filter = ('role', 'branch', 'lock')
    search_fields = ('username', 'first_name', 'last_name', 'phone')


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ('card_no', 'first_name', 'sex', 'age', 'phone', 'branch', 'created_at')
    list_filter = ('branch', 'sex', 'credit')
    search_fields = ('card_no', 'first_name', 'phone')


admin.site.register(Card)


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'doctor', 'appointment_date', 'appointment_time', 'status')
    list_filter = ('status', 'branch')


@admin.register(Service)
class ServiceAdmin(admin.ModelAdmin):
    list_display = ('name', 'category', 'price')
    list_filter = ('category',)
    search_fields = ('name',)


admin.site.register(ServiceCategory)
admin.site.register(Organization)
admin.site.register(OrgService)


class InvoiceItemInline(admin.TabularInline):
    model = InvoiceItem
    extra = 0


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ('id', 'customer_name', 'card_no', 'status', 'total_amount', 'total_paid', 'balance')
    list_filter = ('status', 'branch')
    search_fields = ('customer_name', 'card_no')
    inlines = [InvoiceItemInline]


class CreditItemInline(admin.TabularInline):
    model = CreditItem
    extra = 0


@admin.register(Credit)
class CreditAdmin(admin.ModelAdmin):
    list_display = ('id', 'customer_name', 'organization', 'status', 'total_amount', 'total_paid', 'balance')
    list_filter = ('status', 'organization')
    inlines = [CreditItemInline]


class ProformaItemInline(admin.TabularInline):
    model = ProformaItem
    extra = 0


@admin.register(Proforma)
class ProformaAdmin(admin.ModelAdmin):
    list_display = ('id', 'customer_name', 'card_no', 'total_amount', 'branch', 'created_at')
    inlines = [ProformaItemInline]


@admin.register(PaymentHistory)
class PaymentHistoryAdmin(admin.ModelAdmin):
    list_display = ('id', 'source', 'customer_name', 'amount', 'created_by', 'branch', 'created_at')
    list_filter = ('source', 'branch')


@admin.register(Expense)
class ExpenseAdmin(admin.ModelAdmin):
    list_display = ('description', 'category', 'amount', 'expense_date', 'branch')
    list_filter = ('category', 'branch')


admin.site.register(Disease)


@admin.register(MedicalFinding)
class MedicalFindingAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'created_by', 'created_at')


@admin.register(HealthInfo)
class HealthInfoAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'blood_group', 'created_by', 'created_at')


admin.site.register(PatientNote)
admin.site.register(Procedure)


admin.site.register(CompanyProfile)
admin.site.register(Announcement)
admin.site.register(ProductCategory)
admin.site.register(SubCategory)
admin.site.register(Supplier)
admin.site.register(UnitOfMeasure)


class ProductUnitInline(admin.TabularInline):
    model = ProductUnit
    extra = 0


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ('product_code', 'name', 'category', 'sub_category')
    search_fields = ('product_code', 'name')
    inlines = [ProductUnitInline]


admin.site.register(ProductBatch)
admin.site.register(Location)


@admin.register(Stock)
class StockAdmin(admin.ModelAdmin):
    list_display = ('product', 'batch', 'quantity', 'status', 'last_updated')
    list_filter = ('status',)


admin.site.register(LocationItemStock)
admin.site.register(PersonalStock)


@admin.register(StockLedger)
class StockLedgerAdmin(admin.ModelAdmin):
    list_display = ('movement_date', 'stock_type', 'movement_type', 'product', 'batch', 'quantity', 'reference')
    list_filter = ('stock_type', 'movement_type')
    search_fields = ('reference',)


class PurchaseItemInline(admin.TabularInline):
    model = PurchaseItem
    extra = 0


@admin.register(Purchase)
class PurchaseAdmin(admin.ModelAdmin):
    list_display = ('invoice_no', 'supplier', 'approval_status', 'total', 'purchase_date')
    list_filter = ('approval_status',)
    inlines = [PurchaseItemInline]


class InventoryRequestItemInline(admin.TabularInline):
    model = InventoryRequestItem
    extra = 0


@admin.register(InventoryRequest)
class InventoryRequestAdmin(admin.ModelAdmin):
    list_display = ('request_no', 'requested_by', 'approval_status', 'created_at')
    list_filter = ('approval_status',)
    inlines = [InventoryRequestItemInline]


admin.site.register(InventoryWithdrawalRequest)
admin.site.register(StockWithdrawalRequest)
admin.site.register(ManualStockCorrection)


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('created_at', 'user', 'action', 'object_type', 'object_id')
    list_filter = ('action', 'object_type')
