"""
URL mappings for the clinic API.

Paths carry no trailing slash. Nested resources hang off the patient
they belong to (``api/patients/<id>/invoices``) while documents are
addressed directly once created (``api/invoices/<id>``).
"""
from django.urls import path

from .auth_views import login_view, me_view, change_password_view, jwt_refresh_view, jwt_logout_view
from .views import (
    health, users, branches, audit, patients, appointments, catalog, invoices, credits, findings, expenses,
    company, statistics, inventory_catalog, stock, purchases, inventory_requests, withdrawals, corrections,
    proformas, health_records,
)

urlpatterns = [
    path('healthz', health.healthz, name='healthz'),

    # auth
    path('api/auth/login', login_view, name='login_view'),
    path('api/auth/me', me_view, name='me'),
    path('api/auth/password', change_password_view, name='change_password'),
    path('api/auth/refresh', jwt_refresh_view, name='jwt_refresh'),
    path('api/auth/logout', jwt_logout_view, name='jwt_logout'),

    # users & branches
    path('api/users', users.users_list, name='users'),
    path('api/users/<int:pk>', users.user_detail, name='user_detail'),
    path('api/users/<int:pk>/password', users.user_reset_password, name='user_reset_password'),
    path('api/users/<int:pk>/lock', users.user_lock, name='user_lock'),
    path('api/doctors', users.doctors_list, name='doctors'),
    path('api/system-lock/verify', users.system_lock_verify, name='system_lock_verify'),
    path('api/branches', branches.branches_list, name='branches'),
    path('api/branches/<int:pk>', branches.branch_detail, name='branch_detail'),
    path('api/audit', audit.audit_events, name='audit_events'),

    # patients
    path('api/patients', patients.patients_list, name='patients'),
    path('api/patients/recent', patients.patients_recent, name='patients_recent'),
    path('api/patients/monthly', patients.patients_monthly, name='patients_monthly'),
    path('api/patients/<int:pk>', patients.patient_detail, name='patient_detail'),
    path('api/patients/<int:pk>/advance', patients.patient_advance, name='patient_advance'),
    path('api/patients/<int:pk>/cards', patients.patient_cards, name='patient_cards'),
    path('api/patients/<int:pk>/appointments', appointments.patient_appointments, name='patient_appointments'),
    path('api/patients/<int:pk>/invoices', invoices.patient_invoices, name='patient_invoices'),
    path('api/patients/<int:pk>/credits', credits.patient_credits, name='patient_credits'),
    path('api/patients/<int:pk>/findings', findings.patient_findings, name='patient_findings'),
    path('api/patients/<int:pk>/proformas', proformas.patient_proformas, name='patient_proformas'),
    path('api/patients/<int:pk>/health-info', health_records.patient_health_info, name='patient_health_info'),
    path('api/patients/<int:pk>/notes', health_records.patient_notes, name='patient_notes'),

    # appointments
    path('api/appointments', appointments.appointments_by_day, name='appointments'),
    path('api/appointments/mine', appointments.my_appointments_today, name='my_appointments'),
    path('api/appointments/<int:pk>', appointments.appointment_detail, name='appointment_detail'),

    # service catalogue & organisations
    path('api/service-categories', catalog.categories_list, name='service_categories'),
    path('api/service-categories/<int:pk>', catalog.category_detail, name='service_category_detail'),
    path('api/services', catalog.services_list, name='services'),
    path('api/services/<int:pk>', catalog.service_detail, name='service_detail'),
    path('api/organizations', catalog.organizations_list, name='organizations'),
    path('api/organizations/<int:pk>', catalog.organization_detail, name='organization_detail'),
    path('api/org-services', catalog.org_services_list, name='org_services'),
    path('api/org-services/<int:pk>', catalog.org_service_detail, name='org_service_detail'),

    # invoices & credits
    path('api/invoices/unconfirmed', invoices.invoices_unconfirmed, name='invoices_unconfirmed'),
    path('api/invoices/<int:pk>', invoices.invoice_detail, name='invoice_detail'),
    path('api/invoices/<int:pk>/confirm', invoices.invoice_confirm, name='invoice_confirm'),
    path('api/payments/report', invoices.payment_report_view, name='payment_report'),
    path('api/proformas/<int:pk>', proformas.proforma_detail, name='proforma_detail'),
    path('api/credits/confirm', credits.credits_bulk_confirm, name='credits_bulk_confirm'),
    path('api/credits/unconfirmed', credits.credits_unconfirmed, name='credits_unconfirmed'),
    path('api/credits/report', credits.credit_report_view, name='credit_report'),
    path('api/credits/<int:pk>', credits.credit_detail, name='credit_detail'),
    path('api/credits/<int:pk>/confirm', credits.credit_confirm, name='credit_confirm'),
    path('api/credits/<int:pk>/settle', credits.credit_settle, name='credit_settle'),

    # medical findings
    path('api/findings/<int:pk>', findings.finding_detail, name='finding_detail'),
    path('api/diseases', findings.diseases_list, name='diseases'),
    path('api/diseases/<int:pk>', findings.disease_detail, name='disease_detail'),
    path('api/procedures', findings.procedures_list, name='procedures'),
    path('api/procedures/<int:pk>', findings.procedure_detail, name='procedure_detail'),
    path('api/health-info/<int:pk>', health_records.health_info_detail, name='health_info_detail'),
    path('api/notes/<int:pk>', health_records.note_detail, name='note_detail'),

    # expenses
    path('api/expenses', expenses.expenses_list, name='expenses'),
    path('api/expenses/report', expenses.expense_report, name='expense_report'),
    path('api/expenses/<int:pk>', expenses.expense_detail, name='expense_detail'),
    path('api/finance/summary', expenses.financial_summary_view, name='financial_summary'),

    # company
    path('api/company', company.company_profile, name='company_profile'),
    path('api/announcements', company.announcements_list, name='announcements'),
    path('api/announcements/<int:pk>', company.announcement_detail, name='announcement_detail'),

    # statistics
    path('api/statistics/demographics', statistics.demographics_view, name='stats_demographics'),
    path('api/statistics/diseases', statistics.disease_statistics_view, name='stats_diseases'),
    path('api/statistics/services', statistics.service_ranking_view, name='stats_services'),
    path('api/statistics/branches', statistics.branch_summary_view, name='stats_branches'),
    path('api/statistics/front-desk', statistics.front_desk_view, name='stats_front_desk'),

    # inventory catalogue
    path('api/inventory/categories', inventory_catalog.product_categories, name='product_categories'),
    path('api/inventory/categories/<int:pk>', inventory_catalog.product_category_detail,
         name='product_category_detail'),
    path('api/inventory/subcategories', inventory_catalog.subcategories, name='subcategories'),
    path('api/inventory/subcategories/<int:pk>', inventory_catalog.subcategory_detail, name='subcategory_detail'),
    path('api/inventory/suppliers', inventory_catalog.suppliers, name='suppliers'),
    path('api/inventory/suppliers/<int:pk>', inventory_catalog.supplier_detail, name='supplier_detail'),
    path('api/inventory/units', inventory_catalog.units_of_measure, name='units_of_measure'),
    path('api/inventory/units/<int:pk>', inventory_catalog.unit_of_measure_detail, name='unit_of_measure_detail'),
    path('api/inventory/locations', inventory_catalog.locations, name='locations'),
    path('api/inventory/locations/<int:pk>', inventory_catalog.location_detail, name='location_detail'),
    path('api/inventory/products', inventory_catalog.products, name='products'),
    path('api/inventory/products/<int:pk>', inventory_catalog.product_detail, name='product_detail'),
    path('api/inventory/products/<int:pk>/units', inventory_catalog.product_units, name='product_units'),
    path('api/inventory/products/<int:pk>/batches', inventory_catalog.product_batches, name='product_batches'),
    path('api/inventory/product-units/<int:pk>', inventory_catalog.product_unit_detail, name='product_unit_detail'),
    path('api/inventory/batches/<int:pk>', inventory_catalog.product_batch_detail, name='product_batch_detail'),

    # stock
    path('api/inventory/stock', stock.main_stock, name='main_stock'),
    path('api/inventory/locations/<int:pk>/stock', stock.location_stock, name='location_stock'),
    path('api/inventory/personal-stock', stock.personal_stock, name='personal_stock'),
    path('api/inventory/ledger', stock.ledger, name='stock_ledger'),
    path('api/inventory/overview', stock.overview, name='stock_overview'),
    path('api/inventory/dashboard', stock.inventory_dashboard, name='inventory_dashboard'),
    path('api/inventory/low-stock', stock.low_stock_view, name='low_stock'),
    path('api/inventory/expiring', stock.expiring_view, name='expiring'),

    # stock documents
    path('api/inventory/purchases', purchases.purchases_list, name='purchases'),
    path('api/inventory/purchases/<int:pk>', purchases.purchase_detail, name='purchase_detail'),
    path('api/inventory/purchases/<int:pk>/status', purchases.purchase_status, name='purchase_status'),
    path('api/inventory/requests', inventory_requests.requests_list, name='inventory_requests'),
    path('api/inventory/requests/<int:pk>', inventory_requests.request_detail, name='inventory_request_detail'),
    path('api/inventory/requests/<int:pk>/status', inventory_requests.request_approval,
         name='inventory_request_status'),
    path('api/inventory/withdrawals', withdrawals.withdrawals_list, name='withdrawals'),
    path('api/inventory/withdrawals/<int:pk>', withdrawals.withdrawal_detail, name='withdrawal_detail'),
    path('api/inventory/withdrawals/<int:pk>/status', withdrawals.withdrawal_status, name='withdrawal_status'),
    path('api/inventory/transfers', withdrawals.transfers_list, name='transfers'),
    path('api/inventory/transfers/<int:pk>', withdrawals.transfer_detail, name='transfer_detail'),
    path('api/inventory/transfers/<int:pk>/status', withdrawals.transfer_status, name='transfer_status'),
    path('api/inventory/corrections', corrections.corrections_list, name='corrections'),
    path('api/inventory/corrections/<int:pk>', corrections.correction_detail, name='correction_detail'),
]
