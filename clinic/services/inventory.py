"""
Stock movements for the main store, treatment locations and staff.

Every function that changes a stock row locks it with
``select_for_update`` and appends one :class:`StockLedger` row. The
request-level flows (purchase approval, request approval, withdrawals,
transfers and corrections) run all of their movements inside one
transaction so a failing line rolls back the lines before it.

All stored quantities are base units; ``ProductUnit.to_base`` converts a
requested quantity in a packaging unit.
"""
import logging
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.db.models import Sum
from django.utils import timezone
from rest_framework.exceptions import PermissionDenied, ValidationError

from clinic.exceptions import InsufficientStock, InvalidTransition
from clinic.models import (
    APPROVAL_CHOICES, Product, ProductBatch, ProductUnit, Location, Stock, LocationItemStock, PersonalStock,
    StockLedger, Purchase, PurchaseItem, Supplier, InventoryRequest, InventoryRequestItem,
    InventoryWithdrawalRequest, InventoryWithdrawalItem, StockWithdrawalRequest, StockWithdrawalItem,
    ManualStockCorrection, ManualStockCorrectionItem,
)
from clinic.services.audit import log_action

logger = logging.getLogger(__name__)

APPROVAL_STATUSES = {value for value, _ in APPROVAL_CHOICES}

WITHDRAWAL_TRANSITIONS = {
    'PENDING': {'APPROVED', 'REJECTED', 'ISSUED'},
    'APPROVED': {'ISSUED', 'REJECTED'},
    'ISSUED': {'RETURNED'},
}


def normalize_status(value, allowed) -> str:
    status = str(value or '').strip().upper()
    if status not in allowed:
        raise ValidationError({'status': f"status must be one of {', '.join(sorted(allowed))}"})
    return status


# ---------------------------------------------------------------------------
# Ledger & stock primitives
# ---------------------------------------------------------------------------

def record_movement(*, batch, stock_type, movement_type, quantity, unit=None, original_quantity=None,
                    reference='', user=None, location=None, notes='', actor=None) -> StockLedger:
    if stock_type == 'PERSONAL' and user is None:
        raise ValueError('personal stock movements need a holder')
    return StockLedger.objects.create(
        product_id=batch.product_id,
        batch=batch,
        stock_type=stock_type,
        movement_type=movement_type,
        quantity=quantity,
        product_unit=unit,
        original_quantity=original_quantity,
        reference=reference,
        user=user,
        location=location,
        notes=notes,
        created_by=actor,
    )


def add_to_main(batch, base_qty: int, *, reference, actor, unit=None, original_quantity=None,
                movement_type='IN', notes='', received=False) -> Stock:
    """Put stock into the main store.

    Only goods ``received`` from a supplier count towards the batch's
    original quantity; returns and adjustments do not.
    """
    stock, _ = Stock.objects.select_for_update().get_or_create(
        batch=batch, defaults={'product_id': batch.product_id}
    )
    stock.quantity += base_qty
    if received:
        stock.original_quantity += base_qty
    stock.status = 'Available'
    stock.updated_by = actor
    stock.save()
    record_movement(batch=batch, stock_type='MAIN', movement_type=movement_type, quantity=base_qty, unit=unit,
                    original_quantity=original_quantity, reference=reference, actor=actor, notes=notes)
    return stock


def take_from_main(batch, base_qty: int, *, reference, actor, unit=None, original_quantity=None,
                   movement_type='OUT', notes='') -> Stock:
    stock = Stock.objects.select_for_update().filter(batch=batch).first()
    available = stock.quantity if stock else 0
    if available < base_qty:
        raise InsufficientStock(f'Insufficient stock for batch {batch.batch_number}',
                                batchId=batch.id, available=available, required=base_qty)
    stock.quantity -= base_qty
    stock.status = 'Available' if stock.quantity else 'OutOfStock'
    stock.updated_by = actor
    stock.save()
    record_movement(batch=batch, stock_type='MAIN', movement_type=movement_type, quantity=base_qty, unit=unit,
                    original_quantity=original_quantity, reference=reference, actor=actor, notes=notes)
    return stock


def add_to_personal(holder, batch, base_qty: int, *, reference, actor, unit=None, original_quantity=None,
                    movement_type='IN', notes='') -> PersonalStock:
    stock, _ = PersonalStock.objects.select_for_update().get_or_create(
        batch=batch, user=holder, defaults={'product_id': batch.product_id}
    )
    stock.quantity += base_qty
    stock.status = 'ACTIVE'
    stock.save()
    record_movement(batch=batch, stock_type='PERSONAL', movement_type=movement_type, quantity=base_qty, unit=unit,
                    original_quantity=original_quantity, reference=reference, user=holder, actor=actor, notes=notes)
    return stock


def take_from_personal(holder, batch, base_qty: int, *, reference, actor, unit=None, original_quantity=None,
                       movement_type='OUT', notes='') -> PersonalStock:
    stock = (PersonalStock.objects.select_for_update()
             .filter(batch=batch, user=holder, status__in=['ACTIVE', 'FINISHED']).first())
    available = stock.quantity if stock else 0
    if available < base_qty:
        raise InsufficientStock(f'Insufficient personal stock for batch {batch.batch_number}',
                                batchId=batch.id, available=available, required=base_qty)
    stock.quantity -= base_qty
    stock.status = 'ACTIVE' if stock.quantity else 'FINISHED'
    stock.save()
    record_movement(batch=batch, stock_type='PERSONAL', movement_type=movement_type, quantity=base_qty, unit=unit,
                    original_quantity=original_quantity, reference=reference, user=holder, actor=actor, notes=notes)
    return stock


def add_to_location(location, batch, base_qty: int, *, reference, actor, unit=None, original_quantity=None,
                    movement_type='IN', notes='') -> LocationItemStock:
    stock, _ = LocationItemStock.objects.select_for_update().get_or_create(
        batch=batch, location=location, defaults={'product_id': batch.product_id}
    )
    if stock.status == 'DAMAGED':
        raise InvalidTransition(f'Batch {batch.batch_number} is marked damaged at {location.name}',
                                batchId=batch.id, locationId=location.id)
    stock.quantity += base_qty
    stock.status = 'ACTIVE'
    stock.save()
    record_movement(batch=batch, stock_type='LOCATION', movement_type=movement_type, quantity=base_qty, unit=unit,
                    original_quantity=original_quantity, reference=reference, location=location, actor=actor,
                    notes=notes)
    return stock


def take_from_location(location, batch, base_qty: int, *, reference, actor, unit=None, original_quantity=None,
                       movement_type='OUT', notes='') -> LocationItemStock:
    stock = (LocationItemStock.objects.select_for_update()
             .filter(batch=batch, location=location).exclude(status='DAMAGED').first())
    available = stock.quantity if stock else 0
    if available < base_qty:
        raise InsufficientStock(f'Insufficient stock at {location.name} for batch {batch.batch_number}',
                                batchId=batch.id, locationId=location.id, available=available, required=base_qty)
    stock.quantity -= base_qty
    stock.status = 'ACTIVE' if stock.quantity else 'FINISHED'
    stock.save()
    record_movement(batch=batch, stock_type='LOCATION', movement_type=movement_type, quantity=base_qty, unit=unit,
                    original_quantity=original_quantity, reference=reference, location=location, actor=actor,
                    notes=notes)
    return stock


# ---------------------------------------------------------------------------
# Item validation
# ---------------------------------------------------------------------------

def resolve_line(data: dict) -> dict:
    """Look up product, batch and unit of one request line and check they agree."""
    product = Product.objects.filter(id=data['product']).first()
    if not product:
        raise ValidationError({'items': f"product {data['product']} not found"})
    unit = ProductUnit.objects.filter(id=data['productUnit'], product=product).first()
    if not unit:
        raise ValidationError({'items': f"unit {data['productUnit']} does not belong to product {product.id}"})
    batch = None
    if data.get('batch'):
        batch = ProductBatch.objects.filter(id=data['batch'], product=product).first()
        if not batch:
            raise ValidationError({'items': f"batch {data['batch']} does not belong to product {product.id}"})
    elif data.get('batchNumber'):
        batch, _ = ProductBatch.objects.get_or_create(
            product=product, batch_number=data['batchNumber'],
            defaults={
                'expiry_date': data.get('expiryDate'),
                'manufacture_date': data.get('manufactureDate'),
                'warning_quantity': data.get('warningQuantity') or 0,
            },
        )
    else:
        raise ValidationError({'items': 'batch or batchNumber is required'})
    return {'product': product, 'batch': batch, 'product_unit': unit}


def _require_items(items) -> None:
    if not items:
        raise ValidationError({'items': 'At least one item is required'})


# ---------------------------------------------------------------------------
# Purchases
# ---------------------------------------------------------------------------

def _write_purchase_items(purchase: Purchase, items: list[dict]) -> None:
    _require_items(items)
    total = Decimal('0')
    quantity = 0
    for data in items:
        line = resolve_line(data)
        item = PurchaseItem.objects.create(
            purchase=purchase, quantity=data['quantity'], unit_price=data.get('unitPrice') or Decimal('0'), **line
        )
        total += item.total_price
        quantity += item.quantity
    purchase.total_products = len(items)
    purchase.total_quantity = quantity
    purchase.total = total


def create_purchase(user, *, invoice_no, supplier_id, items, notes='', purchase_date=None) -> Purchase:
    if Purchase.objects.filter(invoice_no=invoice_no).exists():
        raise ValidationError({'invoiceNo': 'A purchase with this invoice number already exists'})
    supplier = Supplier.objects.filter(id=supplier_id).first()
    if not supplier:
        raise ValidationError({'supplier': 'supplier not found'})
    with transaction.atomic():
        purchase = Purchase.objects.create(
            invoice_no=invoice_no, supplier=supplier, notes=notes or '',
            purchase_date=purchase_date or timezone.localdate(), created_by=user,
        )
        _write_purchase_items(purchase, items)
        purchase.save()
    return purchase


def _ensure_pending(obj, field='approval_status', label='record') -> None:
    current = getattr(obj, field)
    if current != 'PENDING':
        raise InvalidTransition(f'{label} is already {current}', status=current)


def update_purchase(user, purchase: Purchase, *, supplier_id=None, items=None, notes=None) -> Purchase:
    with transaction.atomic():
        purchase = Purchase.objects.select_for_update().get(pk=purchase.pk)
        _ensure_pending(purchase, label='Purchase')
        if supplier_id is not None:
            supplier = Supplier.objects.filter(id=supplier_id).first()
            if not supplier:
                raise ValidationError({'supplier': 'supplier not found'})
            purchase.supplier = supplier
        if notes is not None:
            purchase.notes = notes
        if items is not None:
            purchase.items.all().delete()
            _write_purchase_items(purchase, items)
        purchase.updated_by = user
        purchase.save()
    return purchase


def delete_purchase(purchase: Purchase) -> None:
    _ensure_pending(purchase, label='Purchase')
    purchase.delete()


def set_purchase_status(user, purchase: Purchase, status) -> Purchase:
    """Approve or reject a pending purchase; approval stocks every line into the main store."""
    status = normalize_status(status, APPROVAL_STATUSES - {'PENDING'})
    with transaction.atomic():
        purchase = Purchase.objects.select_for_update().get(pk=purchase.pk)
        _ensure_pending(purchase, label='Purchase')
        if status == 'APPROVED':
            for item in purchase.items.select_related('batch', 'product_unit'):
                add_to_main(
                    item.batch, item.product_unit.to_base(item.quantity),
                    reference=purchase.invoice_no, actor=user, unit=item.product_unit,
                    original_quantity=item.quantity, notes='purchase', received=True,
                )
            purchase.approved_at = timezone.now()
        purchase.approval_status = status
        purchase.updated_by = user
        purchase.save()
        log_action(user=user, action='purchase_status', object_type='purchase', object_id=purchase.id,
                   detail={'status': status, 'invoiceNo': purchase.invoice_no})
    logger.info('purchase %s %s', purchase.invoice_no, status)
    return purchase


# ---------------------------------------------------------------------------
# Inventory requests (main store -> personal)
# ---------------------------------------------------------------------------

def create_inventory_request(user, *, items, notes='') -> InventoryRequest:
    _require_items(items)
    lines = [(resolve_line(data), data['requestedQuantity']) for data in items]
    with transaction.atomic():
        req = InventoryRequest.objects.create(
            requested_by=user, notes=notes or '',
            total_products=len(lines), total_quantity=sum(qty for _, qty in lines),
        )
        for line, qty in lines:
            InventoryRequestItem.objects.create(request=req, requested_quantity=qty, **line)
    return req


def update_inventory_request(user, req: InventoryRequest, *, items=None, notes=None) -> InventoryRequest:
    with transaction.atomic():
        req = InventoryRequest.objects.select_for_update().get(pk=req.pk)
        _ensure_pending(req, label='Request')
        if req.requested_by_id != user.id and not user.is_clinic_admin:
            raise PermissionDenied('Only the requester can change this request')
        if notes is not None:
            req.notes = notes
        if items is not None:
            _require_items(items)
            lines = [(resolve_line(data), data['requestedQuantity']) for data in items]
            req.items.all().delete()
            for line, qty in lines:
                InventoryRequestItem.objects.create(request=req, requested_quantity=qty, **line)
            req.total_products = len(lines)
            req.total_quantity = sum(qty for _, qty in lines)
        req.save()
    return req


def approve_inventory_request(user, req: InventoryRequest, status, approved_items=None) -> InventoryRequest:
    """Approve or reject a pending request.

    ``approved_items`` is a list of ``{'itemId', 'approvedQuantity'}``;
    lines not listed are approved in full. On approval each approved line
    leaves the main store and lands in the requester's personal stock.
    """
    status = normalize_status(status, APPROVAL_STATUSES - {'PENDING'})
    overrides = {}
    for entry in approved_items or []:
        overrides[int(entry['itemId'])] = int(entry['approvedQuantity'])
    with transaction.atomic():
        req = InventoryRequest.objects.select_for_update().get(pk=req.pk)
        _ensure_pending(req, label='Request')
        items = list(req.items.select_related('batch', 'product_unit'))
        unknown = set(overrides) - {item.id for item in items}
        if unknown:
            raise ValidationError({'items': f'items {sorted(unknown)} are not part of this request'})
        if status == 'APPROVED':
            for item in items:
                approved = overrides.get(item.id, item.requested_quantity)
                if approved < 0 or approved > item.requested_quantity:
                    raise ValidationError({'items': f'approved quantity for item {item.id} is out of range'})
                item.approved_quantity = approved
                item.save(update_fields=['approved_quantity'])
                if approved <= 0:
                    continue
                base_qty = item.product_unit.to_base(approved)
                take_from_main(item.batch, base_qty, reference=req.request_no, actor=user,
                               unit=item.product_unit, original_quantity=approved, notes='request issue')
                add_to_personal(req.requested_by, item.batch, base_qty, reference=req.request_no, actor=user,
                                unit=item.product_unit, original_quantity=approved, notes='request issue')
        req.approval_status = status
        req.approved_by = user
        req.approved_at = timezone.now()
        req.save()
        log_action(user=user, action='inventory_request_status', object_type='inventory_request',
                   object_id=req.id, detail={'status': status, 'requestNo': req.request_no})
    logger.info('inventory request %s %s', req.request_no, status)
    return req


# ---------------------------------------------------------------------------
# Withdrawal requests (personal consumption)
# ---------------------------------------------------------------------------

def create_withdrawal(user, *, items, notes='') -> InventoryWithdrawalRequest:
    _require_items(items)
    lines = [(resolve_line(data), data['requestedQuantity']) for data in items]
    with transaction.atomic():
        req = InventoryWithdrawalRequest.objects.create(user=user, notes=notes or '')
        for line, qty in lines:
            InventoryWithdrawalItem.objects.create(request=req, requested_quantity=qty, **line)
    return req


def change_withdrawal_status(user, req: InventoryWithdrawalRequest, status) -> InventoryWithdrawalRequest:
    status = normalize_status(status, {value for value, _ in InventoryWithdrawalRequest.STATUS_CHOICES})
    reference = f'IW-{req.id}'
    with transaction.atomic():
        req = InventoryWithdrawalRequest.objects.select_for_update().get(pk=req.pk)
        if status not in WITHDRAWAL_TRANSITIONS.get(req.status, set()):
            raise InvalidTransition(f'Cannot move a {req.status} request to {status}', status=req.status)
        now = timezone.now()
        if status == 'APPROVED':
            req.approved_at = now
            req.approved_by = user
        elif status == 'ISSUED':
            for item in req.items.select_related('batch', 'product_unit'):
                base_qty = item.product_unit.to_base(item.requested_quantity)
                item.personal_stock = take_from_personal(
                    req.user, item.batch, base_qty, reference=reference, actor=user,
                    unit=item.product_unit, original_quantity=item.requested_quantity, notes='withdrawal',
                )
                item.save(update_fields=['personal_stock'])
            req.issued_at = now
        elif status == 'RETURNED':
            for item in req.items.select_related('batch', 'product_unit'):
                base_qty = item.product_unit.to_base(item.requested_quantity)
                add_to_personal(req.user, item.batch, base_qty, reference=reference, actor=user,
                                unit=item.product_unit, original_quantity=item.requested_quantity, notes='return')
            req.returned_at = now
        req.status = status
        req.save()
    logger.info('withdrawal %s %s', req.id, status)
    return req


# ---------------------------------------------------------------------------
# Stock transfers between the main store and locations
# ---------------------------------------------------------------------------

def _location(value):
    if not value:
        return None
    location = Location.objects.filter(id=value).first()
    if not location:
        raise ValidationError({'items': f'location {value} not found'})
    return location


def create_stock_withdrawal(user, *, kind, items, notes='') -> StockWithdrawalRequest:
    _require_items(items)
    lines = []
    for data in items:
        line = resolve_line(data)
        source = _location(data.get('fromLocation'))
        target = _location(data.get('toLocation'))
        if kind in ('LOCATION_TO_MAIN', 'LOCATION_TO_LOCATION') and not source:
            raise ValidationError({'items': 'fromLocation is required'})
        if kind in ('MAIN_TO_LOCATION', 'LOCATION_TO_LOCATION') and not target:
            raise ValidationError({'items': 'toLocation is required'})
        if kind == 'LOCATION_TO_LOCATION' and source.id == target.id:
            raise ValidationError({'items': 'fromLocation and toLocation must differ'})
        lines.append((line, data['requestedQuantity'], source, target))
    with transaction.atomic():
        req = StockWithdrawalRequest.objects.create(user=user, kind=kind, notes=notes or '')
        for line, qty, source, target in lines:
            StockWithdrawalItem.objects.create(
                request=req, requested_quantity=qty,
                from_location=source if kind != 'MAIN_TO_LOCATION' else None,
                to_location=target if kind != 'LOCATION_TO_MAIN' else None,
                **line,
            )
    return req


def change_stock_withdrawal_status(user, req: StockWithdrawalRequest, status) -> StockWithdrawalRequest:
    status = normalize_status(status, {value for value, _ in StockWithdrawalRequest.STATUS_CHOICES})
    with transaction.atomic():
        req = StockWithdrawalRequest.objects.select_for_update().get(pk=req.pk)
        if req.status in ('ISSUED', 'REJECTED'):
            raise InvalidTransition(f'Request is already {req.status} and cannot be modified', status=req.status)
        if status == 'ISSUED':
            for item in req.items.select_related('batch', 'product_unit', 'from_location', 'to_location'):
                base_qty = item.product_unit.to_base(item.requested_quantity)
                kwargs = dict(reference=req.reference, actor=user, unit=item.product_unit,
                              original_quantity=item.requested_quantity, notes=req.kind.lower())
                if req.kind == 'MAIN_TO_LOCATION':
                    take_from_main(item.batch, base_qty, **kwargs)
                else:
                    take_from_location(item.from_location, item.batch, base_qty, **kwargs)
                if req.kind == 'LOCATION_TO_MAIN':
                    add_to_main(item.batch, base_qty, **kwargs)
                else:
                    add_to_location(item.to_location, item.batch, base_qty, **kwargs)
            req.issued_at = timezone.now()
            req.issued_by = user
        req.status = status
        req.save()
        log_action(user=user, action='stock_transfer_status', object_type='stock_withdrawal',
                   object_id=req.id, detail={'status': status, 'kind': req.kind})
    logger.info('stock transfer %s %s', req.reference, status)
    return req


# ---------------------------------------------------------------------------
# Manual corrections
# ---------------------------------------------------------------------------

def _check_correction_target(stock, location, holder) -> None:
    if stock == 'LocationStock' and not location:
        raise ValidationError({'location': 'location is required for location stock corrections'})
    if stock == 'PersonalStock' and not holder:
        raise ValidationError({'holder': 'holder is required for personal stock corrections'})


def _write_correction_items(correction, items) -> None:
    _require_items(items)
    for data in items:
        if not data.get('quantity'):
            raise ValidationError({'items': 'quantity must not be zero'})
        ManualStockCorrectionItem.objects.create(
            correction=correction, quantity=data['quantity'], notes=data.get('notes') or '', **resolve_line(data)
        )


def create_correction(user, *, reference, reason, stock, items, location=None, holder=None, notes='') -> ManualStockCorrection:
    if ManualStockCorrection.objects.filter(reference=reference).exists():
        raise ValidationError({'reference': 'A correction with this reference already exists'})
    _check_correction_target(stock, location, holder)
    with transaction.atomic():
        correction = ManualStockCorrection.objects.create(
            reference=reference, reason=reason, stock=stock, location=location, holder=holder,
            notes=notes or '', created_by=user,
        )
        _write_correction_items(correction, items)
    return correction


def _apply_correction(user, correction: ManualStockCorrection) -> None:
    for item in correction.items.select_related('batch', 'product_unit'):
        base_qty = item.product_unit.to_base(abs(item.quantity))
        kwargs = dict(reference=correction.reference, actor=user, unit=item.product_unit,
                      original_quantity=item.quantity, movement_type='ADJUSTMENT', notes=correction.reason[:255])
        increase = item.quantity > 0
        if correction.stock == 'MainStock':
            (add_to_main if increase else take_from_main)(item.batch, base_qty, **kwargs)
        elif correction.stock == 'LocationStock':
            (add_to_location if increase else take_from_location)(correction.location, item.batch, base_qty, **kwargs)
        else:
            (add_to_personal if increase else take_from_personal)(correction.holder, item.batch, base_qty, **kwargs)


def update_correction(user, correction: ManualStockCorrection, *, status=None, reason=None, notes=None,
                      items=None) -> ManualStockCorrection:
    """Edit or decide a pending correction. Approval applies every line."""
    if status is not None:
        status = normalize_status(status, APPROVAL_STATUSES)
    with transaction.atomic():
        correction = ManualStockCorrection.objects.select_for_update().get(pk=correction.pk)
        _ensure_pending(correction, field='status', label='Correction')
        if reason is not None:
            correction.reason = reason
        if notes is not None:
            correction.notes = notes
        if items is not None:
            correction.items.all().delete()
            _write_correction_items(correction, items)
        if status == 'APPROVED':
            _apply_correction(user, correction)
            correction.approved_by = user
            correction.approved_at = timezone.now()
        if status is not None:
            correction.status = status
        correction.save()
        if status in ('APPROVED', 'REJECTED'):
            log_action(user=user, action='stock_correction_status', object_type='stock_correction',
                       object_id=correction.id, detail={'status': status, 'reference': correction.reference})
    return correction


def delete_correction(correction: ManualStockCorrection) -> None:
    _ensure_pending(correction, field='status', label='Correction')
    correction.delete()


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

def _latest_base_prices() -> dict:
    """Latest purchase price per base unit, keyed by batch id."""
    prices = {}
    items = (PurchaseItem.objects.filter(purchase__approval_status='APPROVED')
             .select_related('product_unit').order_by('purchase__purchase_date', 'id'))
    for item in items:
        conversion = item.product_unit.conversion_to_base or 1
        prices[item.batch_id] = item.unit_price / conversion
    return prices


def _batch_totals() -> dict:
    totals: dict[int, int] = {}
    for model in (Stock, LocationItemStock, PersonalStock):
        for row in model.objects.values('batch_id').annotate(q=Sum('quantity')):
            totals[row['batch_id']] = totals.get(row['batch_id'], 0) + (row['q'] or 0)
    return totals


def low_stock(threshold_default=None):
    threshold_default = settings.LOW_STOCK_DEFAULT if threshold_default is None else threshold_default
    rows = []
    for stock in Stock.objects.select_related('batch', 'product'):
        threshold = stock.batch.warning_quantity or threshold_default
        if stock.quantity <= threshold:
            rows.append({
                'productId': stock.product_id,
                'productName': stock.product.name,
                'batchId': stock.batch_id,
                'batchNumber': stock.batch.batch_number,
                'quantity': stock.quantity,
                'warningQuantity': threshold,
            })
    return rows


def expiring_batches(days=None):
    days = settings.EXPIRY_WARNING_DAYS if days is None else days
    limit = timezone.localdate() + timedelta(days=days)
    qs = (Stock.objects.select_related('batch', 'product')
          .filter(quantity__gt=0, batch__expiry_date__isnull=False, batch__expiry_date__lte=limit)
          .order_by('batch__expiry_date'))
    return [{
        'productId': s.product_id,
        'productName': s.product.name,
        'batchId': s.batch_id,
        'batchNumber': s.batch.batch_number,
        'expiryDate': s.batch.expiry_date.isoformat(),
        'quantity': s.quantity,
    } for s in qs]


def dashboard() -> dict:
    prices = _latest_base_prices()
    value = sum((prices.get(batch_id, Decimal('0')) * qty for batch_id, qty in _batch_totals().items()),
                Decimal('0'))
    pending = (InventoryRequest.objects.filter(approval_status='PENDING').count()
               + InventoryWithdrawalRequest.objects.filter(status='PENDING').count())
    return {
        'totalProducts': Product.objects.count(),
        'totalStockValue': round(float(value), 2),
        'lowStockAlerts': low_stock(),
        'pendingRequests': pending,
        'activeSuppliers': Purchase.objects.values('supplier_id').distinct().count(),
        'expiringSoon': expiring_batches(),
    }


def stock_overview(product_id=None) -> list[dict]:
    products = Product.objects.all().order_by('name')
    if product_id:
        products = products.filter(id=product_id)

    def totals(model):
        return {row['product_id']: row['q'] or 0
                for row in model.objects.values('product_id').annotate(q=Sum('quantity'))}

    main, located, personal = totals(Stock), totals(LocationItemStock), totals(PersonalStock)
    return [{
        'productId': p.id,
        'productCode': p.product_code,
        'name': p.name,
        'main': main.get(p.id, 0),
        'location': located.get(p.id, 0),
        'personal': personal.get(p.id, 0),
        'total': main.get(p.id, 0) + located.get(p.id, 0) + personal.get(p.id, 0),
    } for p in products]


def ledger_queryset(*, product=None, batch=None, stock_type=None, movement_type=None, start=None, end=None):
    qs = StockLedger.objects.select_related('product', 'batch', 'user', 'location').order_by('-movement_date', '-id')
    if product:
        qs = qs.filter(product_id=product)
    if batch:
        qs = qs.filter(batch_id=batch)
    if stock_type:
        qs = qs.filter(stock_type=stock_type.upper())
    if movement_type:
        qs = qs.filter(movement_type=movement_type.upper())
    if start:
        qs = qs.filter(movement_date__date__gte=start)
    if end:
        qs = qs.filter(movement_date__date__lte=end)
    return qs
