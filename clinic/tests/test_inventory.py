
import pytest

from clinic.models import (
    Supplier, Product, ProductUnit, ProductBatch, Location, Stock, PersonalStock, LocationItemStock, StockLedger,
    InventoryRequest, ManualStockCorrection,
)
from clinic.services.inventory import add_to_main, add_to_personal, add_to_location


@pytest.fixture
def supplier(db):
    return Supplier.objects.create(name='Dental Supplies PLC')


@pytest.fixture
def gloves(db):
    product = Product.objects.create(product_code='GLV-01', name='Gloves')
    piece = ProductUnit.objects.create(product=product, name='piece', conversion_to_base=1, is_base=True)
    box = ProductUnit.objects.create(product=product, name='box', conversion_to_base=100)
    return product, piece, box


@pytest.fixture
def batch(gloves):
    return ProductBatch.objects.create(product=gloves[0], batch_number='B-1')


@pytest.fixture
def stocked(batch, store_keeper):
    add_to_main(batch, 200, reference='OPENING', actor=store_keeper, received=True)
    return batch


@pytest.fixture
def clinic_room(branch):
    return Location.objects.create(name='Room 1', branch=branch)


def _line(gloves, unit, qty_key='requestedQuantity', qty=1, **extra):
    product, piece, box = gloves
    line = {'product': product.id, 'productUnit': (box if unit == 'box' else piece).id, qty_key: qty}
    line.update(extra)
    return line


def _main(batch):
    return Stock.objects.get(batch=batch).quantity


def test_purchase_approval_stocks_base_units(client_for, store_keeper, supplier, gloves):
    client = client_for(store_keeper)
    r = client.post('/api/inventory/purchases', {
        'invoiceNo': 'PO-1', 'supplier': supplier.id,
        'items': [_line(gloves, 'box', 'quantity', 2, batchNumber='B-9', unitPrice='500.00')],
    }, format='json')
    assert r.status_code == 201
    assert r.data['approvalStatus'] == 'PENDING'
    assert r.data['total'] == 1000.0
    purchase_id = r.data['id']
    assert not Stock.objects.exists()

    r = client.post(f'/api/inventory/purchases/{purchase_id}/status', {'status': 'approved'}, format='json')
    assert r.status_code == 200
    assert r.data['approvalStatus'] == 'APPROVED'

    batch = ProductBatch.objects.get(batch_number='B-9')
    assert _main(batch) == 200
    entry = StockLedger.objects.get(batch=batch)
    assert (entry.stock_type, entry.movement_type, entry.quantity) == ('MAIN', 'IN', 200)
    assert entry.reference == 'PO-1'
    assert entry.original_quantity == 2
    assert Stock.objects.get(batch=batch).original_quantity == 200

    r = client.post(f'/api/inventory/purchases/{purchase_id}/status', {'status': 'APPROVED'}, format='json')
    assert r.status_code == 400
    assert r.data['error']['code'] == 'invalid_transition'
    assert _main(batch) == 200
    assert client.delete(f'/api/inventory/purchases/{purchase_id}').status_code == 400


def test_purchase_rules(client_for, store_keeper, doctor, supplier, gloves):
    client = client_for(store_keeper)
    body = {'invoiceNo': 'PO-2', 'supplier': supplier.id,
            'items': [_line(gloves, 'piece', 'quantity', 5, batchNumber='B-2', unitPrice='1.00')]}
    assert client.post('/api/inventory/purchases', body, format='json').status_code == 201
    assert client.post('/api/inventory/purchases', body, format='json').status_code == 400
    assert client.post('/api/inventory/purchases', {**body, 'invoiceNo': 'PO-3', 'items': []},
                       format='json').status_code == 400
    assert client_for(doctor).get('/api/inventory/purchases').status_code == 403


def test_request_approval_moves_stock_to_requester(client_for, doctor, store_keeper, gloves, stocked):
    r = client_for(doctor).post('/api/inventory/requests', {
        'items': [_line(gloves, 'piece', qty=30, batch=stocked.id)],
    }, format='json')
    assert r.status_code == 201
    assert r.data['requestNo'] == 'REQ-100000'
    item_id = r.data['items'][0]['id']

    r = client_for(store_keeper).post(f"/api/inventory/requests/{r.data['id']}/status", {
        'status': 'APPROVED', 'items': [{'itemId': item_id, 'approvedQuantity': 20}],
    }, format='json')
    assert r.status_code == 200
    assert r.data['approvalStatus'] == 'APPROVED'
    assert r.data['items'][0]['approvedQuantity'] == 20

    assert _main(stocked) == 180
    assert PersonalStock.objects.get(user=doctor, batch=stocked).quantity == 20
    moves = StockLedger.objects.filter(reference='REQ-100000')
    assert sorted(moves.values_list('stock_type', 'movement_type', 'quantity')) == [
        ('MAIN', 'OUT', 20), ('PERSONAL', 'IN', 20),
    ]
    assert moves.get(stock_type='PERSONAL').user_id == doctor.id


def test_request_with_insufficient_stock_changes_nothing(client_for, doctor, store_keeper, gloves, stocked):
    r = client_for(doctor).post('/api/inventory/requests', {
        'items': [_line(gloves, 'piece', qty=50, batch=stocked.id), _line(gloves, 'box', qty=2, batch=stocked.id)],
    }, format='json')
    request_id = r.data['id']

    r = client_for(store_keeper).post(f'/api/inventory/requests/{request_id}/status', {'status': 'APPROVED'},
                                      format='json')
    assert r.status_code == 400
    assert r.data['error']['code'] == 'insufficient_stock'
    assert _main(stocked) == 200
    assert not PersonalStock.objects.exists()
    assert InventoryRequest.objects.get(id=request_id).approval_status == 'PENDING'
    assert StockLedger.objects.filter(reference__startswith='REQ-').count() == 0


def test_requests_are_private_to_requester(client_for, doctor, reception, store_keeper, gloves, stocked):
    request_id = client_for(doctor).post('/api/inventory/requests', {
        'items': [_line(gloves, 'piece', qty=1, batch=stocked.id)],
    }, format='json').data['id']
    assert client_for(reception).get(f'/api/inventory/requests/{request_id}').status_code == 404
    assert client_for(reception).get('/api/inventory/requests').data == []
    assert len(client_for(store_keeper).get('/api/inventory/requests').data) == 1
    assert client_for(doctor).post(f'/api/inventory/requests/{request_id}/status', {'status': 'APPROVED'},
                                   format='json').status_code == 403


def test_withdrawal_issue_and_return(client_for, doctor, store_keeper, gloves, batch):
    add_to_personal(doctor, batch, 10, reference='SEED', actor=store_keeper)
    r = client_for(doctor).post('/api/inventory/withdrawals', {
        'items': [_line(gloves, 'piece', qty=4, batch=batch.id)],
    }, format='json')
    assert r.status_code == 201
    withdrawal_id = r.data['id']
    manager = client_for(store_keeper)

    r = manager.post(f'/api/inventory/withdrawals/{withdrawal_id}/status', {'status': 'RETURNED'}, format='json')
    assert r.status_code == 400
    assert r.data['error']['code'] == 'invalid_transition'

    r = manager.post(f'/api/inventory/withdrawals/{withdrawal_id}/status', {'status': 'ISSUED'}, format='json')
    assert r.status_code == 200
    assert r.data['issuedAt'] is not None
    assert PersonalStock.objects.get(user=doctor, batch=batch).quantity == 6

    r = manager.post(f'/api/inventory/withdrawals/{withdrawal_id}/status', {'status': 'RETURNED'}, format='json')
    assert r.status_code == 200
    assert PersonalStock.objects.get(user=doctor, batch=batch).quantity == 10

    r = manager.post(f'/api/inventory/withdrawals/{withdrawal_id}/status', {'status': 'ISSUED'}, format='json')
    assert r.status_code == 400


def test_withdrawal_beyond_personal_stock_fails(client_for, doctor, store_keeper, gloves, batch):
    add_to_personal(doctor, batch, 3, reference='SEED', actor=store_keeper)
    withdrawal_id = client_for(doctor).post('/api/inventory/withdrawals', {
        'items': [_line(gloves, 'piece', qty=5, batch=batch.id)],
    }, format='json').data['id']
    r = client_for(store_keeper).post(f'/api/inventory/withdrawals/{withdrawal_id}/status', {'status': 'ISSUED'},
                                      format='json')
    assert r.status_code == 400
    assert r.data['error']['code'] == 'insufficient_stock'
    assert PersonalStock.objects.get(user=doctor, batch=batch).quantity == 3


def test_transfer_to_location_is_final(client_for, store_keeper, gloves, stocked, clinic_room):
    client = client_for(store_keeper)
    r = client.post('/api/inventory/transfers', {
        'kind': 'MAIN_TO_LOCATION',
        'items': [_line(gloves, 'box', qty=1, batch=stocked.id, toLocation=clinic_room.id)],
    }, format='json')
    assert r.status_code == 201
    transfer_id = r.data['id']
    assert r.data['reference'] == f'WD-{transfer_id}'

    r = client.post(f'/api/inventory/transfers/{transfer_id}/status', {'status': 'ISSUED'}, format='json')
    assert r.status_code == 200
    assert _main(stocked) == 100
    assert LocationItemStock.objects.get(location=clinic_room, batch=stocked).quantity == 100

    r = client.post(f'/api/inventory/transfers/{transfer_id}/status', {'status': 'REJECTED'}, format='json')
    assert r.status_code == 400

    r = client.get(f'/api/inventory/locations/{clinic_room.id}/stock')
    assert r.data['data'][0]['quantity'] == 100


def test_transfer_checks_source_stock(client_for, store_keeper, gloves, stocked, clinic_room):
    client = client_for(store_keeper)
    r = client.post('/api/inventory/transfers', {
        'kind': 'LOCATION_TO_MAIN',
        'items': [_line(gloves, 'piece', qty=5, batch=stocked.id)],
    }, format='json')
    assert r.status_code == 400

    transfer_id = client.post('/api/inventory/transfers', {
        'kind': 'LOCATION_TO_MAIN',
        'items': [_line(gloves, 'piece', qty=5, batch=stocked.id, fromLocation=clinic_room.id)],
    }, format='json').data['id']
    r = client.post(f'/api/inventory/transfers/{transfer_id}/status', {'status': 'ISSUED'}, format='json')
    assert r.status_code == 400
    assert r.data['error']['code'] == 'insufficient_stock'
    assert _main(stocked) == 200


def test_correction_applies_adjustment_on_approval(client_for, store_keeper, gloves, stocked):
    client = client_for(store_keeper)
    r = client.post('/api/inventory/corrections', {
        'reference': 'CNT-1', 'reason': 'Monthly count',
        'items': [_line(gloves, 'piece', 'quantity', -15, batch=stocked.id)],
    }, format='json')
    assert r.status_code == 201
    correction_id = r.data['id']
    assert _main(stocked) == 200

    r = client.patch(f'/api/inventory/corrections/{correction_id}', {'status': 'APPROVED'}, format='json')
    assert r.status_code == 200
    assert r.data['status'] == 'APPROVED'
    assert _main(stocked) == 185
    entry = StockLedger.objects.get(reference='CNT-1')
    assert (entry.movement_type, entry.quantity, entry.original_quantity) == ('ADJUSTMENT', 15, -15)

    assert client.delete(f'/api/inventory/corrections/{correction_id}').status_code == 400
    assert ManualStockCorrection.objects.filter(id=correction_id).exists()


def test_correction_cannot_drive_stock_negative(client_for, store_keeper, gloves, stocked):
    client = client_for(store_keeper)
    correction_id = client.post('/api/inventory/corrections', {
        'reference': 'CNT-2', 'reason': 'Damaged box',
        'items': [_line(gloves, 'box', 'quantity', -3, batch=stocked.id)],
    }, format='json').data['id']
    r = client.patch(f'/api/inventory/corrections/{correction_id}', {'status': 'APPROVED'}, format='json')
    assert r.status_code == 400
    assert _main(stocked) == 200
    assert ManualStockCorrection.objects.get(id=correction_id).status == 'PENDING'

    assert client.delete(f'/api/inventory/corrections/{correction_id}').status_code == 204


def test_personal_correction_needs_holder(client_for, store_keeper, gloves, stocked):
    r = client_for(store_keeper).post('/api/inventory/corrections', {
        'reference': 'CNT-3', 'reason': 'Lost', 'stock': 'PersonalStock',
        'items': [_line(gloves, 'piece', 'quantity', -1, batch=stocked.id)],
    }, format='json')
    assert r.status_code == 400


def test_overview_and_dashboard(client_for, doctor, store_keeper, supplier, gloves):
    client = client_for(store_keeper)
    purchase_id = client.post('/api/inventory/purchases', {
        'invoiceNo': 'PO-7', 'supplier': supplier.id,
        'items': [_line(gloves, 'box', 'quantity', 1, batchNumber='B-7', unitPrice='250.00')],
    }, format='json').data['id']
    client.post(f'/api/inventory/purchases/{purchase_id}/status', {'status': 'APPROVED'}, format='json')

    r = client.get('/api/inventory/overview')
    assert r.data[0]['main'] == 100
    assert r.data[0]['total'] == 100

    r = client.get('/api/inventory/dashboard')
    assert r.status_code == 200
    assert r.data['totalProducts'] == 1
    assert r.data['totalStockValue'] == 250.0
    assert r.data['activeSuppliers'] == 1
    assert client_for(doctor).get('/api/inventory/dashboard').status_code == 403

    r = client.get('/api/inventory/ledger', {'movementType': 'IN'})
    assert r.data['pagination']['total'] == 1
    assert r.data['data'][0]['reference'] == 'PO-7'
    assert r.data['data'][0]['quantity'] == 100


def test_withdrawal_status_is_case_insensitive(client_for, doctor, store_keeper, gloves, batch):
    add_to_personal(doctor, batch, 10, reference='SEED', actor=store_keeper)
    withdrawal_id = client_for(doctor).post('/api/inventory/withdrawals', {
        'items': [_line(gloves, 'piece', qty=2, batch=batch.id)],
    }, format='json').data['id']
    r = client_for(store_keeper).post(f'/api/inventory/withdrawals/{withdrawal_id}/status', {'status': 'issued'},
                                      format='json')
    assert r.status_code == 200
    assert r.data['status'] == 'ISSUED'
    assert PersonalStock.objects.get(user=doctor, batch=batch).quantity == 8


def test_transfer_between_locations(client_for, store_keeper, branch, gloves, stocked, clinic_room):
    surgery = Location.objects.create(name='Surgery', branch=branch)
    add_to_location(clinic_room, stocked, 30, reference='SEED', actor=store_keeper)
    client = client_for(store_keeper)

    r = client.post('/api/inventory/transfers', {
        'kind': 'LOCATION_TO_LOCATION',
        'items': [_line(gloves, 'piece', qty=5, batch=stocked.id, fromLocation=clinic_room.id,
                        toLocation=clinic_room.id)],
    }, format='json')
    assert r.status_code == 400

    transfer_id = client.post('/api/inventory/transfers', {
        'kind': 'LOCATION_TO_LOCATION',
        'items': [_line(gloves, 'piece', qty=12, batch=stocked.id, fromLocation=clinic_room.id,
                        toLocation=surgery.id)],
    }, format='json').data['id']
    r = client.post(f'/api/inventory/transfers/{transfer_id}/status', {'status': 'Issued'}, format='json')
    assert r.status_code == 200
    assert r.data['status'] == 'ISSUED'
    assert LocationItemStock.objects.get(location=clinic_room, batch=stocked).quantity == 18
    assert LocationItemStock.objects.get(location=surgery, batch=stocked).quantity == 12
    assert _main(stocked) == 200

    moves = StockLedger.objects.filter(reference=f'WD-{transfer_id}').order_by('id')
    assert [(m.location_id, m.movement_type, m.quantity) for m in moves] == [
        (clinic_room.id, 'OUT', 12), (surgery.id, 'IN', 12),
    ]


def test_return_to_main_store_is_not_counted_as_received(client_for, store_keeper, gloves, stocked, clinic_room):
    add_to_location(clinic_room, stocked, 30, reference='SEED', actor=store_keeper)
    client = client_for(store_keeper)
    transfer_id = client.post('/api/inventory/transfers', {
        'kind': 'LOCATION_TO_MAIN',
        'items': [_line(gloves, 'piece', qty=10, batch=stocked.id, fromLocation=clinic_room.id)],
    }, format='json').data['id']
    r = client.post(f'/api/inventory/transfers/{transfer_id}/status', {'status': 'ISSUED'}, format='json')
    assert r.status_code == 200
    stock = Stock.objects.get(batch=stocked)
    assert (stock.quantity, stock.original_quantity) == (210, 200)


def test_transfer_into_damaged_location_stock_is_rejected(client_for, store_keeper, gloves, stocked, clinic_room):
    LocationItemStock.objects.create(product=stocked.product, batch=stocked, location=clinic_room, quantity=4,
                                     status='DAMAGED')
    client = client_for(store_keeper)
    transfer_id = client.post('/api/inventory/transfers', {
        'kind': 'MAIN_TO_LOCATION',
        'items': [_line(gloves, 'piece', qty=10, batch=stocked.id, toLocation=clinic_room.id)],
    }, format='json').data['id']
    r = client.post(f'/api/inventory/transfers/{transfer_id}/status', {'status': 'ISSUED'}, format='json')
    assert r.status_code == 400
    assert r.data['error']['code'] == 'invalid_transition'
    damaged = LocationItemStock.objects.get(location=clinic_room, batch=stocked)
    assert (damaged.quantity, damaged.status) == (4, 'DAMAGED')
    assert _main(stocked) == 200


def test_request_numbers_follow_the_highest_number(store_keeper):
    InventoryRequest.objects.create(requested_by=store_keeper, request_no='REQ-100009')
    InventoryRequest.objects.create(requested_by=store_keeper, request_no='REQ-99999')
    InventoryRequest.objects.create(requested_by=store_keeper, request_no='manual')
    assert InventoryRequest.objects.create(requested_by=store_keeper).request_no == 'REQ-100010'


def test_request_number_collision_takes_next_number(monkeypatch, store_keeper):
    InventoryRequest.objects.create(requested_by=store_keeper, request_no='REQ-100000')
    numbers = iter(['REQ-100000', 'REQ-100001'])
    monkeypatch.setattr(InventoryRequest, 'next_request_no', classmethod(lambda cls: next(numbers)))
    req = InventoryRequest.objects.create(requested_by=store_keeper)
    assert req.request_no == 'REQ-100001'
    assert InventoryRequest.objects.count() == 2
