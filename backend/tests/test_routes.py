"""HTTP surface: auth headers, JSON shapes and error-to-status mapping."""

from partsledger.services import stock_ledger

from conftest import auth_headers, invoice_payload


def test_health_is_public(client, db_session):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.json['checks']['database']['status'] == 'healthy'


def test_requires_caller_identity(client, db_session):
    assert client.get('/api/invoices').status_code == 401
    assert client.get('/api/invoices', headers={'X-User-Id': 'abc'}).status_code == 401


def test_part_upsert_by_number(client, db_session):
    body = {"part_number": "550/42835C", "item_name": "Hydraulic Filter", "hsn_code": "84314390", "mrp": "1200"}
    created = client.post('/api/parts', json=body, headers=auth_headers())
    assert created.status_code == 201
    assert created.json['gst_percent'] == "18.00"
    assert created.json['unit'] == "Nos"

    body["item_name"] = "Hydraulic Filter (HD)"
    updated = client.post('/api/parts', json=body, headers=auth_headers())
    assert updated.status_code == 200
    assert updated.json['id'] == created.json['id']
    assert updated.json['item_name'] == "Hydraulic Filter (HD)"


def test_part_number_format_and_duplicate_barcode(client, db_session):
    bad = client.post(
        '/api/parts',
        json={"part_number": "ABC-1", "item_name": "x", "hsn_code": "1"},
        headers=auth_headers(),
    )
    assert bad.status_code == 400

    client.post('/api/parts', json={"part_number": "1001", "item_name": "a", "hsn_code": "1", "barcode": "890123"}, headers=auth_headers())
    dup = client.post('/api/parts', json={"part_number": "1002", "item_name": "b", "hsn_code": "1", "barcode": "890123"}, headers=auth_headers())
    assert dup.status_code == 409
    assert "Barcode" in dup.json['error']


def test_soft_deleted_part_hidden(client, db_session, part_a):
    assert client.delete(f'/api/parts/{part_a.id}', headers=auth_headers(role="manager")).status_code == 200
    assert client.get(f'/api/parts/{part_a.id}', headers=auth_headers()).status_code == 404
    listing = client.get('/api/parts', headers=auth_headers()).json
    assert listing['pagination']['total'] == 0
    admin_listing = client.get('/api/parts?include_deleted=true', headers=auth_headers()).json
    assert admin_listing['pagination']['total'] == 1


def test_delete_part_requires_role(client, db_session, part_a):
    response = client.delete(f'/api/parts/{part_a.id}', headers=auth_headers(role="user"))
    assert response.status_code == 403


def test_invoice_lifecycle_over_http(client, db_session, supplier, part_a, part_b):
    payload = invoice_payload("PURCHASE", supplier.id, [(part_a.id, 10, "50"), (part_b.id, 5, "100")])

    preview = client.get('/api/invoices/next-number?type=PURCHASE&date=2025-11-14', headers=auth_headers())
    assert preview.json['invoice_number'] == "JCB/01/NOV/25-26"

    created = client.post('/api/invoices', json=payload, headers=auth_headers(user_id=3))
    assert created.status_code == 201
    invoice = created.json
    assert invoice['invoice_number'] == "JCB/01/NOV/25-26"
    assert invoice['subtotal'] == "1000.00"
    assert invoice['created_by_user_id'] == 3
    assert [i['quantity'] for i in invoice['items']] == [10, 5]

    stock = client.get(f'/api/stock/{part_a.id}', headers=auth_headers()).json
    assert stock == {"part_id": part_a.id, "stock": 10, "incoming": 10, "outgoing": 0}

    payload["items"] = [{"part_id": part_a.id, "quantity": 4, "rate": "50"}]
    updated = client.put(f"/api/invoices/{invoice['id']}", json=payload, headers=auth_headers())
    assert updated.status_code == 200
    assert updated.json['subtotal'] == "200.00"
    assert stock_ledger.current_stock(part_a.id) == 4
    assert stock_ledger.current_stock(part_b.id) == 0

    submitted = client.patch(f"/api/invoices/{invoice['id']}/status", json={"status": "SUBMITTED"}, headers=auth_headers())
    assert submitted.json['status'] == "SUBMITTED"

    blocked = client.delete(f"/api/invoices/{invoice['id']}", headers=auth_headers())
    assert blocked.status_code == 409
    assert blocked.json['details']['status'] == "SUBMITTED"

    not_admin = client.delete(f"/api/invoices/{invoice['id']}?force=true", headers=auth_headers(role="manager"))
    assert not_admin.status_code == 403

    forced = client.delete(f"/api/invoices/{invoice['id']}?force=true", headers=auth_headers())
    assert forced.status_code == 200
    assert client.get(f"/api/invoices/{invoice['id']}", headers=auth_headers()).status_code == 404


def test_invoice_validation_errors(client, db_session, supplier, part_a):
    missing = client.post('/api/invoices', json={"type": "PURCHASE"}, headers=auth_headers())
    assert missing.status_code == 400

    zero_qty = invoice_payload("PURCHASE", supplier.id, [(part_a.id, 0, "10")])
    assert client.post('/api/invoices', json=zero_qty, headers=auth_headers()).status_code == 400

    no_supplier = invoice_payload("PURCHASE", supplier.id, [(part_a.id, 1, "10")])
    del no_supplier["supplier_id"]
    assert client.post('/api/invoices', json=no_supplier, headers=auth_headers()).status_code == 400

    sub_paise = invoice_payload("PURCHASE", supplier.id, [(part_a.id, 3, "10.005")])
    assert client.post('/api/invoices', json=sub_paise, headers=auth_headers()).status_code == 400

    unknown_part = invoice_payload("PURCHASE", supplier.id, [(9999, 1, "10")])
    response = client.post('/api/invoices', json=unknown_part, headers=auth_headers())
    assert response.status_code == 404
    assert response.json['details']['part_id'] == 9999


def test_bulk_endpoints(client, db_session, supplier, part_a):
    ids = []
    for _ in range(2):
        created = client.post(
            '/api/invoices',
            json=invoice_payload("PURCHASE", supplier.id, [(part_a.id, 1, "10")]),
            headers=auth_headers(),
        )
        ids.append(created.json['id'])

    fetched = client.post('/api/invoices/bulk', json={"ids": ids}, headers=auth_headers())
    assert [inv['id'] for inv in fetched.json['data']] == ids

    status = client.post(
        '/api/invoices/bulk-update-status',
        json={"ids": ids[:1], "status": "submitted"},
        headers=auth_headers(),
    )
    assert status.json == {"updated": 1, "status": "SUBMITTED"}

    rejected = client.post('/api/invoices/bulk-delete', json={"ids": ids}, headers=auth_headers())
    assert rejected.status_code == 409
    assert rejected.json['details']['non_draft_ids'] == ids[:1]

    deleted = client.post('/api/invoices/bulk-delete', json={"ids": ids[1:]}, headers=auth_headers())
    assert deleted.json == {"deleted": 1}

    assert client.post('/api/invoices/bulk', json={"ids": []}, headers=auth_headers()).status_code == 400


def test_payment_endpoint(client, db_session, customer, part_a):
    created = client.post(
        '/api/invoices',
        json=invoice_payload("SALE", customer.id, [(part_a.id, 2, "500")]),
        headers=auth_headers(),
    ).json

    paid = client.post(
        f"/api/invoices/{created['id']}/payment",
        json={"paid_amount": "250", "payment_method": "Cash", "payment_date": "2025-11-15"},
        headers=auth_headers(),
    )
    assert paid.status_code == 200
    assert paid.json['payment_status'] == "PARTIAL"
    assert paid.json['due_amount'] == "750.00"
    assert paid.json['payment_date'] == "2025-11-15"

    over = client.post(f"/api/invoices/{created['id']}/payment", json={"paid_amount": "5000"}, headers=auth_headers())
    assert over.status_code == 400


def test_stock_adjust_and_list(client, db_session, part_a, part_b):
    denied = client.post(f'/api/stock/{part_a.id}/adjust', json={"quantity": 5}, headers=auth_headers(role="user"))
    assert denied.status_code == 403

    adjusted = client.post(
        f'/api/stock/{part_a.id}/adjust',
        json={"quantity": 5, "note": "Opening stock"},
        headers=auth_headers(role="manager"),
    )
    assert adjusted.status_code == 200
    assert adjusted.json['adjustment_delta'] == 5

    negative = client.post(f'/api/stock/{part_a.id}/adjust', json={"quantity": -1}, headers=auth_headers())
    assert negative.status_code == 400

    listing = client.get('/api/stock?only_purchased=true', headers=auth_headers()).json['data']
    assert [(row['id'], row['stock']) for row in listing] == [(part_a.id, 5)]

    history = client.get(f'/api/stock/{part_a.id}/transactions', headers=auth_headers()).json['data']
    assert history[0]['note'] == "Opening stock"


def test_reports_endpoints(client, db_session):
    headers = auth_headers()
    assert client.get('/api/reports/dashboard', headers=headers).status_code == 200
    assert client.get('/api/reports/monthly?year=2025', headers=headers).status_code == 200
    assert client.get('/api/reports/weekly', headers=headers).status_code == 200
    assert client.get('/api/reports/cashflow?year=2025', headers=headers).status_code == 200
    assert client.get('/api/reports/top-parts', headers=headers).status_code == 200
    assert client.get('/api/reports/profit-loss', headers=headers).status_code == 200
    assert client.get('/api/reports/balance-sheet', headers=headers).status_code == 200
    assert client.get('/api/reports/monthly?type=REFUND', headers=headers).status_code == 400
    assert client.get('/api/invoices/statistics', headers=headers).status_code == 200


def test_supplier_crud(client, db_session):
    created = client.post('/api/suppliers', json={"name": "Bharat Spares", "contact_person": "Ravi"}, headers=auth_headers())
    assert created.status_code == 201
    supplier_id = created.json['id']

    assert client.get('/api/suppliers?q=bharat', headers=auth_headers()).json['data'][0]['id'] == supplier_id
    assert client.delete(f'/api/suppliers/{supplier_id}', headers=auth_headers()).status_code == 200
    assert client.get(f'/api/suppliers/{supplier_id}', headers=auth_headers()).status_code == 404

    assert client.post('/api/customers', json={"name": ""}, headers=auth_headers()).status_code == 400


def test_cors_allowed_origin(client, db_session):
    response = client.get('/health', headers={'Origin': 'http://localhost:3000'})
    assert response.headers['Access-Control-Allow-Origin'] == 'http://localhost:3000'
    other = client.get('/health', headers={'Origin': 'http://evil.example'})
    assert 'Access-Control-Allow-Origin' not in other.headers
