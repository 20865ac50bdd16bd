# Overview: Pytest coverage for backup export/import and legacy log conversion.

import json
from datetime import datetime

import pytest
import sqlalchemy as sa

from consignbook.errors import ValidationError
from consignbook.extensions import db
from consignbook.models import ConsignmentOrder, InventoryLogEntry, Product, ProductImage
from consignbook.services import backup_service, consignment_service, legacy_service, products_service
from consignbook.state import get_state


def _wipe():
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()
    db.session.expunge_all()


def _without_export_time(document):
    return {k: v for k, v in document.items() if k != 'export_time'}


@pytest.fixture
def busy_store(db_session, confirmed_order, ring, necklace):
    consignment_service.register_consignment_sale(
        confirmed_order.id, [{'product_id': ring.id, 'quantity': 1, 'price_cents': 9900}]
    )
    consignment_service.return_consignment_items(
        confirmed_order.id, [{'product_id': necklace.id, 'quantity': 1}]
    )
    products_service.update_product(ring.id, {}, image=b'GIF89a-pixels', image_type='image/gif')
    return confirmed_order


class TestExport:
    def test_document_shape(self, busy_store, ring):
        document = backup_service.export_all()
        assert document['version'] == '1.0'
        assert document['export_time'].endswith('Z')
        for key in ('products', 'partners', 'consignments', 'sales', 'inventory_logs', 'images'):
            assert isinstance(document[key], list)
        assert len(document['inventory_logs']) == 3
        assert 'version_id' not in document['products'][0]

        image = document['images'][0]
        assert image['id'] == f'img_{ring.id}'
        assert image['type'] == 'image/gif'
        assert image['data'].startswith('data:image/gif;base64,')

    def test_export_json_is_valid(self, busy_store):
        assert json.loads(backup_service.export_json())['version'] == '1.0'


class TestImport:
    def test_restore_into_empty_store(self, busy_store, ring):
        image_id = f'img_{ring.id}'
        before = backup_service.export_all()
        _wipe()
        assert db.session.query(Product).count() == 0

        counts = backup_service.import_data(json.dumps(before))

        assert counts['products'] == 2
        assert counts['inventory_logs'] == 3
        assert counts['images'] == 1
        assert counts['legacy_logs'] == 0
        assert _without_export_time(backup_service.export_all()) == _without_export_time(before)
        assert db.session.get(ProductImage, image_id).blob == b'GIF89a-pixels'

    def test_import_upserts_by_id(self, busy_store, ring):
        document = backup_service.export_all()
        record = next(p for p in document['products'] if p['id'] == ring.id)
        record['name'] = 'Renamed Ring'

        backup_service.import_data(document)

        db.session.expire_all()
        assert db.session.query(Product).count() == 2
        assert db.session.get(Product, ring.id).name == 'Renamed Ring'

    def test_import_reloads_cache(self, busy_store, ring):
        document = backup_service.export_all()
        get_state().cache._data['products'].clear()
        backup_service.import_data(document)
        assert get_state().cache.get('products', ring.id) is not None

    @pytest.mark.parametrize('body', [
        '{not json',
        '[1, 2]',
        '{"products": [{"name": "no id"}]}',
        '{"consignment_logs": [{"type": "SEND", "date": "not-a-date", "items": []}]}',
        '{"stock_adjustments": [{"type": "OUT", "date": "yesterday", "items": []}]}',
    ])
    def test_rejects_malformed_documents(self, db_session, body):
        with pytest.raises(ValidationError):
            backup_service.import_data(body)

    def test_legacy_arrays_become_inventory_logs(self, db_session, partner, ring):
        document = {
            'version': '1.0',
            'consignment_logs': [
                {'id': 1, 'type': 'SEND', 'date': '2024-03-01T10:00:00Z', 'partner_id': partner.id,
                 'items': [{'product_id': ring.id, 'quantity': 2}]},
            ],
            'stock_adjustments': [
                {'id': 1, 'product_id': ring.id, 'type': 'OUT', 'reason': 'DAMAGE', 'quantity': 1,
                 'note': None, 'date': '2024-03-02T09:30:00Z'},
            ],
        }
        counts = backup_service.import_data(document)
        assert counts['legacy_logs'] == 2

        entries = db.session.query(InventoryLogEntry).order_by(InventoryLogEntry.id).all()
        assert [e.type for e in entries] == ['SEND', 'ADJUSTMENT_OUT']
        assert entries[0].partner_id == partner.id
        assert entries[0].date == datetime(2024, 3, 1, 10, 0, 0)
        assert entries[1].items == [{'product_id': ring.id, 'quantity': 1}]
        assert entries[1].note == ''
        # Legacy rows carry no stock effect of their own
        assert db.session.get(Product, ring.id).stock == 10


class TestLegacyTables:
    def _seed_legacy_tables(self, partner_id, product_id):
        conn = db.session.connection()
        legacy_service.legacy_metadata.create_all(bind=conn)
        conn.execute(sa.insert(legacy_service.consignment_logs_table), [
            {'type': 'SEND', 'date': datetime(2024, 1, 5), 'partner_id': partner_id,
             'items': [{'product_id': product_id, 'quantity': 3}]},
            {'type': 'SOLD', 'date': datetime(2024, 1, 9), 'partner_id': partner_id,
             'items': [{'product_id': product_id, 'quantity': 1}]},
        ])
        conn.execute(sa.insert(legacy_service.stock_adjustments_table), [
            {'product_id': product_id, 'type': 'IN', 'reason': 'PURCHASE', 'quantity': 8,
             'note': 'opening', 'date': datetime(2024, 1, 1)},
        ])
        db.session.commit()

    def test_migrate_moves_rows_and_drops_tables(self, db_session, partner, ring):
        self._seed_legacy_tables(partner.id, ring.id)
        assert sorted(legacy_service.legacy_tables_present()) == ['consignment_logs', 'stock_adjustments']

        counts = legacy_service.migrate_legacy_tables()

        assert counts == {'consignment_logs': 2, 'stock_adjustments': 1}
        assert legacy_service.legacy_tables_present() == []
        entries = db.session.query(InventoryLogEntry).order_by(InventoryLogEntry.id).all()
        assert [e.type for e in entries] == ['SEND', 'SOLD', 'ADJUSTMENT_IN']
        assert entries[2].product_id == ring.id
        assert entries[2].reason == 'PURCHASE'
        assert entries[2].note == 'opening'
        assert entries[0].product_id is None

    def test_migrate_is_a_noop_without_legacy_tables(self, db_session):
        assert legacy_service.migrate_legacy_tables() == {'consignment_logs': 0, 'stock_adjustments': 0}

    def test_unknown_legacy_type_rejected(self):
        with pytest.raises(ValidationError):
            legacy_service.convert_stock_adjustment({'type': 'SIDEWAYS', 'product_id': 'p', 'quantity': 1})
        with pytest.raises(ValidationError):
            legacy_service.convert_consignment_log({'type': 'LOST', 'items': []})

    def test_cli_migrate_legacy(self, app, db_session, partner, ring):
        self._seed_legacy_tables(partner.id, ring.id)
        result = app.test_cli_runner().invoke(args=['ledger', 'migrate-legacy'])
        assert result.exit_code == 0
        assert 'Migrated 2 consignment logs and 1 stock adjustments' in result.output
        assert db.session.query(InventoryLogEntry).count() == 3


def test_busy_store_consignment_survives(busy_store):
    order = db.session.get(ConsignmentOrder, busy_store.id)
    assert order.sold_items and order.returned_items
