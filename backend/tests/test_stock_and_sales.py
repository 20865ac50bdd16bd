# Overview: Pytest coverage for stock adjustments and direct sales.

import pytest

from consignbook.errors import InsufficientStock, ProductNotFound, SaleNotFound, ValidationError
from consignbook.models import InventoryLogEntry, SaleRecord
from consignbook.services import products_service, sales_service, stock_service
from consignbook.services.ledger_service import list_inventory_logs

from conftest import stock_of


class TestStockAdjustments:
    def test_adjust_in(self, db_session, ring):
        entry = stock_service.add_stock_adjustment(
            product_id=ring.id, type='IN', reason='PURCHASE', quantity=5, note='restock'
        )
        assert stock_of(ring.id) == 15
        assert entry.type == 'ADJUSTMENT_IN'
        assert entry.product_id == ring.id
        assert entry.items == [{'product_id': ring.id, 'quantity': 5}]
        assert entry.reason == 'PURCHASE'
        assert entry.note == 'restock'

    def test_adjust_out_note_defaults_to_empty(self, db_session, ring):
        entry = stock_service.add_stock_adjustment(
            product_id=ring.id, type='OUT', reason='DAMAGE', quantity=3
        )
        assert stock_of(ring.id) == 7
        assert entry.type == 'ADJUSTMENT_OUT'
        assert entry.note == ''

    def test_adjust_out_to_exactly_zero(self, db_session, ring):
        stock_service.add_stock_adjustment(
            product_id=ring.id, type='OUT', reason='INVENTORY_LOSS', quantity=10
        )
        assert stock_of(ring.id) == 0

    def test_adjust_out_beyond_stock_is_rejected(self, app, db_session, ring):
        # Manual OUT is guarded even when overdraw is allowed elsewhere
        app.config['ALLOW_NEGATIVE_STOCK'] = True
        with pytest.raises(InsufficientStock):
            stock_service.add_stock_adjustment(
                product_id=ring.id, type='OUT', reason='DAMAGE', quantity=11
            )
        assert stock_of(ring.id) == 10
        assert db_session.query(InventoryLogEntry).count() == 0

    @pytest.mark.parametrize('kwargs', [
        {'type': 'SIDEWAYS', 'reason': 'OTHER', 'quantity': 1},
        {'type': 'IN', 'reason': 'DAMAGE', 'quantity': 1},
        {'type': 'OUT', 'reason': 'PURCHASE', 'quantity': 1},
        {'type': 'IN', 'reason': 'OTHER', 'quantity': 0},
        {'type': 'IN', 'reason': 'OTHER', 'quantity': -4},
    ])
    def test_invalid_adjustments(self, db_session, ring, kwargs):
        with pytest.raises(ValidationError):
            stock_service.add_stock_adjustment(product_id=ring.id, **kwargs)
        assert stock_of(ring.id) == 10

    def test_quantity_beyond_ceiling_is_a_validation_error(self, db_session, ring):
        with pytest.raises(ValidationError):
            stock_service.add_stock_adjustment(
                product_id=ring.id, type='IN', reason='OTHER', quantity=10 ** 20
            )
        assert stock_of(ring.id) == 10
        assert list_inventory_logs(product_id=ring.id) == []

    def test_unknown_product(self, db_session):
        with pytest.raises(ProductNotFound):
            stock_service.add_stock_adjustment(
                product_id='ghost', type='IN', reason='OTHER', quantity=1
            )


class TestDirectSales:
    def test_sale_deducts_stock_and_logs(self, db_session, ring, necklace):
        sale = sales_service.add_sale(
            [
                {'product_id': ring.id, 'quantity': 2, 'price_cents': 9900},
                {'product_id': necklace.id, 'quantity': 1, 'price_cents': 25000},
            ],
            payment_method='CARD',
        )
        assert sale.type == 'DIRECT'
        assert sale.total_amount_cents == 2 * 9900 + 25000
        assert sale.related_consignment_id is None
        assert stock_of(ring.id) == 8
        assert stock_of(necklace.id) == 4

        logs = list_inventory_logs(log_type='DIRECT_SALE')
        assert len(logs) == 1
        assert logs[0].details == {'sale_id': sale.id}

    def test_sale_beyond_stock_rejected(self, db_session, necklace):
        with pytest.raises(InsufficientStock):
            sales_service.add_sale([{'product_id': necklace.id, 'quantity': 6, 'price_cents': 1}])
        assert stock_of(necklace.id) == 5
        assert db_session.query(SaleRecord).count() == 0

    def test_sale_may_overdraw_when_allowed(self, app, db_session, necklace):
        app.config['ALLOW_NEGATIVE_STOCK'] = True
        sales_service.add_sale([{'product_id': necklace.id, 'quantity': 6, 'price_cents': 1}])
        assert stock_of(necklace.id) == -1

    def test_consignment_type_is_not_a_direct_sale(self, db_session, ring):
        with pytest.raises(ValidationError):
            sales_service.add_sale(
                [{'product_id': ring.id, 'quantity': 1, 'price_cents': 1}], type='CONSIGNMENT'
            )

    def test_unknown_payment_method(self, db_session, ring):
        with pytest.raises(ValidationError):
            sales_service.add_sale(
                [{'product_id': ring.id, 'quantity': 1, 'price_cents': 1}], payment_method='IOU'
            )

    def test_get_and_list(self, db_session, ring):
        sale = sales_service.add_sale([{'product_id': ring.id, 'quantity': 1, 'price_cents': 100}])
        assert sales_service.get_sale(sale.id).id == sale.id
        assert [s.id for s in sales_service.list_sales(type='DIRECT')] == [sale.id]
        assert sales_service.list_sales(type='CONSIGNMENT') == []
        with pytest.raises(SaleNotFound):
            sales_service.get_sale('nope')


class TestCatalog:
    def test_create_product_defaults(self, db_session):
        product = products_service.create_product({'sku': 'X-1', 'name': 'Brooch'})
        assert product.stock == 0
        assert product.min_stock_alert == 2
        assert product.version_id == 1

    def test_stock_not_editable_after_create(self, db_session, ring):
        with pytest.raises(ValidationError):
            products_service.update_product(ring.id, {'stock': 50})

    @pytest.mark.parametrize('payload', [
        {'name': 'No sku'},
        {'sku': 'A', 'name': 'B', 'retail_price_cents': -1},
        {'sku': 'A', 'name': 'B', 'stock': -3},
        {'sku': 'A', 'name': 'B', 'color': 'red'},
    ])
    def test_invalid_product_payloads(self, db_session, payload):
        with pytest.raises(ValidationError):
            products_service.create_product(payload)

    def test_update_bumps_version(self, db_session, ring):
        updated = products_service.update_product(ring.id, {'retail_price_cents': 12000})
        assert updated.retail_price_cents == 12000
        assert updated.version_id == 2

    def test_image_roundtrip_and_delete(self, db_session, ring):
        image_id = f'img_{ring.id}'
        products_service.update_product(ring.id, {}, image=b'\x89PNG-bytes', image_type='image/png')
        product = products_service.get_product(ring.id)
        assert product.image_url == f'local:img_{ring.id}'
        image = products_service.get_image(image_id)
        assert image.blob == b'\x89PNG-bytes'
        assert image.content_type == 'image/png'

        products_service.delete_product(ring.id)
        with pytest.raises(ProductNotFound):
            products_service.get_image(image_id)

    def test_deleted_product_leaves_log_reference(self, db_session, ring):
        stock_service.add_stock_adjustment(product_id=ring.id, type='IN', reason='OTHER', quantity=1)
        products_service.delete_product(ring.id)
        logs = list_inventory_logs(product_id=ring.id)
        assert len(logs) == 1
        with pytest.raises(ProductNotFound):
            products_service.get_product(ring.id)

    def test_low_stock_and_search(self, db_session, ring, necklace):
        stock_service.add_stock_adjustment(product_id=ring.id, type='OUT', reason='DAMAGE', quantity=8)
        assert [p.id for p in products_service.list_low_stock()] == [ring.id]
        assert [p.id for p in products_service.list_products(search='pearl')] == [necklace.id]
        assert [p.id for p in products_service.list_products(category='rings')] == [ring.id]

    def test_stock_counter_ceiling(self, db_session):
        with pytest.raises(ValidationError):
            products_service.create_product({'sku': 'BIG-1', 'name': 'Warehouse', 'stock': 10 ** 20})

    def test_partner_commission_range(self, db_session, partner):
        with pytest.raises(ValidationError):
            products_service.update_partner(partner.id, {'default_commission_rate': 120})
        updated = products_service.update_partner(partner.id, {'phone': '555-0101'})
        assert updated.phone == '555-0101'
