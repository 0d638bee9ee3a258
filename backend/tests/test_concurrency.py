"""
Unit-of-work retry behaviour and concurrent sales against a file-backed database.
"""

import os
import tempfile
import threading
import unittest
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from fishstock import create_app
from fishstock.errors import InsufficientStockError, PersistenceError, StockError, ValidationError
from fishstock.extensions import db
from fishstock.models import Product, Sale
from fishstock.services import audit_service, ledger_service, products_service, sales_service
from fishstock.services.concurrency import run_with_retry


class TestRunWithRetry:
    def test_retries_stale_data_then_succeeds(self, app):
        calls = {"n": 0}

        def op():
            calls["n"] += 1
            if calls["n"] < 3:
                raise StaleDataError("version mismatch")
            return "done"

        assert run_with_retry(op, attempts=3, backoff_base=0) == "done"
        assert calls["n"] == 3

    def test_exhausted_retries_raise_persistence_error(self, app):
        def op():
            raise StaleDataError("version mismatch")

        with pytest.raises(PersistenceError) as exc:
            run_with_retry(op, attempts=2, backoff_base=0)

        assert isinstance(exc.value.__cause__, StaleDataError)
        assert exc.value.status_code == 503

    def test_other_datastore_errors_are_wrapped_without_retry(self, app):
        calls = {"n": 0}

        def op():
            calls["n"] += 1
            raise IntegrityError("INSERT", {}, Exception("constraint failed"))

        with pytest.raises(PersistenceError) as exc:
            run_with_retry(op, attempts=3, backoff_base=0)

        assert calls["n"] == 1
        assert isinstance(exc.value.__cause__, IntegrityError)

    def test_domain_errors_pass_through(self, app):
        def op():
            raise ValidationError("bad input")

        with pytest.raises(ValidationError):
            run_with_retry(op, attempts=3, backoff_base=0)


class ConcurrentSalesTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "STOCK_RETRY_ATTEMPTS": 20,
            "STOCK_RETRY_BACKOFF": 0.01,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            product = products_service.create_product(
                payload={
                    "sku": "CONCUR-1",
                    "name": "Concurrent Fish",
                    "box_to_kg_ratio": "10",
                    "unit_price_per_box": "100",
                    "unit_price_per_kg": "12",
                    "boxes": 10,
                },
                performed_by="seed",
            )
            self.product_id = product.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_workers(self, target, count):
        threads = [threading.Thread(target=target) for _ in range(count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

    def test_concurrent_sales_never_oversell(self):
        results = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    sales_service.create_sale(
                        product_id=self.product_id,
                        boxes=3,
                        payment_status="paid",
                        payment_method="cash",
                        performed_by="worker",
                    )
                    outcome = "ok"
                except InsufficientStockError:
                    outcome = "insufficient"
                except PersistenceError:
                    outcome = "conflict"
                finally:
                    db.session.remove()
                with lock:
                    results.append(outcome)

        self._run_workers(worker, 6)

        with self.app.app_context():
            product = db.session.get(Product, self.product_id)
            sold = db.session.query(Sale).count()
            self.assertEqual(len(results), 6)
            self.assertEqual(results.count("ok"), sold)
            self.assertLessEqual(sold, 3)
            self.assertEqual(product.boxes, 10 - 3 * sold)
            self.assertGreaterEqual(product.boxes, 0)
            self.assertTrue(ledger_service.reconcile_product(self.product_id)["balanced"])

    def test_concurrent_approvals_apply_once(self):
        with self.app.app_context():
            sale, _ = sales_service.create_sale(
                product_id=self.product_id,
                boxes=4,
                payment_status="paid",
                payment_method="cash",
                performed_by="clerk",
            )
            audit = audit_service.propose_deletion(sale_id=sale.id, reason="Duplicate", requested_by="clerk")
            audit_id = audit.id
            sale_id = sale.id

        outcomes = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    audit_service.approve(audit_id=audit_id, approved_by="manager", approval_reason="ok")
                    outcome = "approved"
                except StockError as exc:
                    outcome = exc.kind
                finally:
                    db.session.remove()
                with lock:
                    outcomes.append(outcome)

        self._run_workers(worker, 4)

        self.assertEqual(outcomes.count("approved"), 1)
        with self.app.app_context():
            product = db.session.get(Product, self.product_id)
            self.assertEqual(product.boxes, 10)
            self.assertEqual(audit_service.get_audit(audit_id).approval_status, "approved")
            reversals = ledger_service.list_movements(sale_id=sale_id, movement_type="reversal")
            self.assertEqual(len(reversals), 1)
            self.assertEqual(reversals[0].kg_delta, Decimal("0.000"))
            self.assertTrue(ledger_service.reconcile_product(self.product_id)["balanced"])


if __name__ == "__main__":
    unittest.main()
