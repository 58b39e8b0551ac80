from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from app.models import Invoice, InvoiceStatus, Payment, PaymentStatus

T0 = datetime(2024, 1, 1, 12, 0, 0)


def add_invoice(store, n, status=InvoiceStatus.PENDING, amount=1000):
    created = T0 + timedelta(minutes=n)
    return store.add_invoice(Invoice(
        payment_hash=f"{n:064x}",
        payment_request=f"lnbcrt{amount}n1inv{n}",
        amount=amount,
        status=status,
        expires_at=created + timedelta(hours=1),
        created_at=created,
        updated_at=created,
    ))


def add_payment(store, n, status=PaymentStatus.SUCCEEDED, amount=500, fee=2, key=None):
    created = T0 + timedelta(minutes=n)
    return store.insert_payment(Payment(
        payment_hash=f"{n:064x}",
        payment_request=f"lnbcrt{amount}n1pay{n}",
        amount=amount,
        fee=fee,
        status=status,
        idempotency_key=key,
        created_at=created,
        updated_at=created,
    ))


class TestListTransactions:
    def test_invoices_and_payments_are_merged_newest_first(self, store):
        add_invoice(store, 1)
        add_payment(store, 2)
        add_invoice(store, 3)
        add_payment(store, 4)

        page = store.list_transactions()

        assert [(kind, r.payment_hash[-1]) for kind, r in page.transactions] == [
            ("payment", "4"), ("invoice", "3"), ("payment", "2"), ("invoice", "1"),
        ]
        assert page.total == 4
        assert page.total_pages == 1

    def test_pagination_over_merged_rows(self, store):
        for n in range(1, 6):
            if n % 2:
                add_invoice(store, n)
            else:
                add_payment(store, n)

        second = store.list_transactions(page=2, limit=2)

        assert [r.payment_hash[-1] for _, r in second.transactions] == ["3", "2"]
        assert second.total == 5
        assert second.total_pages == 3

    def test_page_past_the_end_is_empty(self, store):
        add_invoice(store, 1)

        page = store.list_transactions(page=3, limit=10)

        assert page.transactions == []
        assert page.total == 1

    def test_filter_by_node(self, store):
        add_invoice(store, 1)
        add_payment(store, 2)

        node_a = store.list_transactions(node="node_a")
        node_b = store.list_transactions(node="node_b")

        assert [kind for kind, _ in node_a.transactions] == ["invoice"]
        assert [kind for kind, _ in node_b.transactions] == ["payment"]

    def test_type_and_node_that_do_not_match_give_nothing(self, store):
        add_invoice(store, 1)

        assert store.list_transactions(type="invoice", node="node_b").total == 0

    def test_status_only_existing_for_payments(self, store):
        add_invoice(store, 1)
        add_payment(store, 2, status=PaymentStatus.FAILED)
        add_payment(store, 3)

        failed = store.list_transactions(status="failed")

        assert [(kind, r.status) for kind, r in failed.transactions] == [("payment", PaymentStatus.FAILED)]

    def test_status_only_existing_for_invoices(self, store):
        add_invoice(store, 1, status=InvoiceStatus.EXPIRED)
        add_payment(store, 2)

        expired = store.list_transactions(status="expired")

        assert expired.total == 1
        assert expired.transactions[0][0] == "invoice"


class TestRecordedTotals:
    def test_only_succeeded_records_count(self, store):
        add_invoice(store, 1, status=InvoiceStatus.SUCCEEDED, amount=1000)
        add_invoice(store, 2, status=InvoiceStatus.PENDING, amount=5000)
        add_payment(store, 3, amount=300, fee=1)
        add_payment(store, 4, status=PaymentStatus.FAILED, amount=9000, fee=0)

        totals = store.recorded_totals()

        assert (totals.received, totals.sent, totals.fees) == (1000, 300, 1)
        assert totals.net == 699

    def test_empty_store(self, store):
        totals = store.recorded_totals()
        assert (totals.received, totals.sent, totals.fees, totals.net) == (0, 0, 0, 0)


class TestPayments:
    def test_latest_payment_for_hash(self, store):
        first = add_payment(store, 1, status=PaymentStatus.FAILED)
        retry = Payment(
            payment_hash=first.payment_hash,
            payment_request=first.payment_request,
            amount=first.amount,
            status=PaymentStatus.SUCCEEDED,
            created_at=first.created_at + timedelta(seconds=30),
            updated_at=first.created_at + timedelta(seconds=30),
        )
        store.insert_payment(retry)

        assert store.get_payment(first.payment_hash).id == retry.id

    def test_duplicate_idempotency_key_is_rejected(self, store):
        add_payment(store, 1, key="order-0001")

        with pytest.raises(IntegrityError):
            add_payment(store, 2, key="order-0001")
        store.rollback()

        assert store.get_payment_by_key("order-0001").payment_hash == f"{1:064x}"

    def test_mark_invoice_settled(self, store):
        invoice = add_invoice(store, 1)
        settled_at = T0 + timedelta(minutes=5)

        assert store.mark_invoice_settled(invoice.payment_hash, "aa" * 32, settled_at)
        assert not store.mark_invoice_settled(invoice.payment_hash, "bb" * 32, settled_at)
        assert not store.mark_invoice_settled("0" * 64, "aa" * 32, settled_at)

        stored = store.get_invoice(invoice.payment_hash)
        assert stored.status is InvoiceStatus.SUCCEEDED
        assert stored.preimage == "aa" * 32
