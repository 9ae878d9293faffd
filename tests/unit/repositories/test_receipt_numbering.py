from ridepay.repositories.receipt_repository import ReceiptRepository


def test_first_receipt_of_the_year_is_number_one(db):
    assert ReceiptRepository(db).next_receipt_number(2026) == "RECEIPT-2026-00001"


def test_numbering_continues_within_a_year_only(db, records):
    repo = ReceiptRepository(db)
    booking = records.booking()
    repo.create(payment_id=records.payment(booking).id, receipt_number="RECEIPT-2026-00041")
    repo.create(payment_id=records.payment(booking).id, receipt_number="RECEIPT-2025-00900")
    db.commit()

    assert repo.next_receipt_number(2026) == "RECEIPT-2026-00042"
    assert repo.next_receipt_number(2025) == "RECEIPT-2025-00901"
    assert repo.next_receipt_number(2027) == "RECEIPT-2027-00001"
