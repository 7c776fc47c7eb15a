"""Payment model (one row per accepted PAYMENT.SALE.COMPLETED webhook).

Rows are written once by PaymentStore.insert() and removed only by the
retention sweep. payment_id is indexed but deliberately not unique: the
duplicate check lives in the ingest flow, so existing databases with
repeated ids keep working.
"""

from payhook.extensions import db


class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    payment_id = db.Column(db.Text, nullable=False, index=True)  # e.g. "PAY-1AB23456CD789012E"
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.Text, nullable=False)
    status = db.Column(db.Text, nullable=False)  # resource.state, e.g. "completed"
    create_time = db.Column(db.Text, nullable=False)  # provider timestamp, stored as sent
    processed_at = db.Column(
        db.DateTime(timezone=True), nullable=False, index=True
    )

    # Legacy per-row counters kept from earlier databases. Never written or
    # read; stats are always derived from the rows themselves.
    payments24h = db.Column(db.Integer, server_default="1")
    sumamounts24h = db.Column(db.Numeric(12, 2), server_default="0")
    payments7d = db.Column(db.Integer, server_default="1")
    sumamounts7d = db.Column(db.Numeric(12, 2), server_default="0")
    payments28d = db.Column(db.Integer, server_default="1")
    sumamounts28d = db.Column(db.Numeric(12, 2), server_default="0")

    def __repr__(self):
        return f"<Payment {self.payment_id} {self.amount} {self.currency}>"
