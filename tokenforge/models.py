# models.py (database tables)

from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

from .payment import PaymentRecord

db = SQLAlchemy()


def _utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


# --- Verified fee payments, and which mint each one paid for ---
class Payment(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    signature = db.Column(db.String(88), nullable=False, unique=True, index=True)
    payer = db.Column(db.String(44), nullable=False, index=True)
    recipient = db.Column(db.String(44), nullable=False)
    lamports = db.Column(db.BigInteger, nullable=False)
    verified_at = db.Column(db.DateTime, nullable=False, default=_utcnow)
    redeemed_mint = db.Column(db.String(44), nullable=True)
    redeemed_at = db.Column(db.DateTime, nullable=True)

    @classmethod
    def from_record(cls, record):
        return cls(
            signature=record.signature,
            payer=record.payer,
            recipient=record.recipient,
            lamports=record.lamports,
            verified_at=record.timestamp.astimezone(timezone.utc).replace(tzinfo=None),
        )

    def to_record(self):
        return PaymentRecord(
            signature=self.signature,
            payer=self.payer,
            recipient=self.recipient,
            lamports=self.lamports,
            timestamp=self.verified_at.replace(tzinfo=timezone.utc),
        )

    @classmethod
    def claim(cls, payment_id, mint):
        """Reserve an unredeemed payment for ``mint`` in one conditional UPDATE.

        Returns True only for the request whose UPDATE matched the row.
        """
        claimed = cls.query.filter(cls.id == payment_id, cls.redeemed_mint.is_(None)).update(
            {"redeemed_mint": mint, "redeemed_at": _utcnow()}, synchronize_session=False
        )
        db.session.commit()
        return claimed == 1

    @classmethod
    def release(cls, payment_id, mint):
        cls.query.filter(cls.id == payment_id, cls.redeemed_mint == mint).update(
            {"redeemed_mint": None, "redeemed_at": None}, synchronize_session=False
        )
        db.session.commit()
