from eventpilot.extensions import db
from .enums import RecordStatus, DiscountType, CouponAppliesTo


class Coupon(db.Model):
    __tablename__ = "coupons"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=False)
    instance_id = db.Column(db.Integer, db.ForeignKey("event_instances.id"), nullable=False)
    title = db.Column(db.String(128), nullable=False)
    code = db.Column(db.String(32), nullable=False)
    discount_type = db.Column(db.Enum(DiscountType), nullable=False)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    applies_to = db.Column(db.Enum(CouponAppliesTo), nullable=False, default=CouponAppliesTo.BOTH)
    # -1 means unlimited
    max_redemptions = db.Column(db.Integer, nullable=False, default=-1)
    ends_at = db.Column(db.TIMESTAMP(timezone=True), nullable=True)
    ends_at_tz = db.Column(db.String(64), nullable=True)
    status = db.Column(db.Enum(RecordStatus), nullable=False, default=RecordStatus.ACTIVE)
    created_at = db.Column(
        db.TIMESTAMP(timezone=True), nullable=False, server_default=db.func.now()
    )
    updated_at = db.Column(
        db.TIMESTAMP(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __table_args__ = (
        db.UniqueConstraint("event_id", "instance_id", "code", name="uq_coupon_event_instance_code"),
    )

    def to_dict(self, redemptions=None):
        data = {
            "id": self.id,
            "title": self.title,
            "code": self.code,
            "discount_type": self.discount_type.value,
            "amount": str(self.amount),
            "applies_to": self.applies_to.value,
            "max_redemptions": self.max_redemptions,
            "ends_at": self.ends_at.isoformat() if self.ends_at else None,
            "ends_at_tz": self.ends_at_tz,
        }
        if redemptions is not None:
            data["redemptions"] = redemptions
        return data

    def summary(self):
        return {
            "id": self.id,
            "title": self.title,
            "code": self.code,
            "discount_type": self.discount_type.value,
            "amount": str(self.amount),
            "applies_to": self.applies_to.value,
        }
