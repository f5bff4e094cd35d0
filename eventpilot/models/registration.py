from eventpilot.extensions import db
from .enums import RecordStatus, FieldType, FieldRole, PaymentState


class RegistrationTier(db.Model):
    __tablename__ = "registration_tiers"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=False)
    instance_id = db.Column(db.Integer, db.ForeignKey("event_instances.id"), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    status = db.Column(db.Enum(RecordStatus), nullable=False, default=RecordStatus.ACTIVE)


class RegistrationPeriod(db.Model):
    __tablename__ = "registration_periods"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=False)
    instance_id = db.Column(db.Integer, db.ForeignKey("event_instances.id"), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    starts_at = db.Column(db.TIMESTAMP(timezone=True), nullable=False)
    ends_at = db.Column(db.TIMESTAMP(timezone=True), nullable=False)
    status = db.Column(db.Enum(RecordStatus), nullable=False, default=RecordStatus.ACTIVE)


class RegistrationPeriodPricing(db.Model):
    __tablename__ = "registration_period_pricing"

    id = db.Column(db.Integer, primary_key=True)
    registration_period_id = db.Column(db.Integer, db.ForeignKey("registration_periods.id"), nullable=False)
    registration_tier_id = db.Column(db.Integer, db.ForeignKey("registration_tiers.id"), nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    available = db.Column(db.Boolean, nullable=False, default=True)
    status = db.Column(db.Enum(RecordStatus), nullable=False, default=RecordStatus.ACTIVE)

    period = db.relationship("RegistrationPeriod")
    tier = db.relationship("RegistrationTier")

    __table_args__ = (
        db.UniqueConstraint("registration_period_id", "registration_tier_id", name="uq_period_tier_pricing"),
    )


class RegistrationField(db.Model):
    __tablename__ = "registration_fields"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=False)
    instance_id = db.Column(db.Integer, db.ForeignKey("event_instances.id"), nullable=False)
    type = db.Column(db.Enum(FieldType), nullable=False, default=FieldType.TEXT)
    role = db.Column(db.Enum(FieldRole), nullable=True)
    label = db.Column(db.String(255), nullable=True)
    required = db.Column(db.Boolean, nullable=False, default=False)
    order = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.Enum(RecordStatus), nullable=False, default=RecordStatus.ACTIVE)


class Registration(db.Model):
    __tablename__ = "registrations"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=False)
    instance_id = db.Column(db.Integer, db.ForeignKey("event_instances.id"), nullable=False)
    registration_tier_id = db.Column(db.Integer, db.ForeignKey("registration_tiers.id"), nullable=False)
    registration_period_pricing_id = db.Column(
        db.Integer, db.ForeignKey("registration_period_pricing.id"), nullable=True
    )
    price_snapshot = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id"), nullable=True)
    team_id = db.Column(db.Integer, nullable=True)
    crm_person_id = db.Column(db.Integer, db.ForeignKey("crm_persons.id"), nullable=True)
    stripe_payment_intent_id = db.Column(db.String(255), nullable=True)
    finalized = db.Column(db.Boolean, nullable=False, default=False)
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

    tier = db.relationship("RegistrationTier")
    coupon = db.relationship("Coupon")
    upsells = db.relationship("RegistrationUpsell", backref="registration", lazy=True)
    field_responses = db.relationship("RegistrationFieldResponse", backref="registration", lazy=True)

    @property
    def payment_state(self) -> PaymentState:
        if self.finalized:
            return PaymentState.FINALIZED
        if self.stripe_payment_intent_id:
            return PaymentState.AWAITING_PAYMENT
        return PaymentState.CREATED

    def to_dict(self):
        return {
            "id": self.id,
            "event_id": self.event_id,
            "instance_id": self.instance_id,
            "registration_tier_id": self.registration_tier_id,
            "price_snapshot": str(self.price_snapshot) if self.price_snapshot is not None else None,
            "coupon_id": self.coupon_id,
            "team_id": self.team_id,
            "finalized": self.finalized,
            "payment_state": self.payment_state.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return (
            f"Registration("
            f"id={self.id}, "
            f"event_id={self.event_id}, "
            f"instance_id={self.instance_id}, "
            f"price_snapshot={self.price_snapshot}, "
            f"coupon_id={self.coupon_id}, "
            f"finalized={self.finalized}"
            f")"
        )


class RegistrationFieldResponse(db.Model):
    __tablename__ = "registration_field_responses"

    id = db.Column(db.Integer, primary_key=True)
    registration_id = db.Column(db.Integer, db.ForeignKey("registrations.id"), nullable=False)
    field_id = db.Column(db.Integer, db.ForeignKey("registration_fields.id"), nullable=False)
    value = db.Column(db.Text, nullable=True)

    field = db.relationship("RegistrationField")
