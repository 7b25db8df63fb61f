from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from recipe_billing.core.timeutil import utcnow
from recipe_billing.db import Base


SUBSCRIPTION_STATUSES = ('active', 'cancelled', 'expired', 'pending')
BILLING_STATUSES = ('paid', 'pending', 'failed', 'refunded')
CHECKOUT_STATUSES = ('open', 'success', 'failure', 'timeout')


def _one_of(column: str, values: tuple[str, ...]) -> CheckConstraint:
    allowed = ", ".join(f"'{v}'" for v in values)
    return CheckConstraint(f"{column} IN ({allowed})")


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class User(Base, TimestampMixin):
    __tablename__ = 'users'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120))
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255))

    subscriptions: Mapped[list['UserSubscription']] = relationship(back_populates='user', cascade='all, delete-orphan', passive_deletes=True)
    billing_records: Mapped[list['BillingRecord']] = relationship(back_populates='user', cascade='all, delete-orphan', passive_deletes=True)
    sessions: Mapped[list['UserSession']] = relationship(back_populates='user', cascade='all, delete-orphan', passive_deletes=True)
    favorites: Mapped[list['RecipeFavorite']] = relationship(back_populates='user', cascade='all, delete-orphan', passive_deletes=True)


class SubscriptionPlan(Base):
    __tablename__ = 'subscription_plans'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(50), unique=True)  # Free/Basic/Pro
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    description: Mapped[str] = mapped_column(Text)
    max_recipes: Mapped[int] = mapped_column(Integer)  # -1 means unlimited
    features: Mapped[list] = mapped_column(JSON, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    subscriptions: Mapped[list['UserSubscription']] = relationship(back_populates='plan')

    @property
    def slug(self) -> str:
        return self.name.lower()


class UserSubscription(Base, TimestampMixin):
    __tablename__ = 'user_subscriptions'
    __table_args__ = (_one_of('status', SUBSCRIPTION_STATUSES),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id', ondelete='CASCADE'), index=True)
    plan_id: Mapped[int] = mapped_column(ForeignKey('subscription_plans.id'))
    status: Mapped[str] = mapped_column(String(20), default='pending')
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    auto_renew: Mapped[bool] = mapped_column(Boolean, default=True)

    user: Mapped['User'] = relationship(back_populates='subscriptions')
    plan: Mapped['SubscriptionPlan'] = relationship(back_populates='subscriptions')
    billing_records: Mapped[list['BillingRecord']] = relationship(back_populates='subscription')


class BillingRecord(Base):
    __tablename__ = 'billing_history'
    __table_args__ = (_one_of('status', BILLING_STATUSES),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id', ondelete='CASCADE'), index=True)
    subscription_id: Mapped[int | None] = mapped_column(
        ForeignKey('user_subscriptions.id', ondelete='SET NULL'), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    currency: Mapped[str] = mapped_column(String(3), default='USD')
    status: Mapped[str] = mapped_column(String(20), default='pending')
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    transaction_id: Mapped[str | None] = mapped_column(String(120), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    user: Mapped['User'] = relationship(back_populates='billing_records')
    subscription: Mapped[Optional['UserSubscription']] = relationship(back_populates='billing_records')


class UserSession(Base):
    __tablename__ = 'user_sessions'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id', ondelete='CASCADE'), index=True)
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    last_used_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    user: Mapped['User'] = relationship(back_populates='sessions')


class RecipeFavorite(Base):
    __tablename__ = 'recipe_favorites'
    __table_args__ = (UniqueConstraint('user_id', 'recipe_id', name='uq_recipe_favorites_user_recipe'),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id', ondelete='CASCADE'), index=True)
    recipe_id: Mapped[str] = mapped_column(String(64))
    recipe_name: Mapped[str] = mapped_column(String(255))
    recipe_image: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    user: Mapped['User'] = relationship(back_populates='favorites')


class CheckoutSession(Base, TimestampMixin):
    __tablename__ = 'checkout_sessions'
    __table_args__ = (_one_of('status', CHECKOUT_STATUSES),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True)
    plan_id: Mapped[int | None] = mapped_column(ForeignKey('subscription_plans.id'), nullable=True)
    billing_checkout_id: Mapped[str | None] = mapped_column(String(120), nullable=True, index=True)
    billing_order_id: Mapped[str | None] = mapped_column(String(120), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default='open', index=True)

    plan: Mapped[Optional['SubscriptionPlan']] = relationship()
