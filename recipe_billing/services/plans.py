import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from recipe_billing.models import SubscriptionPlan


logger = logging.getLogger(__name__)

PLAN_SLUGS = ('free', 'basic', 'pro')
UNLIMITED = -1

PLAN_CATALOG = [
    {
        'name': 'Free',
        'price': Decimal('0.00'),
        'description': 'Perfect for getting started',
        'max_recipes': 5,
        'features': ['Access to 5 recipes', 'Basic recipe information', 'Community support'],
    },
    {
        'name': 'Basic',
        'price': Decimal('0.15'),
        'description': 'Great for regular cooking',
        'max_recipes': 20,
        'features': [
            'Access to 20 recipes',
            'Detailed cooking instructions',
            'Nutritional information',
            'Email support',
        ],
    },
    {
        'name': 'Pro',
        'price': Decimal('0.16'),
        'description': 'Unlimited access for food enthusiasts',
        'max_recipes': UNLIMITED,
        'features': [
            'Access to all recipes',
            'Advanced cooking techniques',
            'Video tutorials',
            'Priority support',
            'Exclusive recipes',
        ],
    },
]

# Plan names as the checkout provider reports them
BILLING_PLAN_NAMES = {
    'recipe basic': 'basic',
    'recipe pro': 'pro',
}


def seed_plans(db: Session) -> list[SubscriptionPlan]:
    existing = {name.lower() for (name,) in db.query(SubscriptionPlan.name).all()}
    inserted = []
    for spec in PLAN_CATALOG:
        if spec['name'].lower() in existing:
            continue
        plan = SubscriptionPlan(is_active=True, **spec)
        db.add(plan)
        inserted.append(plan)
    if inserted:
        db.commit()
        logger.info('Seeded %s subscription plans', len(inserted))
    return inserted


def get_plan_by_slug(db: Session, slug: str) -> Optional[SubscriptionPlan]:
    if not slug:
        return None
    return db.query(SubscriptionPlan).filter(func.lower(SubscriptionPlan.name) == slug.strip().lower()).first()


def list_active_plans(db: Session) -> list[SubscriptionPlan]:
    return (
        db.query(SubscriptionPlan)
        .filter(SubscriptionPlan.is_active.is_(True))
        .order_by(SubscriptionPlan.price.asc())
        .all()
    )


def plan_from_billing_name(db: Session, billing_name: Optional[str]) -> Optional[SubscriptionPlan]:
    """Match a plan name reported by the checkout provider to a local plan.

    Known provider names map directly; otherwise a name equal to a local slug
    or ending with one as its last word ("Monthly Pro") is accepted.
    """
    if not billing_name:
        return None
    normalized = ' '.join(billing_name.lower().split())
    slug = BILLING_PLAN_NAMES.get(normalized)
    if slug is None:
        slug = next((s for s in PLAN_SLUGS if normalized == s or normalized.endswith(f' {s}')), None)
    if slug is None:
        return None
    return get_plan_by_slug(db, slug)


def recipe_allowance(plan: Optional[SubscriptionPlan]) -> Optional[int]:
    """Number of recipes the plan unlocks, or None when unlimited."""
    if plan is None:
        return next(p['max_recipes'] for p in PLAN_CATALOG if p['name'] == 'Free')
    if plan.max_recipes is None or plan.max_recipes < 0:
        return None
    return plan.max_recipes


def plan_payload(plan: SubscriptionPlan) -> dict:
    return {
        'id': plan.slug,
        'name': plan.name,
        'price': float(plan.price),
        'description': plan.description,
        'features': list(plan.features or []),
        'maxRecipes': plan.max_recipes,
    }
