from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from recipe_billing.core.errors import RecipeSourceError
from recipe_billing.db import get_db
from recipe_billing.deps import get_current_user
from recipe_billing.models import User
from recipe_billing.services.plans import recipe_allowance
from recipe_billing.services.recipes import fetch_recipes, gate_recipes
from recipe_billing.services.subscriptions import get_active_subscription


router = APIRouter(prefix='/api/recipes', tags=['recipes'])


@router.get('')
def list_recipes(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    sub = get_active_subscription(db, user.id)
    plan = sub.plan if sub else None
    try:
        recipes = fetch_recipes()
    except RecipeSourceError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))

    allowance = recipe_allowance(plan)
    return {
        'plan': plan.slug if plan else 'free',
        'maxRecipes': -1 if allowance is None else allowance,
        'total': len(recipes),
        'recipes': gate_recipes(recipes, plan),
    }
