import logging
from typing import Any, Dict, List, Optional

import requests
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from recipe_billing.core.config import settings
from recipe_billing.core.errors import RecipeSourceError
from recipe_billing.models import RecipeFavorite, SubscriptionPlan
from recipe_billing.services.plans import recipe_allowance


logger = logging.getLogger(__name__)


def fetch_recipes(url: Optional[str] = None, timeout: Optional[int] = None) -> List[Dict[str, Any]]:
    url = url or settings.recipes_api_url
    try:
        # dummyjson pages at 30 by default; limit=0 returns everything
        resp = requests.get(url, params={'limit': 0}, timeout=timeout or settings.recipes_timeout_seconds)
        resp.raise_for_status()
        body = resp.json()
    except (requests.RequestException, ValueError) as exc:
        logger.error('Recipe source %s failed: %s', url, exc)
        raise RecipeSourceError('Failed to fetch recipes') from exc
    recipes = body.get('recipes') if isinstance(body, dict) else None
    if not isinstance(recipes, list):
        raise RecipeSourceError('Recipe source returned no recipe list')
    return recipes


def gate_recipes(recipes: List[Dict[str, Any]], plan: Optional[SubscriptionPlan]) -> List[Dict[str, Any]]:
    allowance = recipe_allowance(plan)
    if allowance is None:
        return list(recipes)
    return list(recipes[:allowance])


def list_favorites(db: Session, user_id: int) -> list[RecipeFavorite]:
    return (
        db.query(RecipeFavorite)
        .filter(RecipeFavorite.user_id == user_id)
        .order_by(RecipeFavorite.created_at.desc(), RecipeFavorite.id.desc())
        .all()
    )


def add_favorite(
    db: Session, user_id: int, recipe_id: str, recipe_name: str, recipe_image: Optional[str] = None
) -> Optional[RecipeFavorite]:
    """Returns None when the recipe is already a favorite."""
    favorite = RecipeFavorite(user_id=user_id, recipe_id=recipe_id, recipe_name=recipe_name, recipe_image=recipe_image)
    db.add(favorite)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return None
    db.refresh(favorite)
    return favorite


def remove_favorite(db: Session, user_id: int, recipe_id: str) -> bool:
    favorite = (
        db.query(RecipeFavorite)
        .filter(RecipeFavorite.user_id == user_id, RecipeFavorite.recipe_id == recipe_id)
        .first()
    )
    if not favorite:
        return False
    db.delete(favorite)
    db.commit()
    return True
