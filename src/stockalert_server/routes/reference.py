"""Reference data endpoints — urgency levels, carriers, drug categories.

Read-only and unauthenticated; dashboards and the simulator use them to
label menu choices.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from stockalert_db.repository import DrugRepository
from stockalert_ussd.constants import (
    DEFAULT_DRUG_CATALOGUE,
    DEFAULT_PROVIDER,
    NETWORK_CODES,
    PROVIDER_MAX_MENU_ITEMS,
    URGENCY_LEVELS,
)

from stockalert_server.dependencies import get_db

router = APIRouter(prefix="/reference", tags=["reference"])

_drugs = DrugRepository()


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------

@router.get("/urgency-levels")
def list_urgency_levels() -> list[dict]:
    """Urgency levels in menu order; ``option`` is the USSD key."""
    return [
        {"option": str(i), "id": level, "name": level.capitalize()}
        for i, level in enumerate(URGENCY_LEVELS, start=1)
    ]


@router.get("/providers")
def list_providers() -> list[dict]:
    """Supported carriers with their network codes and list sizes."""
    return [
        {
            "id": provider,
            "network_codes": list(codes),
            "max_menu_items": PROVIDER_MAX_MENU_ITEMS[provider],
            "default": provider == DEFAULT_PROVIDER,
        }
        for provider, codes in NETWORK_CODES.items()
    ]


@router.get("/drug-categories")
async def list_drug_categories(
    db: AsyncSession = Depends(get_db),
) -> list[dict]:
    """Categories and drug names as the USSD menu will show them."""
    rows = await _drugs.list_drugs(db)
    if rows:
        pairs = [(d.category, d.name) for d in rows]
    else:
        pairs = [(category, name) for category, name, _unit in DEFAULT_DRUG_CATALOGUE]

    grouped: dict[str, list[str]] = {}
    for category, name in pairs:
        grouped.setdefault(category, []).append(name)
    return [
        {"category": category, "drugs": grouped[category]}
        for category in sorted(grouped)
    ]
