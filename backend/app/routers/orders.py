"""Manual Shopify order import."""
from __future__ import annotations

from typing import Any, Callable

from fastapi import APIRouter, Depends

from ..repositories import OpsRepository, get_repository
from ..schemas import OrderImportRequest, OrderImportResponse
from ..services import shopify_client
from ..use_cases.order_import import import_order_by_id_use_case

router = APIRouter(prefix="/orders", tags=["orders"])


def get_order_fetcher() -> Callable[[str], dict[str, Any]]:
    return shopify_client.fetch_order


@router.post("/import", response_model=OrderImportResponse)
def import_order(
    data: OrderImportRequest,
    repo: OpsRepository = Depends(get_repository),
    fetch_order: Callable[[str], dict[str, Any]] = Depends(get_order_fetcher),
):
    """Fetch one order from Shopify and import it."""
    return import_order_by_id_use_case(repo=repo, order_id=data.order_id, fetch_order=fetch_order)
