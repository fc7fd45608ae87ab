from fastapi import APIRouter

from app.models import ParseRequest
from app.services.po_parser import parse_order

router = APIRouter(tags=["Parsing"])


@router.post("/parse", summary="Extract purchase-order line items from plain text")
async def parse_text(payload: ParseRequest) -> dict:
    order = parse_order(payload.text)
    return {"success": True, **order.model_dump()}
