"""FastAPI routes for message ingest.

Provides the single decision endpoint. The channel gateway posts each
inbound message here and sends back ``result.reply`` when present.
"""

import logging

from fastapi import APIRouter, Depends

from src.api.schemas import IngestRequest, IngestResponse
from src.config import load_config
from src.services.ingest_service import IngestService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ingest", tags=["ingest"])

_service: IngestService | None = None


def get_ingest_service() -> IngestService:
    """Process-wide IngestService, built on first use.

    One instance per process so every request shares the same per-customer
    lock registry.
    """
    global _service
    if _service is None:
        config = load_config()
        _service = IngestService.with_model_backends(config=config.engine)
        logger.info("Ingest service ready (merge window %d min)", config.engine.merge_window_minutes)
    return _service


@router.post("", response_model=IngestResponse)
async def ingest_message(
    payload: IngestRequest,
    service: IngestService = Depends(get_ingest_service),
) -> IngestResponse:
    """Decide what an inbound message means and apply it.

    Always returns 200 with a tagged result; store failures come back as
    ``kind: "error"`` with a user-safe reply rather than an HTTP error.

    Args:
        payload: The inbound message.
        service: Ingest service dependency.

    Returns:
        IngestResponse wrapping the tagged IngestResult.
    """
    result = await service.ingest(
        tenant_id=payload.tenant_id,
        customer_key=payload.customer_key,
        text=payload.text,
        message_id=payload.message_id,
        timestamp=payload.timestamp,
        forced_active_order_id=payload.forced_active_order_id,
        edited=payload.edited,
    )
    return IngestResponse(result=result)
