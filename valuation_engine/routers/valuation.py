from functools import lru_cache

from fastapi import APIRouter, Depends

from ..data.report_store import RequestStatus
from ..schemas import ReportResponse, ValuationInput, ValuationResult
from ..services.valuation_service import ValuationService

router = APIRouter()

@lru_cache(maxsize=1)
def service_dep() -> ValuationService:
    # One instance: the service is stateless and its provider clients are reusable.
    return ValuationService()

@router.post("/valuations", response_model=ValuationResult)
async def post_valuation(
    body: ValuationInput,
    svc: ValuationService = Depends(service_dep),
):
    """Value a property without recording anything."""
    return await svc.generate_valuation(body)

@router.post("/appraisal-requests/{request_id}/valuation", response_model=ReportResponse)
async def post_request_valuation(
    request_id: str,
    body: ValuationInput,
    svc: ValuationService = Depends(service_dep),
):
    """
    Value the property for an existing appraisal request and store the report.
    Error responses come from the handlers in main.register_error_handlers.
    """
    valuation, report = await svc.process_request(request_id, body)
    return ReportResponse(
        request_id=request_id,
        report_id=report.id,
        status=RequestStatus.READY.value,
        risk_score=report.risk_score,
        valuation=valuation,
    )
