from fastapi import APIRouter, HTTPException

from api.src.models.schemas import UsageResponse
from api.src.services.usage import read_usage, UsageUnavailableError

router = APIRouter(prefix="/usage", tags=["usage"])

@router.get("", response_model=UsageResponse)
async def get_usage():
    """Today's generation counters against the configured limits."""
    try:
        return read_usage()
    except UsageUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
