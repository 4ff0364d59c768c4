from fastapi import APIRouter, Depends

from jobagent.connectors.registry import source_stats
from jobagent.core.config import Settings, get_settings
from jobagent.schemas.sources import SourceStatsOut

router = APIRouter()


@router.get("", response_model=SourceStatsOut)
async def get_source_stats(settings: Settings = Depends(get_settings)) -> SourceStatsOut:
    return SourceStatsOut(**source_stats(settings))
