from typing import AsyncIterator, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import ValidationError

from canteen.config import settings
from canteen.schemas.reports import ReportPeriod
from canteen.services.fetcher import ReportDataset, fetch_dataset
from canteen.services.store import EventChannel, ReportStore
from canteen.services.upstream import UpstreamClient

auth_scheme = HTTPBearer(auto_error=False)

def forwarded_token(creds: HTTPAuthorizationCredentials | None = Depends(auth_scheme)) -> str | None:
    # the backend does the actual auth; we only pass the caller's token along
    return creds.credentials if creds else None

def require_token(token: str | None = Depends(forwarded_token)) -> str:
    # routes that start an upstream fan-out need some credential to send along
    token = token or settings.API_TOKEN
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return token

async def get_upstream(token: str | None = Depends(forwarded_token)) -> AsyncIterator[UpstreamClient]:
    client = UpstreamClient(token=token)
    try:
        yield client
    finally:
        await client.aclose()

def get_period(
    month: str = "all",
    year: str = "all",
    start: Optional[str] = None,
    end: Optional[str] = None,
) -> ReportPeriod:
    try:
        return ReportPeriod(month=month, year=year, start_date=start or None, end_date=end or None)
    except ValidationError as e:
        msg = "; ".join(err["msg"] for err in e.errors())
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid period: {msg}")

async def get_dataset(
    period: ReportPeriod = Depends(get_period),
    client: UpstreamClient = Depends(get_upstream),
) -> ReportDataset:
    return await fetch_dataset(client, period)

def get_store(request: Request) -> ReportStore:
    return request.app.state.report_store

def get_channel(request: Request) -> EventChannel:
    return request.app.state.events
