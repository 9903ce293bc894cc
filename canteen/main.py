import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from canteen.middleware import RequestIdMiddleware
from canteen.config import settings
from canteen.routers import events, reports
from canteen.services.fetcher import fetcher_for
from canteen.services.store import EventChannel, ReportStore

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Canteen Reports API", version="0.1.0")

# one long-lived report state per process, refreshed on update events
app.state.report_store = ReportStore(fetcher_for())
app.state.events = EventChannel()
app.state.report_store.bind(app.state.events)

# Middlewares
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(reports.router)
app.include_router(events.router)

@app.get("/healthz")
def healthz():
    return {"ok": True}
