from datetime import date
from fastapi import FastAPI, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from .config import load_settings
from .logging_setup import configure_logging
from .models import (
    AttendanceSummary, CategoryFilter, LedgerTotals, LedgerViewResponse,
    QueryFilters, RejectedEntry, StatusFilter,
)
from .service import (
    LedgerService, IncompleteFetchError, ProjectNotFoundError,
)

settings = load_settings()
configure_logging(settings.log_level)

app = FastAPI(
    title="Payment Ledger API",
    description="Project balance sheet: payments from general, site, worker and material records in one ledger",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ledger_service = LedgerService(settings=settings)


def _filters(search: str, status_filter: StatusFilter, category: CategoryFilter) -> QueryFilters:
    return QueryFilters(search=search, status=status_filter, category=category)


@app.get("/health", tags=["System"])
def health_check():
    return {"status": "healthy", "service": "payment-ledger"}


@app.get("/projects/{project_id}/ledger", response_model=LedgerViewResponse, tags=["Ledger"])
def get_ledger(
    project_id: str,
    search: str = "",
    status_filter: StatusFilter = Query(StatusFilter.ALL, alias="status"),
    category: CategoryFilter = CategoryFilter.ALL,
) -> LedgerViewResponse:
    try:
        return ledger_service.view(project_id, _filters(search, status_filter, category))
    except ProjectNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Project {project_id} not found")
    except IncompleteFetchError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


@app.get("/projects/{project_id}/ledger/summary", response_model=LedgerTotals, tags=["Ledger"])
def get_ledger_summary(project_id: str) -> LedgerTotals:
    try:
        return ledger_service.get_totals(project_id)
    except ProjectNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Project {project_id} not found")
    except IncompleteFetchError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


@app.get("/projects/{project_id}/ledger/rejected", response_model=list[RejectedEntry], tags=["Ledger"])
def get_rejected_entries(project_id: str) -> list[RejectedEntry]:
    try:
        return ledger_service.get_rejected(project_id)
    except ProjectNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Project {project_id} not found")
    except IncompleteFetchError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


@app.get("/projects/{project_id}/ledger/export.csv", tags=["Export"])
def export_ledger_csv(
    project_id: str,
    search: str = "",
    status_filter: StatusFilter = Query(StatusFilter.ALL, alias="status"),
    category: CategoryFilter = CategoryFilter.ALL,
) -> Response:
    try:
        filename, content = ledger_service.export_csv(project_id, _filters(search, status_filter, category))
    except ProjectNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Project {project_id} not found")
    except IncompleteFetchError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/projects/{project_id}/attendance/{day}", response_model=AttendanceSummary, tags=["Attendance"])
def get_attendance_total(project_id: str, day: date) -> AttendanceSummary:
    try:
        return ledger_service.attendance_total(project_id, day)
    except ProjectNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Project {project_id} not found")
    except IncompleteFetchError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
