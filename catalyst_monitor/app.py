from __future__ import annotations

import logging
from collections import defaultdict
from typing import TypeVar

from fastapi import Depends, FastAPI, HTTPException, Query

from catalyst_monitor.config import Settings
from catalyst_monitor.errors import PersistenceError
from catalyst_monitor.schemas import (
    CollaboratorRow,
    FinancialRow,
    MilestoneRow,
    ProjectOut,
    ProposalRow,
    TableRow,
    TransactionRow,
)
from catalyst_monitor.store import TabularStore

log = logging.getLogger(__name__)

R = TypeVar("R", bound=TableRow)

app = FastAPI(
    title="Catalyst Monitor",
    version="0.1.0",
    description=(
        "Read-only view of the aggregated Catalyst project tables written by the sync job. "
        "Serves proposals with their milestones, transactions, collaborator allocations and financials."
    ),
    openapi_tags=[
        {"name": "Projects", "description": "Aggregated per-project records."},
    ],
)


# ---------------------------------------------------------------------------
# Dependencies & Helpers
# ---------------------------------------------------------------------------


def table_store() -> TabularStore:
    return TabularStore(Settings.from_env().data_dir)


def _load(store: TabularStore, row_type: type[R]) -> list[R]:
    try:
        return store.load_rows(row_type)
    except PersistenceError as exc:
        log.error("Failed to load table %s: %s", row_type.TABLE, exc)
        raise HTTPException(500, f"Failed to load {row_type.TABLE} data") from exc


def _group(rows: list[R]) -> dict[str, list[R]]:
    grouped: dict[str, list[R]] = defaultdict(list)
    for row in rows:
        grouped[row.project_id].append(row)  # type: ignore[attr-defined]
    return grouped


def project_records(store: TabularStore, project_id: str | None = None) -> list[ProjectOut]:
    proposals = _load(store, ProposalRow)
    if project_id is not None:
        proposals = [p for p in proposals if p.project_id == project_id]
    if not proposals:
        return []
    milestones = _group(_load(store, MilestoneRow))
    transactions = _group(_load(store, TransactionRow))
    collaborators = _group(_load(store, CollaboratorRow))
    financials = _group(_load(store, FinancialRow))

    records: list[ProjectOut] = []
    for p in proposals:
        fin = financials.get(p.project_id)
        records.append(ProjectOut(
            **p.model_dump(),
            milestones=milestones.get(p.project_id, []),
            transactions=transactions.get(p.project_id, []),
            collaborators=collaborators.get(p.project_id, []),
            financials=fin[0] if fin else None,
        ))
    return records


# ---------------------------------------------------------------------------
# Routes: Projects
# ---------------------------------------------------------------------------


@app.get("/projects", response_model=list[ProjectOut] | ProjectOut,
         tags=["Projects"], summary="List aggregated projects, or one project by id")
async def get_projects(
    project_id: str | None = Query(None, alias="id", description="Project ID, e.g. 1100271"),
    store: TabularStore = Depends(table_store),
):
    if project_id is not None:
        records = project_records(store, project_id.strip())
        if not records:
            raise HTTPException(404, "Project not found")
        return records[0]
    records = project_records(store)
    if not records:
        raise HTTPException(404, "No project data found")
    return records


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


def main(host: str = "127.0.0.1", port: int = 8001, reload: bool = False) -> None:
    import uvicorn
    uvicorn.run("catalyst_monitor.app:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    main()
