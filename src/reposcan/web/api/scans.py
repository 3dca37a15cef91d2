"""REST API for submitting scans and polling their status."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from reposcan.errors import InvalidReferenceError, QueueFullError, StoreError
from reposcan.reference import parse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["scans"])


class ScanRequest(BaseModel):
    repoUrl: str | None = None


@router.post("/scan", status_code=202)
async def submit_scan(body: ScanRequest, request: Request):
    try:
        ref = parse(body.repoUrl)
    except InvalidReferenceError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})

    try:
        scan_id = await request.app.state.scheduler.submit(ref)
    except QueueFullError as e:
        return JSONResponse(status_code=503, content={"error": str(e)})
    except StoreError as e:
        logger.error("Could not create scan for %s: %s", ref.full_name, e)
        return JSONResponse(
            status_code=500,
            content={"error": "Could not start the scan. Please try again."},
        )
    return {"scanId": scan_id}


@router.get("/scan/{scan_id}")
async def get_scan(scan_id: str, request: Request):
    try:
        job = await request.app.state.store.get(scan_id)
    except StoreError as e:
        logger.error("Could not read scan %s: %s", scan_id, e)
        return JSONResponse(status_code=500, content={"error": "Could not read scan."})
    if job is None:
        return JSONResponse(
            status_code=404,
            content={"error": "Scan not found"},
        )
    return job.to_dict()
