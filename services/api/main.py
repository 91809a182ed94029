"""
Pattern Detector API - FastAPI backend for ticket pattern analysis,
dashboard analytics and administrative actions
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Literal, Optional

import structlog
from fastapi import BackgroundTasks, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from services.patterns.detector import AnalysisStatus, PatternDetector, create_detector
from services.patterns.errors import NotFoundError, StoreConflictError
from shared.schemas import (
    Cluster,
    HelpdeskTicket,
    IncidentTicket,
    PatternAlert,
    PatternAnalytics,
    SpamDetection,
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the detector (store + embedder) on startup"""
    app.state.detector = create_detector()
    logger.info("Starting Pattern Detector API", store=type(app.state.detector.store).__name__)
    yield
    logger.info("Shutting down Pattern Detector API")


app = FastAPI(
    title="Pattern Detector API",
    description="Helpdesk ticket clustering, pattern alerts, spam detection and incidents",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS for dashboard access
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_detector(request: Request) -> PatternDetector:
    return request.app.state.detector


# ============================================================================
# Request / Response Models
# ============================================================================

class TicketAccepted(BaseModel):
    ticket_id: int
    status: str = "accepted"


class AcknowledgeRequest(BaseModel):
    user_id: str = Field(..., min_length=1)


class SpamReviewRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    status: Literal["confirmed", "dismissed"]


class IncidentRequest(BaseModel):
    cluster_id: int
    user_id: str = Field(..., min_length=1)


class IncidentUpdateRequest(BaseModel):
    status: Optional[Literal["open", "investigating", "resolved"]] = None
    assigned_to: Optional[str] = None
    estimated_resolution: Optional[datetime] = None
    public_statement: Optional[str] = None


# ============================================================================
# Background analysis
# ============================================================================

async def run_pattern_analysis(detector: PatternDetector, ticket: HelpdeskTicket):
    """Background task: analyze a ticket after the creation response is sent"""
    result = await detector.analyze_ticket_pattern(ticket)
    if result.status == AnalysisStatus.CLUSTERED:
        logger.info(
            "Pattern analysis complete",
            ticket_id=ticket.id,
            cluster_id=result.cluster.cluster_id,
            merged=result.cluster.merged,
            spam_flags=len(result.spam),
        )
    else:
        logger.warning("Pattern analysis skipped", ticket_id=ticket.id, error=result.error)


# ============================================================================
# Endpoints
# ============================================================================

@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    detector = get_detector(request)
    if detector.store.check_health():
        return {"status": "healthy", "database": "connected"}
    return {"status": "degraded", "database": "unreachable"}


@app.post("/api/patterns/tickets", response_model=TicketAccepted, status_code=202)
async def submit_ticket(ticket: HelpdeskTicket, request: Request, background_tasks: BackgroundTasks):
    """
    Hand over a newly created ticket.
    Spam check and clustering run in the background and never fail this call.
    """
    detector = get_detector(request)
    try:
        await detector.record_ticket(ticket)
    except Exception as e:
        logger.error("Failed to record ticket", ticket_id=ticket.id, error=str(e))
        raise HTTPException(status_code=500, detail=str(e))

    background_tasks.add_task(run_pattern_analysis, detector, ticket)
    return TicketAccepted(ticket_id=ticket.id)


@app.get("/api/patterns/analytics", response_model=PatternAnalytics)
async def get_pattern_analytics(request: Request, department: Optional[str] = Query(None)):
    """Dashboard analytics: active clusters, recent alerts, top issues, pending spam."""
    try:
        return await get_detector(request).get_pattern_analytics(department)
    except Exception as e:
        logger.error("Failed to fetch pattern analytics", error=str(e))
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/patterns/clusters", response_model=List[Cluster])
async def list_clusters(request: Request, department: Optional[str] = Query(None)):
    """Active clusters, most recently seen first."""
    try:
        return await get_detector(request).list_clusters(department)
    except Exception as e:
        logger.error("Failed to fetch clusters", error=str(e))
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/patterns/clusters/{cluster_id}/deactivate", response_model=Cluster)
async def deactivate_cluster(cluster_id: int, request: Request):
    """Stop matching new tickets against a cluster."""
    try:
        return await get_detector(request).deactivate_cluster(cluster_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StoreConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error("Failed to deactivate cluster", cluster_id=cluster_id, error=str(e))
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/patterns/alerts", response_model=List[PatternAlert])
async def list_alerts(
    request: Request,
    department: Optional[str] = Query(None),
    hours: Optional[int] = Query(None, ge=1, le=24 * 30),
):
    """Pattern alerts raised within the look-back window."""
    try:
        return await get_detector(request).list_alerts(department, hours)
    except Exception as e:
        logger.error("Failed to fetch pattern alerts", error=str(e))
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/patterns/alerts/{alert_id}/acknowledge", response_model=PatternAlert)
async def acknowledge_alert(alert_id: int, body: AcknowledgeRequest, request: Request):
    """Mark a pattern alert as seen."""
    try:
        return await get_detector(request).acknowledge_alert(alert_id, body.user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Failed to acknowledge alert", alert_id=alert_id, error=str(e))
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/patterns/spam", response_model=List[SpamDetection])
async def list_spam(request: Request, department: Optional[str] = Query(None)):
    """Spam detections awaiting review."""
    try:
        return await get_detector(request).list_spam(department)
    except Exception as e:
        logger.error("Failed to fetch spam detections", error=str(e))
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/patterns/spam/{detection_id}/review", response_model=SpamDetection)
async def review_spam(detection_id: int, body: SpamReviewRequest, request: Request):
    """Confirm or dismiss a spam detection."""
    try:
        return await get_detector(request).review_spam(detection_id, body.status, body.user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        logger.error("Failed to review spam detection", detection_id=detection_id, error=str(e))
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/patterns/incidents", response_model=IncidentTicket)
async def create_incident(body: IncidentRequest, request: Request):
    """Escalate a cluster to an incident ticket (returns the existing one if already escalated)."""
    try:
        return await get_detector(request).create_incident_ticket(body.cluster_id, body.user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StoreConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error("Failed to create incident ticket", cluster_id=body.cluster_id, error=str(e))
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/patterns/incidents", response_model=List[IncidentTicket])
async def list_incidents(request: Request, department: Optional[str] = Query(None)):
    """Incident tickets, newest first."""
    try:
        return await get_detector(request).list_incidents(department)
    except Exception as e:
        logger.error("Failed to fetch incidents", error=str(e))
        raise HTTPException(status_code=500, detail=str(e))


@app.patch("/api/patterns/incidents/{incident_id}", response_model=IncidentTicket)
async def update_incident(incident_id: int, body: IncidentUpdateRequest, request: Request):
    """Update incident workflow fields."""
    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=422, detail="No fields to update")
    try:
        return await get_detector(request).update_incident(incident_id, **changes)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        logger.error("Failed to update incident", incident_id=incident_id, error=str(e))
        raise HTTPException(status_code=500, detail=str(e))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
