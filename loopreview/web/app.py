"""
FastAPI Web Application - Loop Review Automation API
=====================================================

JSON API for the automation engine. Every response uses the envelope
    {"success": true,  "data": ...}
    {"success": false, "error": "..."}

The business owner is identified by the `session` cookie. Automation
endpoints additionally require an active Pro or Enterprise subscription.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Cookie, Depends, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..application import AutomationService, build_automation_service, require_automation_access
from ..domain.errors import AccessDeniedError, ValidationError
from ..domain.models import Channel, User
from ..infrastructure.config import get_settings

logger = logging.getLogger(__name__)


# ── Lifespan ───────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    for issue in settings.validate():
        logger.warning(issue)

    app.state.service = build_automation_service(settings)
    logger.info(f"Database ready at {settings.database.path}")
    yield
    app.state.service.close()


app = FastAPI(
    title="Loop Review Automation",
    description="Review follow-up scheduling and delivery",
    lifespan=lifespan,
)


# ── Request models ─────────────────────────────────────────────────

class SchedulerRequest(BaseModel):
    reviewId: Optional[int] = None
    userId: Optional[int] = None
    eventType: Optional[str] = None


class TemplateRequest(BaseModel):
    content: str
    name: str = ""
    subject: str = ""
    fromEmail: str = ""
    senderName: str = ""
    initialTrigger: str = "immediate"
    initialWaitDays: int = Field(default=0, ge=0)


class ReviewRequest(BaseModel):
    rating: int = Field(ge=1, le=5)
    customerId: str = ""
    customerName: str = ""
    customerEmail: str = ""
    comment: str = ""


class CustomerRequest(BaseModel):
    name: str = Field(min_length=1)
    email: str = ""
    phone: str = ""


# ── Envelope & error handlers ──────────────────────────────────────

def _ok(data) -> dict:
    return {"success": True, "data": data}


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


@app.exception_handler(AccessDeniedError)
async def access_denied_handler(request: Request, exc: AccessDeniedError):
    return _error(exc.status_code, str(exc))


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return _error(400, str(exc))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return _error(400, f"{location}: {message}" if location else message)


# ── Dependencies ───────────────────────────────────────────────────

def get_service(request: Request) -> AutomationService:
    return request.app.state.service


def get_automation_user(
    session: Optional[str] = Cookie(default=None),
    service: AutomationService = Depends(get_service),
) -> User:
    """Logged-in owner with automation access; AccessDeniedError otherwise."""
    return require_automation_access(
        service.db, session, service.settings.automation.entitled_tiers
    )


def _parse_channel(value: str) -> Channel:
    try:
        return Channel(value.lower())
    except ValueError:
        raise ValidationError(f"Unknown template channel '{value}'")


# ── Routes ─────────────────────────────────────────────────────────

@app.get("/health")
async def health():
    return {"success": True, "status": "ok"}


@app.post("/api/automation/scheduler")
async def schedule_automation(
    body: SchedulerRequest,
    user: User = Depends(get_automation_user),
    service: AutomationService = Depends(get_service),
):
    if body.reviewId is None and body.userId is None:
        return _error(400, "Either userId or reviewId is required")

    if body.reviewId is not None:
        result = await run_in_threadpool(service.schedule_for_review, body.reviewId, user.id)
    else:
        if body.userId != user.id:
            return _error(403, "Cannot schedule automation for another account")
        result = await run_in_threadpool(service.schedule_for_user, user.id, body.eventType)

    return _ok({
        "processedJobs": result.jobs_scheduled,
        "results": [result.to_dict()],
    })


@app.get("/api/automation/scheduler")
async def run_scheduler_action(
    action: str = "process_pending",
    testMode: bool = False,
    user: User = Depends(get_automation_user),
    service: AutomationService = Depends(get_service),
):
    if action == "process_pending":
        summary = await run_in_threadpool(service.process_pending, testMode)
        return _ok(summary.to_dict())

    if action == "list_pending":
        jobs = service.list_pending()
        return _ok({
            "success": True,
            "pendingJobs": [job.to_dict() for job in jobs],
            "count": len(jobs),
        })

    return _error(400, "Invalid action")


@app.put("/api/templates/{channel}")
async def save_template(
    channel: str,
    body: TemplateRequest,
    user: User = Depends(get_automation_user),
    service: AutomationService = Depends(get_service),
):
    template, backfill = await run_in_threadpool(
        lambda: service.save_template(
            user.id,
            _parse_channel(channel),
            content=body.content,
            subject=body.subject,
            from_email=body.fromEmail,
            sender_name=body.senderName,
            name=body.name,
            initial_trigger=body.initialTrigger,
            initial_wait_days=body.initialWaitDays,
        )
    )
    return _ok({
        "template": {
            "id": template.id,
            "type": template.channel.value,
            "name": template.name,
            "subject": template.subject,
            "content": template.content,
            "fromEmail": template.from_email,
            "senderName": template.sender_name,
            "initialTrigger": template.initial_trigger,
            "initialWaitDays": template.initial_wait_days,
            "updatedAt": template.updated_at,
        },
        "backfill": backfill.to_dict(),
    })


@app.post("/api/reviews")
async def submit_review(
    body: ReviewRequest,
    user: User = Depends(get_automation_user),
    service: AutomationService = Depends(get_service),
):
    result = await run_in_threadpool(
        lambda: service.submit_review(
            user.id,
            body.rating,
            customer_id=body.customerId,
            customer_name=body.customerName,
            customer_email=body.customerEmail,
            comment=body.comment,
        )
    )
    return _ok(result.to_dict())


@app.post("/api/customers")
async def add_customer(
    body: CustomerRequest,
    user: User = Depends(get_automation_user),
    service: AutomationService = Depends(get_service),
):
    result = await run_in_threadpool(service.add_customer, user.id, body.name, body.email, body.phone)
    return _ok(result.to_dict())
