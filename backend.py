import sentry_sdk
import structlog
from fastapi import Depends, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from ai_functions import TextAnalyst
from analysis import AnalysisOrchestrator
from config import CORS_ORIGINS, DATABASE_URL, JSON_LOGS, LOG_LEVEL, SENTRY_DSN
from database import Base
from entitlement import AccessTierLookup, EntitlementGate
from errors import (
    ClarityError,
    DecisionLocked,
    Malformed,
    NotFound,
    PersistenceError,
    QuotaExceeded,
    RateLimited,
    Unavailable,
    ValidationError,
)
from instrumentor import set_hosted_phoenix_instrumentation
from logging_config import configure_logging
from models import (
    CompareRequest,
    CreateDecisionRequest,
    LockRequest,
    ReflectionInput,
    UpdateFieldsRequest,
)
from store import DecisionStore
from workflow import DecisionWorkflow

configure_logging(LOG_LEVEL, JSON_LOGS)
logger = structlog.get_logger(__name__)

tracing_initialized = False


def initiate_sentry():
    if not SENTRY_DSN:
        return
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        traces_sample_rate=1.0,
        profiles_sample_rate=1.0,
    )


def initiate_tracing():
    global tracing_initialized
    if not tracing_initialized:
        set_hosted_phoenix_instrumentation()
        initiate_sentry()
        tracing_initialized = True
        logger.info("tracing_initialized")


connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autoflush=False, bind=engine)

# Create tables if they don't exist
Base.metadata.create_all(bind=engine)

analyst = TextAnalyst()


def get_workflow():
    store = DecisionStore(SessionLocal)
    gate = EntitlementGate(AccessTierLookup(store))
    return DecisionWorkflow(store, gate, AnalysisOrchestrator(store, analyst))


def get_subject_id(x_subject_id: str = Header(...)):
    return x_subject_id


web_app = FastAPI(title="Clarity", dependencies=[Depends(initiate_tracing)])

web_app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH"],
    allow_headers=["*"],
)

# Most specific first
ERROR_STATUS = (
    (DecisionLocked, 409),
    (NotFound, 404),
    (ValidationError, 422),
    (PersistenceError, 503),
    (RateLimited, 429),
    (QuotaExceeded, 429),
    (Unavailable, 503),
    (Malformed, 502),
)


@web_app.exception_handler(ClarityError)
async def clarity_error_handler(request: Request, exc: ClarityError):
    status_code = next(
        (code for error_type, code in ERROR_STATUS if isinstance(exc, error_type)), 500
    )
    content = {"error": exc.code, "detail": exc.message}
    if isinstance(exc, ValidationError):
        content["missing"] = exc.missing
    logger.info(
        "request_failed", path=request.url.path, error=exc.code, status=status_code
    )
    return JSONResponse(content=content, status_code=status_code)


def decision_state(workflow, decision):
    return {
        "decision": decision.model_dump(mode="json"),
        "view": workflow.render(decision).value,
    }


@web_app.get("/")
def read_root():
    return {"status": "ok"}


@web_app.post("/api/decisions")
def create_decision(
    request: CreateDecisionRequest,
    subject_id: str = Depends(get_subject_id),
    workflow: DecisionWorkflow = Depends(get_workflow),
):
    decision = workflow.create(subject_id, request)
    return JSONResponse(content=decision_state(workflow, decision), status_code=201)


@web_app.get("/api/decisions")
def list_decisions(
    subject_id: str = Depends(get_subject_id),
    workflow: DecisionWorkflow = Depends(get_workflow),
):
    decisions = workflow.list_for_subject(subject_id)
    return {"decisions": [decision.model_dump(mode="json") for decision in decisions]}


@web_app.get("/api/decisions/{decision_id}")
def get_decision(
    decision_id: str,
    subject_id: str = Depends(get_subject_id),
    workflow: DecisionWorkflow = Depends(get_workflow),
):
    decision = workflow.load_or_init(subject_id, decision_id)
    return decision_state(workflow, decision)


@web_app.patch("/api/decisions/{decision_id}/fields")
def update_fields(
    decision_id: str,
    request: UpdateFieldsRequest,
    subject_id: str = Depends(get_subject_id),
    workflow: DecisionWorkflow = Depends(get_workflow),
):
    decision = workflow.update_fields(
        subject_id, decision_id, request.stage, request.fields
    )
    return decision_state(workflow, decision)


@web_app.post("/api/decisions/{decision_id}/advance")
def advance(
    decision_id: str,
    subject_id: str = Depends(get_subject_id),
    workflow: DecisionWorkflow = Depends(get_workflow),
):
    result = workflow.advance(subject_id, decision_id)
    content = decision_state(workflow, result.decision)
    if result.entitlement_required:
        content.update(outcome="entitlement_required", upgrade_path="/upgrade")
        return JSONResponse(content=content, status_code=402)
    content["outcome"] = "advanced"
    return content


@web_app.post("/api/decisions/{decision_id}/analyze/{stage}")
def analyze(
    decision_id: str,
    stage: int,
    subject_id: str = Depends(get_subject_id),
    workflow: DecisionWorkflow = Depends(get_workflow),
):
    result = workflow.analyze(subject_id, decision_id, stage)
    return result.model_dump(mode="json")


@web_app.post("/api/decisions/{decision_id}/lock")
def lock(
    decision_id: str,
    request: LockRequest,
    subject_id: str = Depends(get_subject_id),
    workflow: DecisionWorkflow = Depends(get_workflow),
):
    decision = workflow.lock(subject_id, decision_id, request)
    return decision_state(workflow, decision)


@web_app.get("/api/decisions/{decision_id}/score")
def score(
    decision_id: str,
    subject_id: str = Depends(get_subject_id),
    workflow: DecisionWorkflow = Depends(get_workflow),
):
    return workflow.score(subject_id, decision_id).model_dump(mode="json")


@web_app.post("/api/decisions/{decision_id}/reflections")
def add_reflection(
    decision_id: str,
    request: ReflectionInput,
    subject_id: str = Depends(get_subject_id),
    workflow: DecisionWorkflow = Depends(get_workflow),
):
    reflection = workflow.reflect(subject_id, decision_id, request)
    return JSONResponse(content=reflection.model_dump(mode="json"), status_code=201)


@web_app.get("/api/decisions/{decision_id}/reflections")
def list_reflections(
    decision_id: str,
    subject_id: str = Depends(get_subject_id),
    workflow: DecisionWorkflow = Depends(get_workflow),
):
    reflections = workflow.reflections(subject_id, decision_id)
    return {"reflections": [r.model_dump(mode="json") for r in reflections]}


@web_app.get("/api/profile/bias")
def get_bias_profile(
    subject_id: str = Depends(get_subject_id),
    workflow: DecisionWorkflow = Depends(get_workflow),
):
    profile = workflow.stored_bias_profile(subject_id)
    return {"profile": profile.model_dump(mode="json") if profile else None}


@web_app.post("/api/profile/bias")
def analyze_bias_profile(
    subject_id: str = Depends(get_subject_id),
    workflow: DecisionWorkflow = Depends(get_workflow),
):
    profile = workflow.bias_profile(subject_id)
    return {"profile": profile.model_dump(mode="json")}


@web_app.post("/api/comparisons")
def compare_decisions(
    request: CompareRequest,
    subject_id: str = Depends(get_subject_id),
    workflow: DecisionWorkflow = Depends(get_workflow),
):
    comparison = workflow.compare(subject_id, request.decision_ids, request.title)
    return JSONResponse(content=comparison.model_dump(mode="json"), status_code=201)


@web_app.get("/api/comparisons")
def list_comparisons(
    subject_id: str = Depends(get_subject_id),
    workflow: DecisionWorkflow = Depends(get_workflow),
):
    comparisons = workflow.comparisons(subject_id)
    return {"comparisons": [c.model_dump(mode="json") for c in comparisons]}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(web_app, host="0.0.0.0", port=8000)
