import os
import logging
import traceback
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, File, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from config import Settings
from database import create_db_engine, create_session_factory, init_db, session_scope
from invitations import InvitationLifecycle
from models import utcnow
from notifier import InvitationNotifier, build_notifier
from schemas import (
    AcceptInvitationRequest,
    ChartRequest,
    CreateProjectRequest,
    InviteUserRequest,
    LoginRequest,
    RegisterRequest,
    UpdateProjectRequest,
)
from security import TokenSigner
from services import AuthService, ChartService, ProjectService, UploadService
from utils.errors import AppError, AuthenticationError, ValidationError
from utils.result import Result

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format=LOG_FORMAT
)
logger = logging.getLogger(__name__)


def configure_file_logging(log_dir: str) -> None:
    """
    Add a daily log file handler to the root logger, once per log file.

    Args:
        log_dir: Directory for app_YYYYMMDD.log files; created if missing
    """
    os.makedirs(log_dir, exist_ok=True)
    log_file_path = os.path.join(log_dir, f"app_{datetime.now().strftime('%Y%m%d')}.log")
    root = logging.getLogger()
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == os.path.abspath(log_file_path):
            return
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(file_handler)


def respond(result: Result) -> JSONResponse:
    """Render a service Result as the standard JSON envelope."""
    return JSONResponse(status_code=result.status_code.value, content=jsonable_encoder(result.to_dict()))


bearer_scheme = HTTPBearer(auto_error=False)


def get_session(request: Request):
    yield from session_scope(request.app.state.session_factory)


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Dict[str, Any]:
    """Resolve the bearer token into its ``{id, email}`` payload."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Access token required")
    return request.app.state.signer.verify_access_token(credentials.credentials)


def get_invitation_lifecycle(request: Request, session: Session = Depends(get_session)) -> InvitationLifecycle:
    state = request.app.state
    return InvitationLifecycle(session, state.signer, state.notifier, clock=state.clock)


router = APIRouter(prefix="/api")


@router.get("/health", tags=["System"])
async def health():
    return {"success": True, "message": "OK", "timestamp": datetime.now().isoformat()}


@router.post("/auth/register", tags=["Auth"])
def register(payload: RegisterRequest, request: Request, session: Session = Depends(get_session)):
    """Create an account and return it with an access token."""
    return respond(AuthService(session, request.app.state.signer).register(payload))


@router.post("/auth/login", tags=["Auth"])
def login(payload: LoginRequest, request: Request, session: Session = Depends(get_session)):
    return respond(AuthService(session, request.app.state.signer).login(payload.email, payload.password))


@router.get("/auth/me", tags=["Auth"])
def me(
    request: Request,
    user: Dict[str, Any] = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return respond(AuthService(session, request.app.state.signer).profile(user["id"]))


@router.post("/projects", tags=["Projects"])
def create_project(
    payload: CreateProjectRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return respond(ProjectService(session).create(payload, user["id"]))


@router.get("/projects", tags=["Projects"])
def list_projects(user: Dict[str, Any] = Depends(get_current_user), session: Session = Depends(get_session)):
    return respond(ProjectService(session).list_for_user(user["id"]))


@router.get("/projects/{project_id}", tags=["Projects"])
def get_project(
    project_id: str,
    user: Dict[str, Any] = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return respond(ProjectService(session).get(project_id, user["id"]))


@router.put("/projects/{project_id}", tags=["Projects"])
def update_project(
    project_id: str,
    payload: UpdateProjectRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return respond(ProjectService(session).update(project_id, payload, user["id"]))


@router.delete("/projects/{project_id}", tags=["Projects"])
def delete_project(
    project_id: str,
    user: Dict[str, Any] = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return respond(ProjectService(session).delete(project_id, user["id"]))


@router.post("/projects/{project_id}/invitations", tags=["Invitations"])
def invite_user(
    project_id: str,
    payload: InviteUserRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    session: Session = Depends(get_session),
    lifecycle: InvitationLifecycle = Depends(get_invitation_lifecycle),
):
    """Invite an e-mail address to the project; project admins only."""
    ProjectService(session).require_admin(project_id, user["id"])
    return respond(lifecycle.issue(payload.email, project_id, payload.role, user["id"]))


@router.get("/invitations/{token}", tags=["Invitations"])
def get_invitation(token: str, lifecycle: InvitationLifecycle = Depends(get_invitation_lifecycle)):
    """Preview an invitation before accepting it; no login required."""
    return respond(lifecycle.inspect(token))


@router.post("/invitations/accept", tags=["Invitations"])
def accept_invitation(
    payload: AcceptInvitationRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    lifecycle: InvitationLifecycle = Depends(get_invitation_lifecycle),
):
    return respond(lifecycle.accept(payload.token, user["id"]))


@router.post("/projects/{project_id}/uploads", tags=["Uploads"])
def upload_file(
    project_id: str,
    request: Request,
    file: UploadFile = File(...),
    user: Dict[str, Any] = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """
    Upload an Excel workbook and parse its first sheet.

    Returns the upload record together with the parsed headers, rows and
    metadata. Unreadable or empty workbooks mark the upload as FAILED.
    """
    content = file.file.read()
    service = UploadService(session, request.app.state.settings)
    return respond(service.upload(project_id, user["id"], file.filename or "", content))


@router.get("/projects/{project_id}/uploads", tags=["Uploads"])
def list_uploads(
    project_id: str,
    request: Request,
    user: Dict[str, Any] = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return respond(UploadService(session, request.app.state.settings).list_for_project(project_id, user["id"]))


@router.get("/uploads/{upload_id}", tags=["Uploads"])
def get_upload(
    upload_id: str,
    request: Request,
    user: Dict[str, Any] = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return respond(UploadService(session, request.app.state.settings).get(upload_id, user["id"]))


@router.delete("/uploads/{upload_id}", tags=["Uploads"])
def delete_upload(
    upload_id: str,
    request: Request,
    user: Dict[str, Any] = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return respond(UploadService(session, request.app.state.settings).delete(upload_id, user["id"]))


@router.post("/uploads/{upload_id}/charts", tags=["Charts"])
def create_chart(
    upload_id: str,
    payload: ChartRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Build a chart from the upload's parsed rows and store it."""
    return respond(ChartService(session).create(upload_id, payload, user["id"]))


@router.get("/uploads/{upload_id}/charts", tags=["Charts"])
def list_charts(
    upload_id: str,
    user: Dict[str, Any] = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return respond(ChartService(session).list_for_upload(upload_id, user["id"]))


@router.get("/charts/{chart_id}", tags=["Charts"])
def get_chart(
    chart_id: str,
    user: Dict[str, Any] = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return respond(ChartService(session).get(chart_id, user["id"]))


@router.put("/charts/{chart_id}", tags=["Charts"])
def update_chart(
    chart_id: str,
    payload: ChartRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return respond(ChartService(session).update(chart_id, payload, user["id"]))


@router.delete("/charts/{chart_id}", tags=["Charts"])
def delete_chart(
    chart_id: str,
    user: Dict[str, Any] = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return respond(ChartService(session).delete(chart_id, user["id"]))


async def handle_app_error(request: Request, exc: AppError):
    logger.warning(
        f"Request failed: {exc.message}",
        extra={"path": request.url.path, "error_type": type(exc).__name__}
    )
    return respond(Result.from_error(exc))


async def handle_validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else first.get("msg")
    else:
        message = "Invalid input data"
    return respond(Result.from_error(ValidationError(message)))


async def handle_unexpected_error(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.url.path}", extra={"error": str(exc)})
    body = Result.fail("Internal Server Error", status_code=500).to_dict()
    if request.app.state.settings.is_development:
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=500, content=body)


def create_app(
    settings: Optional[Settings] = None,
    notifier: Optional[InvitationNotifier] = None,
    clock=None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        settings: Explicit settings; read from the environment when None
        notifier: Invitation notifier; chosen from the settings when None
        clock: Replacement for the invitation clock, used by tests

    Returns:
        FastAPI: Configured application with its database initialised
    """
    settings = settings or Settings.from_env()
    configure_file_logging(settings.log_dir)

    engine = create_db_engine(settings.database_url)
    init_db(engine)

    application = FastAPI(
        title="Spreadsheet Analytics API",
        description="API for uploading Excel workbooks, building charts and sharing projects",
        version="2.0.0",
        docs_url="/docs",
        redoc_url="/redoc"
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.state.settings = settings
    application.state.engine = engine
    application.state.session_factory = create_session_factory(engine)
    application.state.signer = TokenSigner(settings)
    application.state.notifier = build_notifier(settings, notifier)
    application.state.clock = clock or utcnow

    application.include_router(router)
    application.add_exception_handler(AppError, handle_app_error)
    application.add_exception_handler(RequestValidationError, handle_validation_error)
    application.add_exception_handler(Exception, handle_unexpected_error)

    logger.info("Application created", extra={"environment": settings.environment})
    return application


app = create_app()


# Run the application if executed directly
if __name__ == "__main__":
    import uvicorn
    logger.info("Starting Spreadsheet Analytics API in development mode.")
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
