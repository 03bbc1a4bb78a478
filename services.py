import os
import uuid
import time
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from chart_config import ChartConfigBuilder, ChartKind, ChartOptions
from chart_data import ChartDataPreparer
from config import Settings
from excel_parser import TabularParser
from models import (
    Chart,
    ExcelData,
    Project,
    ProjectMember,
    ProjectRole,
    ProjectType,
    Upload,
    UploadStatus,
    User,
    utcnow,
)
from repository import Repository
from schemas import ChartRequest, CreateProjectRequest, RegisterRequest, UpdateProjectRequest
from security import TokenSigner, hash_password, verify_password
from utils.errors import (
    AppError,
    AuthenticationError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ParseError,
    ValidationError,
)
from utils.log_context import LogContext
from utils.result import Result

logger = logging.getLogger(__name__)


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def serialize_user(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "created_at": _iso(user.created_at),
    }


def serialize_project(project: Project) -> Dict[str, Any]:
    return {
        "id": project.id,
        "name": project.name,
        "description": project.description,
        "type": project.type,
        "creator_id": project.creator_id,
        "created_at": _iso(project.created_at),
    }


def serialize_upload(upload: Upload) -> Dict[str, Any]:
    return {
        "id": upload.id,
        "file_name": upload.file_name,
        "original_name": upload.original_name,
        "file_size": upload.file_size,
        "status": upload.status,
        "project_id": upload.project_id,
        "user_id": upload.user_id,
        "uploaded_at": _iso(upload.uploaded_at),
        "processed_at": _iso(upload.processed_at),
    }


def serialize_excel_data(data: Optional[ExcelData], include_rows: bool = True) -> Optional[Dict[str, Any]]:
    if data is None:
        return None
    payload = {"headers": data.headers, "metadata": data.table_metadata}
    if include_rows:
        payload["rows"] = data.rows
    return payload


def serialize_chart(chart: Chart) -> Dict[str, Any]:
    return {
        "id": chart.id,
        "upload_id": chart.upload_id,
        "name": chart.name,
        "type": chart.type,
        "config": chart.config,
        "data": chart.data,
        "created_at": _iso(chart.created_at),
        "updated_at": _iso(chart.updated_at),
    }


class AuthService:
    """Registration, login and profile lookup"""

    def __init__(self, session: Session, signer: TokenSigner):
        self.session = session
        self.signer = signer
        self.users = Repository(session, User)

    def register(self, request: RegisterRequest) -> Result[Dict[str, Any]]:
        try:
            if self.users.exists(email=request.email):
                raise ConflictError("User with this email already exists")
            user = self.users.add(
                User(
                    email=request.email,
                    password_hash=hash_password(request.password),
                    first_name=request.first_name,
                    last_name=request.last_name,
                )
            )
            self.session.commit()
        except AppError as e:
            self.session.rollback()
            return Result.from_error(e)

        logger.info("User registered", extra={"user_id": user.id})
        token = self.signer.issue_access_token(user.id, user.email)
        return Result.created(
            {"user": serialize_user(user), "token": token},
            message="User registered successfully",
        )

    def login(self, email: str, password: str) -> Result[Dict[str, Any]]:
        user = self.users.find_one(email=email)
        if user is None or not verify_password(password, user.password_hash):
            logger.warning("Failed login attempt", extra={"email": email})
            return Result.from_error(AuthenticationError("Invalid email or password"))

        token = self.signer.issue_access_token(user.id, user.email)
        return Result.ok({"user": serialize_user(user), "token": token}, message="Login successful")

    def profile(self, user_id: str) -> Result[Dict[str, Any]]:
        user = self.users.get(user_id)
        if user is None:
            return Result.from_error(NotFoundError("User not found"))
        return Result.ok({"user": serialize_user(user)})


class ProjectService:
    """Project CRUD and membership checks"""

    def __init__(self, session: Session):
        self.session = session
        self.projects = Repository(session, Project)
        self.members = Repository(session, ProjectMember)

    def require_member(self, project_id: str, user_id: str) -> ProjectMember:
        """
        Raises:
            ForbiddenError: If the user is not a member of the project
        """
        membership = self.members.find_one(user_id=user_id, project_id=project_id)
        if membership is None:
            raise ForbiddenError("Access denied to this project")
        return membership

    def require_admin(self, project_id: str, user_id: str) -> ProjectMember:
        membership = self.require_member(project_id, user_id)
        if membership.role != ProjectRole.ADMIN:
            raise ForbiddenError("Admin access required for this action")
        return membership

    def create(self, request: CreateProjectRequest, user_id: str) -> Result[Dict[str, Any]]:
        project = self.projects.add(
            Project(
                name=request.name,
                description=request.description,
                type=request.type,
                creator_id=user_id,
            )
        )
        role = ProjectRole.ADMIN if request.type == ProjectType.ORGANIZATION else ProjectRole.MEMBER
        self.members.add(ProjectMember(user_id=user_id, project_id=project.id, role=role))
        self.session.commit()

        logger.info("Project created", extra={"project_id": project.id, "creator_role": role})
        return Result.created({"project": serialize_project(project)}, message="Project created successfully")

    def list_for_user(self, user_id: str) -> Result[Dict[str, Any]]:
        memberships = self.members.list(order_by=ProjectMember.joined_at.desc(), user_id=user_id)
        projects = []
        for membership in memberships:
            project = membership.project
            projects.append({
                **serialize_project(project),
                "role": membership.role,
                "joined_at": _iso(membership.joined_at),
                "member_count": self._count(ProjectMember, project.id),
                "upload_count": self._count(Upload, project.id),
            })
        return Result.ok({"projects": projects})

    def _count(self, model, project_id: str) -> int:
        return self.session.scalar(
            select(func.count()).select_from(model).where(model.project_id == project_id)
        )

    def get(self, project_id: str, user_id: str) -> Result[Dict[str, Any]]:
        try:
            project = self.projects.get(project_id)
            if project is None:
                raise NotFoundError("Project not found")
            self.require_member(project_id, user_id)
        except AppError as e:
            return Result.from_error(e)

        members = [
            {"role": member.role, "joined_at": _iso(member.joined_at), "user": serialize_user(member.user)}
            for member in project.members
        ]
        return Result.ok({
            "project": {
                **serialize_project(project),
                "creator": serialize_user(project.creator),
                "members": members,
                "upload_count": self._count(Upload, project.id),
            }
        })

    def _owned_project(self, project_id: str, user_id: str, action: str) -> Project:
        project = self.projects.get(project_id)
        if project is None:
            raise NotFoundError("Project not found")
        if project.creator_id != user_id:
            raise ForbiddenError(
                f"You do not have permission to {action} this project. "
                f"Only the project creator can {action} projects."
            )
        return project

    def update(self, project_id: str, request: UpdateProjectRequest, user_id: str) -> Result[Dict[str, Any]]:
        try:
            project = self._owned_project(project_id, user_id, "update")
        except AppError as e:
            return Result.from_error(e)

        self.projects.update(project, name=request.name, description=request.description)
        self.session.commit()
        return Result.ok({"project": serialize_project(project)}, message="Project updated successfully")

    def delete(self, project_id: str, user_id: str) -> Result[None]:
        try:
            project = self._owned_project(project_id, user_id, "delete")
        except AppError as e:
            return Result.from_error(e)

        file_paths = [upload.file_path for upload in project.uploads]
        self.projects.delete(project)
        self.session.commit()
        for path in file_paths:
            _remove_file(path)

        logger.info("Project deleted", extra={"project_id": project_id, "removed_files": len(file_paths)})
        return Result.ok(None, message="Project deleted successfully")


def _remove_file(path: Optional[str]) -> None:
    if path and os.path.exists(path):
        try:
            os.remove(path)
        except OSError as e:
            logger.error("Failed to remove file", extra={"file_path": path, "error": str(e)})


class UploadService:
    """
    Stores uploaded workbooks and their parsed tables.

    An upload is recorded as PROCESSING, parsed with TabularParser, then
    marked COMPLETED with its NormalizedTable stored as ExcelData. A parse
    failure marks it FAILED and removes the written file; it is not retried.
    """

    def __init__(self, session: Session, settings: Settings):
        self.session = session
        self.settings = settings
        self.uploads = Repository(session, Upload)
        self.excel_data = Repository(session, ExcelData)
        self.project_service = ProjectService(session)

    def _validate_file(self, original_name: str, content: bytes) -> None:
        extension = os.path.splitext(original_name or "")[1].lower()
        if extension not in self.settings.allowed_extensions:
            raise ValidationError("Only Excel files (.xlsx, .xls) are allowed")
        if not content:
            raise ValidationError("No file uploaded")
        if len(content) > self.settings.max_upload_bytes:
            raise ValidationError(
                f"File exceeds the maximum size of {self.settings.max_upload_bytes // (1024 * 1024)}MB"
            )

    def _store_file(self, original_name: str, content: bytes) -> str:
        os.makedirs(self.settings.upload_dir, exist_ok=True)
        safe_name = os.path.basename(original_name)
        file_name = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}-{safe_name}"
        path = os.path.join(self.settings.upload_dir, file_name)
        with open(path, "wb") as handle:
            handle.write(content)
        return path

    def upload(self, project_id: str, user_id: str, original_name: str, content: bytes) -> Result[Dict[str, Any]]:
        """
        Save, parse and record an uploaded workbook.

        Args:
            project_id: Project receiving the upload
            user_id: Uploading user, who must be a project member
            original_name: File name as sent by the client
            content: Raw workbook bytes

        Returns:
            Result with the upload record and the parsed table (201 Created)
        """
        log_context = {"project_id": project_id, "user_id": user_id, "original_name": original_name}
        try:
            self.project_service.require_member(project_id, user_id)
            self._validate_file(original_name, content)
        except AppError as e:
            logger.warning(f"Upload rejected: {e.message}", extra=log_context)
            return Result.from_error(e)

        path = self._store_file(original_name, content)
        upload = self.uploads.add(
            Upload(
                file_name=os.path.basename(path),
                original_name=original_name,
                file_path=path,
                file_size=len(content),
                user_id=user_id,
                project_id=project_id,
                status=UploadStatus.PROCESSING,
            )
        )
        self.session.commit()

        try:
            table = TabularParser.parse(content, original_name)
        except ParseError as e:
            logger.warning(f"Upload processing failed: {e.message}", extra={"upload_id": upload.id, **log_context})
            self.uploads.update(upload, status=UploadStatus.FAILED)
            self.session.commit()
            _remove_file(path)
            return Result.from_error(e)

        with LogContext("upload storage", upload_id=upload.id, **log_context):
            self.excel_data.add(
                ExcelData(
                    upload_id=upload.id,
                    headers=table.headers,
                    rows=table.rows,
                    table_metadata=table.metadata.model_dump(),
                )
            )
            self.uploads.update(upload, status=UploadStatus.COMPLETED, processed_at=utcnow())
            self.session.commit()

        return Result.created(
            {"upload": serialize_upload(upload), "data": table.model_dump()},
            message="File uploaded and processed successfully",
        )

    def list_for_project(self, project_id: str, user_id: str) -> Result[Dict[str, Any]]:
        try:
            self.project_service.require_member(project_id, user_id)
        except AppError as e:
            return Result.from_error(e)

        uploads = self.uploads.list(
            order_by=Upload.uploaded_at.desc(), project_id=project_id, user_id=user_id
        )
        return Result.ok(
            {
                "uploads": [
                    {
                        **serialize_upload(upload),
                        "data": serialize_excel_data(upload.data, include_rows=False),
                        "chart_count": len(upload.charts),
                    }
                    for upload in uploads
                ]
            },
            message="Uploads retrieved successfully",
        )

    def _accessible(self, upload_id: str, user_id: str) -> Upload:
        upload = self.uploads.get(upload_id)
        if upload is None:
            raise NotFoundError("Upload not found")
        self.project_service.require_member(upload.project_id, user_id)
        return upload

    def get(self, upload_id: str, user_id: str) -> Result[Dict[str, Any]]:
        try:
            upload = self._accessible(upload_id, user_id)
        except AppError as e:
            return Result.from_error(e)

        return Result.ok(
            {
                "upload": {
                    **serialize_upload(upload),
                    "data": serialize_excel_data(upload.data),
                    "charts": [serialize_chart(chart) for chart in upload.charts],
                    "user": {
                        "first_name": upload.user.first_name,
                        "last_name": upload.user.last_name,
                        "email": upload.user.email,
                    },
                }
            },
            message="Upload details retrieved successfully",
        )

    def delete(self, upload_id: str, user_id: str) -> Result[None]:
        upload = self.uploads.find_one(id=upload_id, user_id=user_id)
        if upload is None:
            return Result.from_error(NotFoundError("Upload not found"))

        path = upload.file_path
        self.uploads.delete(upload)
        self.session.commit()
        _remove_file(path)
        return Result.ok(None, message="Upload deleted successfully")


class ChartService:
    """Creates and maintains charts built from an upload's parsed table"""

    def __init__(self, session: Session):
        self.session = session
        self.uploads = Repository(session, Upload)
        self.charts = Repository(session, Chart)
        self.project_service = ProjectService(session)

    @staticmethod
    def render(rows: List[Dict[str, Any]], request: ChartRequest) -> Dict[str, Any]:
        """
        Run the chart pipeline for one request.

        Raises:
            ValidationError: Unknown chart kind, or no row holds both axis values

        Returns:
            Dict with the chart kind, stored config and stored data blob
        """
        kind = ChartKind.parse(request.chart_type)
        if not ChartDataPreparer.validate(rows, request.x_axis, request.y_axis):
            raise ValidationError("Invalid data for the selected axes")

        points = ChartDataPreparer.prepare(rows, request.x_axis, request.y_axis)
        options = ChartOptions(
            x_axis=request.x_axis, y_axis=request.y_axis, title=request.title, styling=request.styling
        )
        descriptor = ChartConfigBuilder.build(points, options, kind)
        return {
            "kind": kind,
            "name": request.title or f"{kind.value} Chart",
            "config": {
                "x_axis": request.x_axis,
                "y_axis": request.y_axis,
                "chart_type": kind.value,
                "title": request.title,
                "styling": request.styling,
            },
            "data": {
                "chart_data": [point.model_dump() for point in points],
                "chart_config": descriptor,
            },
        }

    def _upload_rows(self, upload: Optional[Upload], user_id: str) -> List[Dict[str, Any]]:
        if upload is None or upload.data is None:
            raise NotFoundError("Upload data not found")
        self.project_service.require_member(upload.project_id, user_id)
        return upload.data.rows

    def create(self, upload_id: str, request: ChartRequest, user_id: str) -> Result[Dict[str, Any]]:
        try:
            rows = self._upload_rows(self.uploads.get(upload_id), user_id)
            rendered = self.render(rows, request)
        except AppError as e:
            return Result.from_error(e)

        chart = self.charts.add(
            Chart(
                upload_id=upload_id,
                name=rendered["name"],
                type=rendered["kind"].value,
                config=rendered["config"],
                data=rendered["data"],
            )
        )
        self.session.commit()
        logger.info("Chart created", extra={"chart_id": chart.id, "upload_id": upload_id, "kind": chart.type})
        return Result.created({"chart": serialize_chart(chart)}, message="Chart created successfully")

    def list_for_upload(self, upload_id: str, user_id: str) -> Result[Dict[str, Any]]:
        upload = self.uploads.get(upload_id)
        try:
            if upload is None:
                raise NotFoundError("Upload not found")
            self.project_service.require_member(upload.project_id, user_id)
        except AppError as e:
            return Result.from_error(e)

        charts = self.charts.list(order_by=Chart.created_at.desc(), upload_id=upload_id)
        return Result.ok({"charts": [serialize_chart(chart) for chart in charts]})

    def _accessible(self, chart_id: str, user_id: str) -> Chart:
        chart = self.charts.get(chart_id)
        if chart is None:
            raise NotFoundError("Chart not found")
        self.project_service.require_member(chart.upload.project_id, user_id)
        return chart

    def get(self, chart_id: str, user_id: str) -> Result[Dict[str, Any]]:
        try:
            chart = self._accessible(chart_id, user_id)
        except AppError as e:
            return Result.from_error(e)
        return Result.ok({"chart": serialize_chart(chart)})

    def update(self, chart_id: str, request: ChartRequest, user_id: str) -> Result[Dict[str, Any]]:
        try:
            chart = self._accessible(chart_id, user_id)
            rows = self._upload_rows(chart.upload, user_id)
            rendered = self.render(rows, request)
        except AppError as e:
            return Result.from_error(e)

        self.charts.update(
            chart,
            name=rendered["name"],
            type=rendered["kind"].value,
            config=rendered["config"],
            data=rendered["data"],
        )
        self.session.commit()
        return Result.ok({"chart": serialize_chart(chart)}, message="Chart updated successfully")

    def delete(self, chart_id: str, user_id: str) -> Result[None]:
        try:
            chart = self._accessible(chart_id, user_id)
        except AppError as e:
            return Result.from_error(e)

        self.charts.delete(chart)
        self.session.commit()
        return Result.ok(None, message="Chart deleted successfully")
