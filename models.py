import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp; SQLite drops tzinfo so every stored time is naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ProjectType:
    SINGLE = "SINGLE"
    ORGANIZATION = "ORGANIZATION"


class ProjectRole:
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


class UploadStatus:
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class InvitationStatus:
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    memberships = relationship("ProjectMember", back_populates="user", cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Project(Base):
    __tablename__ = "projects"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(20), nullable=False, default=ProjectType.SINGLE)
    creator_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    creator = relationship("User")
    members = relationship("ProjectMember", back_populates="project", cascade="all, delete-orphan")
    uploads = relationship("Upload", back_populates="project", cascade="all, delete-orphan")
    invitations = relationship("Invitation", back_populates="project", cascade="all, delete-orphan")


class ProjectMember(Base):
    __tablename__ = "project_members"
    __table_args__ = (UniqueConstraint("user_id", "project_id", name="uq_member_user_project"),)

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    project_id = Column(String(36), ForeignKey("projects.id"), nullable=False)
    role = Column(String(20), nullable=False, default=ProjectRole.MEMBER)
    joined_at = Column(DateTime, default=utcnow)

    user = relationship("User", back_populates="memberships")
    project = relationship("Project", back_populates="members")


class Upload(Base):
    __tablename__ = "uploads"

    id = Column(String(36), primary_key=True, default=new_id)
    file_name = Column(String(255), nullable=False)
    original_name = Column(String(255), nullable=False)
    file_path = Column(String(1024), nullable=False)
    file_size = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=UploadStatus.PROCESSING)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    project_id = Column(String(36), ForeignKey("projects.id"), nullable=False)
    uploaded_at = Column(DateTime, default=utcnow)
    processed_at = Column(DateTime, nullable=True)

    user = relationship("User")
    project = relationship("Project", back_populates="uploads")
    data = relationship("ExcelData", back_populates="upload", uselist=False, cascade="all, delete-orphan")
    charts = relationship("Chart", back_populates="upload", cascade="all, delete-orphan")


class ExcelData(Base):
    """Stored NormalizedTable; written once per upload and never modified"""
    __tablename__ = "excel_data"

    id = Column(String(36), primary_key=True, default=new_id)
    upload_id = Column(String(36), ForeignKey("uploads.id"), unique=True, nullable=False)
    headers = Column(JSON, nullable=False)
    rows = Column(JSON, nullable=False)
    table_metadata = Column("metadata", JSON, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    upload = relationship("Upload", back_populates="data")


class Chart(Base):
    __tablename__ = "charts"

    id = Column(String(36), primary_key=True, default=new_id)
    upload_id = Column(String(36), ForeignKey("uploads.id"), nullable=False)
    name = Column(String(255), nullable=False)
    type = Column(String(20), nullable=False)   # ChartKind value
    config = Column(JSON, nullable=False)       # axes, title, styling
    data = Column(JSON, nullable=False)         # chart_data + chart_config descriptor
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    upload = relationship("Upload", back_populates="charts")


class Invitation(Base):
    __tablename__ = "invitations"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), nullable=False, index=True)
    project_id = Column(String(36), ForeignKey("projects.id"), nullable=False)
    invited_by_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    token = Column(Text, unique=True, nullable=False)
    role = Column(String(20), nullable=False, default=ProjectRole.MEMBER)
    status = Column(String(20), nullable=False, default=InvitationStatus.PENDING)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    project = relationship("Project", back_populates="invitations")
    invited_by = relationship("User")
