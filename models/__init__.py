"""Core data models for subjects, complaints, their audit trail, likes, and dashboard aggregates."""
import uuid
from datetime import datetime

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from extensions import db


def generate_uuid() -> str:
	return str(uuid.uuid4())


ROLE_MEMBER = "Member"
ROLE_ADMIN = "Admin"

ROLE_NAMES: tuple[str, ...] = (
	ROLE_MEMBER,
	ROLE_ADMIN,
)

STATUS_PENDING = "Pending"
STATUS_IN_PROGRESS = "In Progress"
STATUS_RESOLVED = "Resolved"
STATUS_REJECTED = "Rejected"

COMPLAINT_STATUSES: tuple[str, ...] = (
	STATUS_PENDING,
	STATUS_IN_PROGRESS,
	STATUS_RESOLVED,
	STATUS_REJECTED,
)

COMPLAINT_CATEGORIES: tuple[str, ...] = (
	"Roads & Infrastructure",
	"Water Supply",
	"Electricity",
	"Sanitation",
	"Public Transport",
	"Healthcare",
	"Education",
	"Environment",
	"Safety & Security",
	"Other",
)

COMPLAINT_PRIORITIES: tuple[str, ...] = (
	"Low",
	"Medium",
	"High",
	"Critical",
)

DEFAULT_PRIORITY = "Medium"

# Dashboard counter column per complaint status.
STATUS_COUNTER_COLUMNS: dict[str, str] = {
	STATUS_PENDING: "pending",
	STATUS_IN_PROGRESS: "in_progress",
	STATUS_RESOLVED: "resolved",
	STATUS_REJECTED: "rejected",
}


def _quoted(values: tuple[str, ...]) -> str:
	return ",".join("'" + value.replace("'", "''") + "'" for value in values)


def _iso(value: datetime | None) -> str | None:
	return value.isoformat() if value else None


class Role(db.Model):
	__tablename__ = "roles"

	id = db.Column(db.Integer, primary_key=True)
	name = db.Column(db.String(50), unique=True, nullable=False, index=True)
	description = db.Column(db.String(255), nullable=True)

	users = db.relationship("User", back_populates="role", lazy="dynamic")

	@staticmethod
	def get_or_create(name: str, description: str = ""):
		role = Role.query.filter_by(name=name).first()
		if role:
			return role
		role = Role(name=name, description=description)
		db.session.add(role)
		db.session.commit()
		return role


class User(UserMixin, db.Model):
	__tablename__ = "users"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	full_name = db.Column(db.String(150), nullable=False)
	email = db.Column(db.String(255), unique=True, nullable=False, index=True)
	password_hash = db.Column(db.String(255), nullable=False)
	role_id = db.Column(db.Integer, db.ForeignKey("roles.id"), nullable=False)
	location = db.Column(db.String(200), nullable=True)
	is_active = db.Column(db.Boolean, default=True, nullable=False)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
	last_login_at = db.Column(db.DateTime, nullable=True)

	role = db.relationship("Role", back_populates="users")
	audit_logs = db.relationship("AuditLog", back_populates="user", lazy="dynamic")
	complaints = db.relationship(
		"Complaint",
		back_populates="user",
		lazy="dynamic",
		foreign_keys="Complaint.user_id",
	)

	def set_password(self, password: str) -> None:
		self.password_hash = generate_password_hash(password, method="pbkdf2:sha256", salt_length=16)

	def check_password(self, password: str) -> bool:
		return check_password_hash(self.password_hash, password)

	@property
	def role_name(self) -> str:
		return self.role.name if self.role else ""

	@property
	def is_admin(self) -> bool:
		return self.role_name.lower() == ROLE_ADMIN.lower()

	@property
	def active(self) -> bool:  # Flask-Login compatibility alias
		return self.is_active

	def to_payload(self) -> dict:
		return {
			"id": self.id,
			"name": self.full_name,
			"email": self.email,
			"role": self.role_name,
			"location": self.location,
			"createdAt": _iso(self.created_at),
		}


class AuditLog(db.Model):
	__tablename__ = "audit_logs"

	id = db.Column(db.Integer, primary_key=True)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
	action_type = db.Column(db.String(50), nullable=False)
	ip_address = db.Column(db.String(64), nullable=True)
	user_agent = db.Column(db.String(255), nullable=True)
	context_entity = db.Column(db.String(120), nullable=True)
	timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

	user = db.relationship("User", back_populates="audit_logs")


class Complaint(db.Model):
	__tablename__ = "complaints"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
	title = db.Column(db.String(100), nullable=False)
	description = db.Column(db.String(1000), nullable=False)
	category = db.Column(db.String(50), nullable=False, index=True)
	priority = db.Column(db.String(20), nullable=False, default=DEFAULT_PRIORITY, index=True)
	location = db.Column(db.String(200), nullable=False)
	status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING, index=True)
	admin_note = db.Column(db.String(500), nullable=True)
	assigned_to = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True, index=True)
	version = db.Column(db.Integer, nullable=False)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
	updated_at = db.Column(
		db.DateTime,
		default=datetime.utcnow,
		onupdate=datetime.utcnow,
		nullable=False,
		index=True,
	)

	__table_args__ = (
		db.CheckConstraint(
			f"category IN ({_quoted(COMPLAINT_CATEGORIES)})",
			name="ck_complaint_category_valid",
		),
		db.CheckConstraint(
			f"priority IN ({_quoted(COMPLAINT_PRIORITIES)})",
			name="ck_complaint_priority_valid",
		),
		db.CheckConstraint(
			f"status IN ({_quoted(COMPLAINT_STATUSES)})",
			name="ck_complaint_status_valid",
		),
		db.Index("ix_complaints_user_status", "user_id", "status"),
	)

	# Every UPDATE/DELETE is guarded by "WHERE version = <loaded version>".
	__mapper_args__ = {"version_id_col": version}

	user = db.relationship("User", back_populates="complaints", foreign_keys=[user_id])
	assignee = db.relationship("User", foreign_keys=[assigned_to])
	status_history = db.relationship(
		"ComplaintStatusHistory",
		back_populates="complaint",
		order_by="[ComplaintStatusHistory.changed_at, ComplaintStatusHistory.id]",
		cascade="all, delete-orphan",
	)
	likes = db.relationship(
		"ComplaintLike",
		back_populates="complaint",
		order_by="ComplaintLike.created_at",
		cascade="all, delete-orphan",
	)

	@property
	def liked_by(self) -> list[str]:
		return [like.user_id for like in self.likes]

	def to_payload(self, viewer_id: str | None = None, include_history: bool = True) -> dict:
		liked_by = self.liked_by
		payload = {
			"id": self.id,
			"owner": self.user_id,
			"ownerName": self.user.full_name if self.user else None,
			"title": self.title,
			"description": self.description,
			"category": self.category,
			"priority": self.priority,
			"location": self.location,
			"status": self.status,
			"adminNote": self.admin_note,
			"assignee": self.assigned_to,
			"likes": liked_by,
			"likesCount": len(liked_by),
			"version": self.version,
			"createdAt": _iso(self.created_at),
			"updatedAt": _iso(self.updated_at),
		}
		if viewer_id is not None:
			payload["likedByMe"] = viewer_id in liked_by
		if include_history:
			payload["statusHistory"] = [entry.to_payload() for entry in self.status_history]
		return payload


class ComplaintStatusHistory(db.Model):
	__tablename__ = "complaint_status_history"

	id = db.Column(db.Integer, primary_key=True)
	complaint_id = db.Column(db.String(36), db.ForeignKey("complaints.id"), nullable=False, index=True)
	previous_status = db.Column(db.String(20), nullable=True)
	status = db.Column(db.String(20), nullable=False, index=True)
	note = db.Column(db.String(500), nullable=True)
	changed_by = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
	changed_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

	__table_args__ = (
		db.CheckConstraint(
			f"status IN ({_quoted(COMPLAINT_STATUSES)})",
			name="ck_complaint_status_history_valid",
		),
	)

	complaint = db.relationship("Complaint", back_populates="status_history")
	actor = db.relationship("User")

	def to_payload(self) -> dict:
		return {
			"id": self.id,
			"status": self.status,
			"previousStatus": self.previous_status,
			"changedBy": self.changed_by,
			"timestamp": _iso(self.changed_at),
			"note": self.note,
		}


class ComplaintLike(db.Model):
	__tablename__ = "complaint_likes"

	id = db.Column(db.Integer, primary_key=True)
	complaint_id = db.Column(db.String(36), db.ForeignKey("complaints.id"), nullable=False, index=True)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

	__table_args__ = (
		db.UniqueConstraint("complaint_id", "user_id", name="uq_complaint_like_member"),
	)

	complaint = db.relationship("Complaint", back_populates="likes")
	user = db.relationship("User")


class Dashboard(db.Model):
	"""Denormalized per-owner complaint counters; a cache over live complaints."""

	__tablename__ = "dashboards"

	id = db.Column(db.Integer, primary_key=True)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, unique=True, index=True)
	total = db.Column(db.Integer, nullable=False, default=0)
	pending = db.Column(db.Integer, nullable=False, default=0)
	in_progress = db.Column(db.Integer, nullable=False, default=0)
	resolved = db.Column(db.Integer, nullable=False, default=0)
	rejected = db.Column(db.Integer, nullable=False, default=0)
	reconciled_at = db.Column(db.DateTime, nullable=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
	updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	__table_args__ = (
		db.CheckConstraint(
			"total >= 0 AND pending >= 0 AND in_progress >= 0 AND resolved >= 0 AND rejected >= 0",
			name="ck_dashboard_counters_non_negative",
		),
	)

	user = db.relationship("User")

	def counters(self) -> dict[str, int]:
		return {
			"total": self.total or 0,
			"pending": self.pending or 0,
			"in_progress": self.in_progress or 0,
			"resolved": self.resolved or 0,
			"rejected": self.rejected or 0,
		}

	@property
	def is_consistent(self) -> bool:
		counts = self.counters()
		buckets = counts["pending"] + counts["in_progress"] + counts["resolved"] + counts["rejected"]
		return counts["total"] == buckets and all(value >= 0 for value in counts.values())

	def to_payload(self) -> dict:
		counts = self.counters()
		return {
			"owner": self.user_id,
			"total": counts["total"],
			"pending": counts["pending"],
			"inProgress": counts["in_progress"],
			"resolved": counts["resolved"],
			"rejected": counts["rejected"],
			"reconciledAt": _iso(self.reconciled_at),
			"updatedAt": _iso(self.updated_at),
		}
