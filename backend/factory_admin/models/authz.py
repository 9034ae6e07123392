from __future__ import annotations
import re
from datetime import datetime
from sqlalchemy.orm import declarative_base, relationship, Mapped, mapped_column, validates
from sqlalchemy import String, Integer, Boolean, ForeignKey, DateTime, Table, Column, func
from typing import Optional, List
from werkzeug.security import generate_password_hash, check_password_hash

from factory_admin.constants.permissions import CATEGORIES, ACTIONS, permission_name
from factory_admin.errors import ValidationError
from factory_admin.utils import clock

Base = declarative_base()

HEX_COLOR = re.compile(r'^#[0-9A-Fa-f]{6}$')
DEFAULT_ROLE_COLOR = '#3B82F6'


def normalize_role_name(raw: Optional[str]) -> str:
    """Trim, lowercase and hyphenate whitespace runs: 'Shift Lead' -> 'shift-lead'."""
    name = re.sub(r'\s+', '-', (raw or '').strip().lower())
    if not name:
        raise ValidationError('Role name is required')
    if len(name) > 50:
        raise ValidationError('Role name cannot exceed 50 characters')
    return name


def _non_negative(field: str, value) -> int:
    try:
        value = int(value if value is not None else 0)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be an integer')
    if value < 0:
        raise ValidationError(f'{field} cannot be negative')
    return value


# --- Core Models ---
role_permissions = Table(
    'role_permissions',
    Base.metadata,
    Column('role_id', ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True),
    Column('permission_id', ForeignKey('permissions.id', ondelete='CASCADE'), primary_key=True),
)


class Permission(Base):
    __tablename__ = 'permissions'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # derived from action + resource, see _derive_name
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500))
    category: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    resource: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    is_system_permission: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    updated_by: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    roles = relationship('Role', secondary=role_permissions, back_populates='permissions')

    @validates('category')
    def _check_category(self, key, value):
        value = (value or '').strip()
        if value not in CATEGORIES:
            raise ValidationError('Invalid permission category')
        return value

    @validates('action', 'resource')
    def _derive_name(self, key, value):
        value = (value or '').strip().lower()
        if key == 'action' and value not in ACTIONS:
            raise ValidationError('Invalid permission action')
        if key == 'resource':
            if not value:
                raise ValidationError('Permission resource is required')
            if len(value) > 50:
                raise ValidationError('Resource name cannot exceed 50 characters')
        action = value if key == 'action' else self.action
        resource = value if key == 'resource' else self.resource
        if action and resource:
            self.name = permission_name(action, resource)
        return value

    @validates('priority')
    def _check_priority(self, key, value):
        return _non_negative('Priority', value)

    def __repr__(self):
        return f'<Permission {self.name}>'


class Role(Base):
    __tablename__ = 'roles'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500))
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0, index=True)
    color: Mapped[str] = mapped_column(String(7), nullable=False, default=DEFAULT_ROLE_COLOR)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    is_system_role: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    updated_by: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    permissions: Mapped[List[Permission]] = relationship(
        'Permission', secondary=role_permissions, back_populates='roles', order_by='Permission.id'
    )

    @validates('name')
    def _normalize_name(self, key, value):
        return normalize_role_name(value)

    @validates('color')
    def _check_color(self, key, value):
        value = value or DEFAULT_ROLE_COLOR
        if not HEX_COLOR.match(value):
            raise ValidationError('Color must be a valid hex color')
        return value

    @validates('priority')
    def _check_priority(self, key, value):
        return _non_negative('Priority', value)

    def __repr__(self):
        return f'<Role {self.name}>'


class User(Base):
    __tablename__ = 'users'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    first_name: Mapped[str] = mapped_column(String(64), nullable=False)
    last_name: Mapped[str] = mapped_column(String(64), nullable=False)
    email: Mapped[str] = mapped_column(String(128), unique=True, index=True, nullable=False)
    employee_id: Mapped[Optional[str]] = mapped_column(String(32), unique=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32))
    department: Mapped[Optional[str]] = mapped_column(String(64))
    position: Mapped[Optional[str]] = mapped_column(String(64))
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role_id: Mapped[Optional[int]] = mapped_column(ForeignKey('roles.id'), index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    login_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lock_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    updated_by: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    role: Mapped[Optional[Role]] = relationship('Role')

    @validates('email')
    def _normalize_email(self, key, value):
        value = (value or '').strip()
        if not value or '@' not in value:
            raise ValidationError('A valid email is required')
        return value

    @validates('employee_id')
    def _blank_employee_id(self, key, value):
        # empty strings would collide on the unique index
        return (value or '').strip() or None

    @property
    def full_name(self) -> str:
        return f'{self.first_name} {self.last_name}'.strip()

    def set_password(self, raw: str):
        self.password_hash = generate_password_hash(raw)

    def verify_password(self, raw: str) -> bool:
        if not self.password_hash or raw is None:
            return False
        return check_password_hash(self.password_hash, raw)

    def is_locked(self, now: Optional[datetime] = None) -> bool:
        until = clock.as_utc(self.lock_until)
        return until is not None and (now or clock.utcnow()) < until

    def __repr__(self):
        return f'<User {self.email}>'
