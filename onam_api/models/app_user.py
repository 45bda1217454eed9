"""AppUser model - students and organisers authenticating with email/password."""
import enum

from sqlalchemy import Column, BigInteger, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func
from werkzeug.security import generate_password_hash, check_password_hash
from onam_api.database import Base


class UserRole(str, enum.Enum):
    USER = 'user'
    ADMIN = 'admin'


class AppUser(Base):
    """AppUser model - credential storage for bearer-token authentication."""

    __tablename__ = 'app_user'

    id = Column(BigInteger().with_variant(Integer, 'sqlite'), primary_key=True, autoincrement=True)
    email = Column(String(100), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    student_id = Column(String(50), nullable=False, unique=True)
    name = Column(String(100), nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.USER.value)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def set_password(self, password):
        """Set password hash."""
        self.password_hash = generate_password_hash(password, method='scrypt')

    def check_password(self, password):
        """Check password against hash."""
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    @property
    def is_admin(self):
        return self.role == UserRole.ADMIN.value

    def to_dict(self, include_status=False):
        data = {
            'id': self.id,
            'email': self.email,
            'studentId': self.student_id,
            'name': self.name,
            'role': self.role,
        }
        if include_status:
            data['isActive'] = self.is_active
            data['createdAt'] = self.created_at.isoformat() if self.created_at else None
        return data

    def __repr__(self):
        return f"<AppUser(id={self.id}, email='{self.email}', role='{self.role}')>"
