from sqlalchemy import Column, String, Enum
from app.models.base import BaseModel
from app.core.enums import UserRole


class User(BaseModel):
    __tablename__ = "users"
    username = Column(String(64), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(Enum(UserRole), nullable=False, default=UserRole.CUSTOMER)
    name = Column(String(120), nullable=True)
    email = Column(String(120), nullable=True)
    phone = Column(String(40), nullable=True)
    company_name = Column(String(160), nullable=True)
    # accounting-side contact id, created once and reused
    external_customer_id = Column(String(64), nullable=True)
