# Database Models for the CollabPay platform
# Core user directory shared by every marketplace table

from sqlalchemy import Column, String, DateTime, Enum
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func
import uuid
import enum

Base = declarative_base()

def generate_uuid():
    return str(uuid.uuid4())


# Marketplace user types
class UserType(str, enum.Enum):
    BRAND = "brand"
    INFLUENCER = "influencer"
    ADMIN = "admin"


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255))
    name = Column(String(255))
    user_type = Column(Enum(UserType, values_callable=lambda x: [e.value for e in x], name="usertype"), default=UserType.INFLUENCER, nullable=False)

    # Paystack transfer recipient the influencer receives payouts on
    paystack_recipient_code = Column(String(100))

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
