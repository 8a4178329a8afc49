from sqlalchemy import Column, Integer, String

from .base import BaseModel


class AdminUser(BaseModel):
    __tablename__ = "admin_users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, nullable=False, unique=True, index=True)
    role = Column(String, nullable=False, default="operator")  # operator|admin
