"""
Data Models Package

Exports the SQLAlchemy ORM models backing the application log, the threat
level slot and admin broadcasts.
"""
from bordersafety.models.app_log import AppLog
from bordersafety.models.setting import Setting
from bordersafety.models.broadcast import Broadcast

__all__ = ["AppLog", "Setting", "Broadcast"]
