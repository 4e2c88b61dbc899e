"""
MAAP Check-ins
SQLAlchemy extension instance shared by every model module.

Usage:
    from maap.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
