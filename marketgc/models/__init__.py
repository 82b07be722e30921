"""
Marketplace Garbage Collector
SQLAlchemy extension handle shared by every model module.

Usage:
    from marketgc.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
