"""
Worktrack
SQLAlchemy extension instance shared by all models.

Usage:
    from worktrack.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
