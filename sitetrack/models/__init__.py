"""
Site Tracker
Shared SQLAlchemy handle.

Every model module imports ``db`` from here so the app factory can bind a
single extension instance:

    from sitetrack.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
