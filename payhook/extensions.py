"""
Deferred extension instances.

Created here, bound to the app in create_app() via init_app().
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
