"""
Flask extension instances.

Created unbound here and attached in create_app(), so models and services can
import them before any application exists.
"""

from flask_cors import CORS
from flask_jwt_extended import JWTManager
from flask_sqlalchemy import SQLAlchemy

# ORM; bound with db.init_app(app)
db = SQLAlchemy()

# Access tokens for /api routes
jwt = JWTManager()

# Cross-origin access for the frontend
cors = CORS()
