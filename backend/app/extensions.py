# Overview: Flask extension instances for database and migrations.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Shared handle; components receive db.session explicitly (see app/engine.py).
db = SQLAlchemy()
migrate = Migrate()
