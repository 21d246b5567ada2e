# Overview: Flask extension instances for database, migrations and media storage.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

from .services.media_service import MediaStore

db = SQLAlchemy()
migrate = Migrate()
media = MediaStore()
