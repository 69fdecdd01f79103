# planipeda/extensions.py
"""
Ce module initialise les extensions Flask partagées pour éviter les importations circulaires.

Les modèles (models.py), le dépôt d'accès aux données (depot.py) et les
blueprints importent `db` depuis ce module. L'initialisation réelle avec
l'objet 'app' se fait dans la factory create_app.
"""

from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

# Instance de SQLAlchemy, liée à l'application dans create_app.
db = SQLAlchemy()

# Gestion des migrations Alembic.
migrate = Migrate()
