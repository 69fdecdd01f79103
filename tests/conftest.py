# tests/conftest.py
"""
Ce fichier contient les fixtures pytest partagées pour la suite de tests.
Il utilise une base de données SQLite en mémoire pour des tests isolés.
"""

import logging
from sqlite3 import Connection as SQLite3Connection

import pytest
from sqlalchemy import event
from sqlalchemy.engine import Engine

from planipeda import create_app
from planipeda.extensions import db as _db
from planipeda.models import Activite, Chapitre, Evaluation, Niveau, Objectif, Option, Sequence, Unite

# Configuration du logging pour voir les messages de diagnostic
logging.basicConfig(level=logging.INFO)
log = logging.getLogger(__name__)


# S'applique à tous les moteurs SQLAlchemy créés après le chargement de ce module.
@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """Active les contraintes de clé étrangère pour les connexions SQLite."""
    if isinstance(dbapi_connection, SQLite3Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@pytest.fixture
def app():
    """Crée une nouvelle instance de l'application POUR CHAQUE TEST."""
    app = create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "test-secret-key",
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        }
    )

    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Fixture pour obtenir un client de test Flask."""
    return app.test_client()


@pytest.fixture
def db(app):
    """Fixture qui fournit l'objet de base de données."""
    return _db


@pytest.fixture
def sample_data(db):
    """
    Peuple la base avec deux branches de hiérarchie et des entités maîtresses.

    Seconde > Sciences > Mécanique > {Le mouvement (3 objectifs), Les forces}
    Première > Lettres > Poésie > Le sonnet (1 objectif)
    """
    seconde = Niveau(nom_niveau="Seconde")
    premiere = Niveau(nom_niveau="Première")
    sciences = Option(nom_option="Sciences", niveau=seconde)
    lettres = Option(nom_option="Lettres", niveau=premiere)
    mecanique = Unite(titre_unite="Mécanique", option=sciences)
    poesie = Unite(titre_unite="Poésie", option=lettres)
    mouvement = Chapitre(titre_chapitre="Le mouvement", unite=mecanique)
    forces = Chapitre(titre_chapitre="Les forces", unite=mecanique)
    sonnet = Chapitre(titre_chapitre="Le sonnet", unite=poesie)
    mouvement.objectifs = [
        Objectif(description_objectif="Décrire un mouvement."),
        Objectif(description_objectif="Calculer une vitesse."),
        Objectif(description_objectif="Tracer un vecteur."),
    ]
    sonnet.objectifs = [Objectif(description_objectif="Identifier les rimes.")]
    db.session.add_all([seconde, premiere])
    db.session.commit()

    seq_intro = Sequence(titre_sequence="Introduction", chapitre_id=mouvement.id)
    seq_ref = Sequence(titre_sequence="Référentiels", chapitre_id=mouvement.id)
    act_chrono = Activite(titre_activite="Chronophotographie", chapitre_id=mouvement.id)
    eval_test = Evaluation(titre_evaluation="Test final", type_evaluation="sommative", chapitre_id=mouvement.id)
    db.session.add_all([seq_intro, seq_ref, act_chrono, eval_test])
    db.session.commit()

    return {
        "seconde": seconde,
        "premiere": premiere,
        "sciences": sciences,
        "lettres": lettres,
        "mecanique": mecanique,
        "poesie": poesie,
        "mouvement": mouvement,
        "forces": forces,
        "sonnet": sonnet,
        "seq_intro": seq_intro,
        "seq_ref": seq_ref,
        "act_chrono": act_chrono,
        "eval_test": eval_test,
    }
