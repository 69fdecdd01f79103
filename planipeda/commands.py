# planipeda/commands.py
"""
Ce module définit les commandes CLI personnalisées pour l'application Flask.

Pour utiliser les commandes définies ici, exécutez depuis le terminal :
`flask --app planipeda <nom_de_la_commande>`
Par exemple : `flask --app planipeda init-db`
"""

import click
from flask import Flask
from flask.cli import with_appcontext
from sqlalchemy.exc import SQLAlchemyError

from .extensions import db
from .models import Activite, Chapitre, Evaluation, Niveau, Objectif, Option, Sequence, SequenceActivite, SequenceEvaluation, Unite


@click.command("init-db")
@click.option("--reset", is_flag=True, help="Supprime les tables existantes avant de les recréer.")
@with_appcontext
def init_db_command(reset: bool) -> None:
    """
    Crée les tables de la base de données à partir des modèles.

    ATTENTION : avec --reset, les données existantes sont supprimées.
    """
    click.echo("--- Début de l'initialisation de la base de données ---")
    try:
        if reset:
            click.echo("Suppression des tables existantes...")
            db.drop_all()
        db.create_all()
    except SQLAlchemyError as e:
        click.secho(f"Erreur lors de la création des tables : {e}", fg="red")
        return
    click.secho("La base de données a été initialisée avec succès.", fg="green")


@click.command("seed-demo")
@with_appcontext
def seed_demo_command() -> None:
    """Insère une hiérarchie de démonstration et quelques entités maîtresses."""
    if db.session.query(Niveau).first():
        click.secho("La base contient déjà des niveaux ; aucune donnée insérée.", fg="yellow")
        return

    niveau = Niveau(nom_niveau="Seconde")
    option = Option(nom_option="Sciences", niveau=niveau)
    unite = Unite(titre_unite="Mécanique", option=option)
    chapitre = Chapitre(titre_chapitre="Le mouvement", unite=unite)
    chapitre.objectifs = [
        Objectif(description_objectif="Décrire un mouvement rectiligne."),
        Objectif(description_objectif="Calculer une vitesse moyenne."),
        Objectif(description_objectif="Représenter un vecteur vitesse."),
    ]

    try:
        db.session.add(niveau)
        db.session.flush()
        introduction = Sequence(titre_sequence="Introduction au mouvement", chapitre_id=chapitre.id)
        chronophotographie = Activite(titre_activite="Chronophotographie d'une bille", chapitre_id=chapitre.id)
        diagnostique = Evaluation(titre_evaluation="Test diagnostique", type_evaluation="diagnostique", chapitre_id=chapitre.id)
        introduction.evaluations = [SequenceEvaluation(evaluation=diagnostique, ordre=1)]
        introduction.activites = [SequenceActivite(activite=chronophotographie, ordre=2)]
        db.session.add_all(
            [
                introduction,
                Sequence(titre_sequence="Référentiels et trajectoires", chapitre_id=chapitre.id),
                chronophotographie,
                Activite(titre_activite="Exercices de calcul de vitesse", chapitre_id=chapitre.id),
                diagnostique,
                Evaluation(titre_evaluation="Contrôle de fin de chapitre", type_evaluation="sommative", chapitre_id=chapitre.id),
            ]
        )
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        click.secho(f"Erreur lors de l'insertion des données de démonstration : {e}", fg="red")
        return

    click.secho(f"Données de démonstration insérées (chapitre {chapitre.id}).", fg="green")


def init_app(app: Flask) -> None:
    """
    Enregistre les commandes CLI auprès de l'instance de l'application Flask.

    Args:
        app: L'instance de l'application Flask.
    """
    app.cli.add_command(init_db_command)
    app.cli.add_command(seed_demo_command)
