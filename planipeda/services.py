# planipeda/services.py
"""
Ce module contient la logique métier de l'application (couche de services).

Il découple les routes Flask (contrôleurs) du noyau d'édition : chaque
opération sur une fiche charge un EditeurPlanification depuis le dépôt,
applique la mutation demandée au sélecteur ou à la liste de progression, puis
enregistre le résultat. On y trouve aussi l'importation de chapitres et la
préparation des données d'exportation.
"""

import asyncio
import zipfile
from typing import Any, Callable, cast

import openpyxl
from flask import current_app
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.worksheet.worksheet import Worksheet
from sqlalchemy.exc import SQLAlchemyError

from .depot import DepotPlanification
from .exceptions import (
    BusinessRuleValidationError,
    EntityNotFoundError,
    ServiceException,
)
from .extensions import db
from .hierarchie import FetchFailure, HierarchySelector, Rang, Selection
from .models import Chapfiche, Chapitre, Unite
from .planification import EditeurPlanification, EditeurSequence
from .progression import ORDRE_BASE, ProgressionList, TypeElement

__all__ = [
    "BusinessRuleValidationError",
    "EntityNotFoundError",
    "ServiceException",
]

TYPES_ELEMENT = {t.value for t in TypeElement}


# --- Outils internes ---


def _nouvel_editeur() -> EditeurPlanification:
    base = current_app.config.get("ORDRE_BASE", ORDRE_BASE)
    return EditeurPlanification(DepotPlanification(), base=base)


def _charger_editeur(fiche_id: int) -> EditeurPlanification:
    editeur = _nouvel_editeur()
    asyncio.run(editeur.charger(fiche_id))
    return editeur


def _enregistrer(editeur: EditeurPlanification | EditeurSequence) -> None:
    resultat = editeur.sauvegarder()
    if not resultat.succes:
        raise BusinessRuleValidationError(resultat.message)


def _editer_fiche(fiche_id: int, operation: Callable[[EditeurPlanification], Any]) -> dict[str, Any]:
    """Charge une fiche, applique l'opération et enregistre. Retourne l'état de l'éditeur."""
    editeur = _charger_editeur(fiche_id)
    operation(editeur)
    _enregistrer(editeur)
    return editeur.etat()


def _editer_sequence(sequence_id: int, operation: Callable[[EditeurSequence], Any]) -> dict[str, Any]:
    """Charge le contenu d'une séquence, applique l'opération et enregistre."""
    editeur = EditeurSequence(DepotPlanification(), base=current_app.config.get("ORDRE_BASE", ORDRE_BASE))
    editeur.charger(sequence_id)
    operation(editeur)
    _enregistrer(editeur)
    return editeur.etat()


def _deplacer_d_un_cran(progression: ProgressionList, item_id: str, direction: str) -> None:
    if direction == "haut":
        progression.move_up(item_id)
    elif direction == "bas":
        progression.move_down(item_id)
    else:
        raise BusinessRuleValidationError(f"Direction '{direction}' invalide.")


# --- Services - Hiérarchie ---


def get_children_service(rang: str, parent_id: int | None) -> list[dict[str, Any]]:
    """Liste les nœuds d'un rang sous le parent donné."""
    if rang not in {r.value for r in Rang}:
        raise BusinessRuleValidationError(f"Rang '{rang}' inconnu.")
    try:
        return DepotPlanification().fetch_children(rang, parent_id)
    except FetchFailure as e:
        raise ServiceException(e.message)


def get_objectifs_service(chapitre_id: int) -> list[dict[str, Any]]:
    if not db.session.get(Chapitre, chapitre_id):
        raise EntityNotFoundError(f"Le chapitre {chapitre_id} n'a pas été trouvé.")
    try:
        return asyncio.run(DepotPlanification().fetch_objectifs(chapitre_id))
    except FetchFailure as e:
        raise ServiceException(e.message)


def resolve_selection_service(data: dict[str, Any]) -> dict[str, Any]:
    """
    Normalise une sélection hiérarchique reçue du client.

    La sélection est réappliquée à travers la cascade ; tout identifiant qui
    n'est pas un enfant valide de son parent est abandonné, ainsi que les rangs
    inférieurs. Retourne la sélection retenue et les listes de candidats.
    """
    selecteur = HierarchySelector(DepotPlanification())
    asyncio.run(selecteur.restore(Selection.from_dict(data)))
    return selecteur.etat()


# --- Services - Entités maîtresses ---


def list_maitres_service(type_element: str, chapitre_id: int | None = None) -> list[dict[str, Any]]:
    if type_element not in TYPES_ELEMENT:
        raise BusinessRuleValidationError(f"Type d'élément '{type_element}' inconnu.")
    return DepotPlanification().list_maitres(type_element, chapitre_id)


# --- Services - Fiches de planification ---


def list_fiches_service(chapitre_id: int | None = None) -> list[dict[str, Any]]:
    """Liste les fiches, les plus récentes d'abord, éventuellement pour un chapitre."""
    try:
        requete = db.session.query(Chapfiche)
        if chapitre_id is not None:
            requete = requete.filter_by(chapitre_id=chapitre_id)
        fiches = requete.order_by(Chapfiche.id.desc()).all()
        return [
            {
                "id": f.id,
                "nom_fiche": f.nom_fiche_planification,
                "statut": f.statut,
                "chapitre_id": f.chapitre_id,
                "titre_chapitre": f.chapitre.titre_chapitre,
                "nb_elements": len(f.sequences) + len(f.activites) + len(f.evaluations),
            }
            for f in fiches
        ]
    except SQLAlchemyError as e:
        raise ServiceException(f"Erreur ORM lors de la récupération des fiches : {e}")


def get_fiche_service(fiche_id: int) -> dict[str, Any]:
    return _charger_editeur(fiche_id).etat()


def create_fiche_service(selection_data: dict[str, Any], nom_fiche: str = "") -> dict[str, Any]:
    """Crée une fiche sur le chapitre sélectionné. Le chapitre doit être valide."""
    editeur = _nouvel_editeur()
    asyncio.run(editeur.nouvelle(Selection.from_dict(selection_data), nom_fiche.strip()))
    if editeur.selecteur.chapitre_id is None:
        raise BusinessRuleValidationError("Veuillez sélectionner un chapitre de référence valide.")
    _enregistrer(editeur)
    return editeur.etat()


def update_fiche_infos_service(fiche_id: int, nom_fiche: str | None = None, statut: str | None = None) -> dict[str, Any]:
    return _editer_fiche(fiche_id, lambda editeur: editeur.definir_infos(nom_fiche, statut))


def update_fiche_selection_service(fiche_id: int, selection_data: dict[str, Any]) -> dict[str, Any]:
    """
    Change le chapitre de référence ou les objectifs retenus d'une fiche.
    La progression est conservée.
    """
    editeur = _charger_editeur(fiche_id)
    asyncio.run(editeur.selecteur.restore(Selection.from_dict(selection_data)))
    if editeur.selecteur.chapitre_id is None:
        raise BusinessRuleValidationError("Veuillez sélectionner un chapitre de référence valide.")
    _enregistrer(editeur)
    return editeur.etat()


def delete_fiche_service(fiche_id: int) -> None:
    fiche = db.session.get(Chapfiche, fiche_id)
    if not fiche:
        raise EntityNotFoundError(f"La fiche {fiche_id} n'a pas été trouvée.")
    try:
        db.session.delete(fiche)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise ServiceException(f"Erreur de base de données lors de la suppression de la fiche : {e}")


# --- Services - Progression d'une fiche ---


def add_element_service(fiche_id: int, type_element: str, source_id: int, position: int | None = None) -> dict[str, Any]:
    if type_element not in TYPES_ELEMENT:
        raise BusinessRuleValidationError(f"Type d'élément '{type_element}' inconnu.")
    return _editer_fiche(fiche_id, lambda editeur: editeur.ajouter_element(type_element, source_id, position))


def remove_element_service(fiche_id: int, item_id: str) -> dict[str, Any]:
    return _editer_fiche(fiche_id, lambda editeur: editeur.progression.remove(item_id))


def move_element_service(fiche_id: int, item_id: str, direction: str) -> dict[str, Any]:
    """Monte ou descend un élément d'un cran ('haut' ou 'bas')."""
    if direction not in ("haut", "bas"):
        raise BusinessRuleValidationError(f"Direction '{direction}' invalide.")
    return _editer_fiche(fiche_id, lambda editeur: _deplacer_d_un_cran(editeur.progression, item_id, direction))


def deplacer_element_service(fiche_id: int, item_id: str, target_index: int) -> dict[str, Any]:
    """Déplace un élément vers la position résolue par un glisser-déposer."""
    return _editer_fiche(fiche_id, lambda editeur: editeur.progression.move(item_id, target_index))


def reorder_elements_service(fiche_id: int, item_ids: list[str]) -> dict[str, Any]:
    return _editer_fiche(fiche_id, lambda editeur: editeur.progression.reorder(item_ids))


# --- Services - Contenu d'une séquence ---


def get_sequence_contenu_service(sequence_id: int) -> dict[str, Any]:
    """Activités et évaluations d'une séquence, dans leur ordre."""
    editeur = EditeurSequence(DepotPlanification(), base=current_app.config.get("ORDRE_BASE", ORDRE_BASE))
    editeur.charger(sequence_id)
    return editeur.etat()


def add_sequence_element_service(sequence_id: int, type_element: str, source_id: int, position: int | None = None) -> dict[str, Any]:
    if type_element not in TYPES_ELEMENT:
        raise BusinessRuleValidationError(f"Type d'élément '{type_element}' inconnu.")
    return _editer_sequence(sequence_id, lambda editeur: editeur.ajouter_element(type_element, source_id, position))


def remove_sequence_element_service(sequence_id: int, item_id: str) -> dict[str, Any]:
    return _editer_sequence(sequence_id, lambda editeur: editeur.progression.remove(item_id))


def move_sequence_element_service(sequence_id: int, item_id: str, direction: str) -> dict[str, Any]:
    if direction not in ("haut", "bas"):
        raise BusinessRuleValidationError(f"Direction '{direction}' invalide.")
    return _editer_sequence(sequence_id, lambda editeur: _deplacer_d_un_cran(editeur.progression, item_id, direction))


def deplacer_sequence_element_service(sequence_id: int, item_id: str, target_index: int) -> dict[str, Any]:
    return _editer_sequence(sequence_id, lambda editeur: editeur.progression.move(item_id, target_index))


def reorder_sequence_elements_service(sequence_id: int, item_ids: list[str]) -> dict[str, Any]:
    return _editer_sequence(sequence_id, lambda editeur: editeur.progression.reorder(item_ids))


# --- Services - Exportation ---


def get_fiche_export_data_service(fiche_id: int) -> dict[str, Any]:
    """Rassemble les données d'une fiche pour l'exportation Excel."""
    editeur = _charger_editeur(fiche_id)
    fiche = cast(Chapfiche, db.session.get(Chapfiche, fiche_id))
    chapitre = fiche.chapitre
    unite = chapitre.unite
    objectifs_retenus = editeur.selecteur.selection.objectif_ids

    return {
        "fiche_id": fiche.id,
        "nom_fiche": editeur.nom_fiche,
        "statut": editeur.statut,
        "niveau": unite.option.niveau.nom_niveau,
        "option": unite.option.nom_option,
        "unite": unite.titre_unite,
        "chapitre": chapitre.titre_chapitre,
        "objectifs": [o.description_objectif for o in chapitre.objectifs if o.id in objectifs_retenus],
        "items": editeur.progression.to_list(),
    }


# --- Services - Importation de chapitres ---


class ImportationStats:
    def __init__(self) -> None:
        self.imported_count = 0
        self.skipped_count = 0


def process_chapitres_fichier(file_stream: Any, filename: str) -> list[str]:
    """
    Lit les titres de chapitres d'un fichier : un classeur .xlsx (colonne A,
    ligne d'en-tête ignorée) ou un fichier texte (un titre par ligne).
    """
    titres: list[str] = []
    nom = filename.lower()

    if nom.endswith(".xlsx"):
        try:
            workbook = openpyxl.load_workbook(file_stream, read_only=True)
        except (InvalidFileException, zipfile.BadZipFile) as e:
            raise InvalidFileException("Fichier Excel corrompu ou invalide.") from e
        sheet = cast(Worksheet, workbook.active)
        for row in sheet.iter_rows(min_row=2, max_col=1, values_only=True):
            valeur = row[0] if row else None
            if valeur is not None and str(valeur).strip():
                titres.append(str(valeur).strip())
    elif nom.endswith(".txt"):
        try:
            contenu = file_stream.read().decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ValueError("Le fichier texte doit être encodé en UTF-8.") from e
        titres = [ligne.strip() for ligne in contenu.splitlines() if ligne.strip()]
    else:
        raise ValueError("Format de fichier non pris en charge (attendu : .xlsx ou .txt).")

    if not titres:
        raise ValueError("Le fichier ne contient aucun titre de chapitre valide.")
    return titres


def save_imported_chapitres(titres: list[str], unite_id: int) -> ImportationStats:
    """
    Ajoute les chapitres importés à une unité. Les titres déjà présents dans
    l'unité (sans tenir compte de la casse) sont ignorés. L'opération est
    transactionnelle.
    """
    if not db.session.get(Unite, unite_id):
        raise EntityNotFoundError(f"L'unité {unite_id} n'a pas été trouvée.")

    stats = ImportationStats()
    try:
        existants = {t.casefold() for (t,) in db.session.query(Chapitre.titre_chapitre).filter_by(unite_id=unite_id).all()}
        nouveaux = []
        for titre in titres:
            if titre.casefold() in existants:
                stats.skipped_count += 1
                continue
            existants.add(titre.casefold())
            nouveaux.append(Chapitre(titre_chapitre=titre, unite_id=unite_id))

        db.session.add_all(nouveaux)
        stats.imported_count = len(nouveaux)
        db.session.commit()
        return stats
    except SQLAlchemyError as e:
        db.session.rollback()
        raise ServiceException(f"Erreur de base de données lors de l'importation des chapitres: {e}")
