# planipeda/api.py
"""
Ce module contient le Blueprint de l'API JSON de planification.

Il agit comme une couche de contrôle : il valide les données reçues, délègue
toute la logique à la couche de services et formate les réponses JSON. Les
erreurs typées du noyau et des services sont traduites en codes HTTP.
"""

from functools import wraps
from typing import Any, Callable

from flask import Blueprint, current_app, jsonify, request
from werkzeug.wrappers import Response

from . import exports, services
from .hierarchie import Rang
from .progression import ItemNotFoundError, ProgressionError
from .services import (
    TYPES_ELEMENT,
    BusinessRuleValidationError,
    EntityNotFoundError,
    ServiceException,
)
from .utils import erreur_json, json_required, parse_optional_int

bp = Blueprint("api", __name__, url_prefix="/api")

RANGS = {r.value for r in Rang}


def _erreurs_metier(f: Callable[..., Any]) -> Callable[..., Any]:
    """Traduit les exceptions du noyau et des services en réponses JSON."""

    @wraps(f)
    def decorated_function(*args: Any, **kwargs: Any) -> tuple[Response, int] | Any:
        try:
            return f(*args, **kwargs)
        except (ItemNotFoundError, EntityNotFoundError) as e:
            return erreur_json(e.message, 404)
        except ProgressionError as e:
            return erreur_json(e.message, 400)
        except BusinessRuleValidationError as e:
            return erreur_json(e.message, 409)
        except ServiceException as e:
            current_app.logger.error(f"Erreur inattendue dans {f.__name__}: {e}", exc_info=True)
            return erreur_json("Erreur interne du serveur.", 500)

    return decorated_function


# --- Hiérarchie ---


@bp.route("/hierarchie/<string:rang>", methods=["GET"])
@_erreurs_metier
def api_get_enfants(rang: str) -> tuple[Response, int]:
    """Liste les nœuds d'un rang ; `parent_id` est requis sauf pour les niveaux."""
    if rang not in RANGS:
        return erreur_json(f"Rang '{rang}' inconnu.", 400)
    parent_id = request.args.get("parent_id", type=int)
    if rang != "niveau" and parent_id is None:
        return erreur_json("Le paramètre 'parent_id' est requis.", 400)
    return jsonify({"success": True, "elements": services.get_children_service(rang, parent_id)}), 200


@bp.route("/hierarchie/chapitres/<int:chapitre_id>/objectifs", methods=["GET"])
@_erreurs_metier
def api_get_objectifs(chapitre_id: int) -> tuple[Response, int]:
    return jsonify({"success": True, "objectifs": services.get_objectifs_service(chapitre_id)}), 200


@bp.route("/hierarchie/selection", methods=["POST"])
@json_required
@_erreurs_metier
def api_resoudre_selection() -> tuple[Response, int]:
    """Normalise une sélection en cascade et retourne les listes de candidats."""
    data = request.get_json()
    try:
        selection = _lire_selection(data)
    except (TypeError, ValueError):
        return erreur_json("Identifiants de sélection invalides.", 400)
    return jsonify({"success": True, **services.resolve_selection_service(selection)}), 200


# --- Entités maîtresses ---


@bp.route("/maitres/<string:type_element>", methods=["GET"])
@_erreurs_metier
def api_get_maitres(type_element: str) -> tuple[Response, int]:
    if type_element not in TYPES_ELEMENT:
        return erreur_json(f"Type d'élément '{type_element}' inconnu.", 400)
    chapitre_id = request.args.get("chapitre_id", type=int)
    return jsonify({"success": True, "elements": services.list_maitres_service(type_element, chapitre_id)}), 200


# --- Fiches ---


@bp.route("/fiches", methods=["GET"])
@_erreurs_metier
def api_get_fiches() -> tuple[Response, int]:
    chapitre_id = request.args.get("chapitre_id", type=int)
    return jsonify({"success": True, "fiches": services.list_fiches_service(chapitre_id)}), 200


@bp.route("/fiches/creer", methods=["POST"])
@json_required
@_erreurs_metier
def api_creer_fiche() -> tuple[Response, int]:
    data = request.get_json()
    try:
        selection = _lire_selection(data.get("selection") or {})
    except (TypeError, ValueError):
        return erreur_json("Identifiants de sélection invalides.", 400)

    fiche = services.create_fiche_service(selection, str(data.get("nom_fiche") or ""))
    current_app.logger.info(f"Fiche {fiche['fiche_id']} créée pour le chapitre {fiche['hierarchie']['selection']['chapitre_id']}.")
    return jsonify({"success": True, "message": "Fiche créée avec succès.", "fiche": fiche}), 201


@bp.route("/fiches/<int:fiche_id>", methods=["GET"])
@_erreurs_metier
def api_get_fiche(fiche_id: int) -> tuple[Response, int]:
    return jsonify({"success": True, "fiche": services.get_fiche_service(fiche_id)}), 200


@bp.route("/fiches/<int:fiche_id>/modifier", methods=["POST"])
@json_required
@_erreurs_metier
def api_modifier_fiche(fiche_id: int) -> tuple[Response, int]:
    data = request.get_json()
    if not all(isinstance(data.get(cle), (str, type(None))) for cle in ("nom_fiche", "statut")):
        return erreur_json("'nom_fiche' et 'statut' doivent être des chaînes.", 400)
    fiche = services.update_fiche_infos_service(fiche_id, data.get("nom_fiche"), data.get("statut"))
    return jsonify({"success": True, "message": "Fiche mise à jour.", "fiche": fiche}), 200


@bp.route("/fiches/<int:fiche_id>/selection", methods=["POST"])
@json_required
@_erreurs_metier
def api_modifier_selection_fiche(fiche_id: int) -> tuple[Response, int]:
    data = request.get_json()
    try:
        selection = _lire_selection(data.get("selection") or {})
    except (TypeError, ValueError):
        return erreur_json("Identifiants de sélection invalides.", 400)
    fiche = services.update_fiche_selection_service(fiche_id, selection)
    return jsonify({"success": True, "message": "Sélection mise à jour.", "fiche": fiche}), 200


@bp.route("/fiches/<int:fiche_id>/supprimer", methods=["POST"])
@_erreurs_metier
def api_supprimer_fiche(fiche_id: int) -> tuple[Response, int]:
    services.delete_fiche_service(fiche_id)
    current_app.logger.info(f"Fiche {fiche_id} supprimée.")
    return jsonify({"success": True, "message": "Fiche supprimée.", "fiche_id": fiche_id}), 200


@bp.route("/fiches/<int:fiche_id>/export", methods=["GET"])
@_erreurs_metier
def api_exporter_fiche(fiche_id: int) -> Response:
    donnees = services.get_fiche_export_data_service(fiche_id)
    mem_file = exports.generer_export_fiche(donnees)
    filename = f"fiche_{fiche_id}.xlsx"
    current_app.logger.info(f"Génération du fichier d'export '{filename}'.")
    return Response(
        mem_file,
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


# --- Progression d'une fiche ---


@bp.route("/fiches/<int:fiche_id>/elements/ajouter", methods=["POST"])
@json_required
@_erreurs_metier
def api_ajouter_element(fiche_id: int) -> tuple[Response, int]:
    try:
        type_element, source_id, position = _lire_ajout(request.get_json())
    except ValueError as e:
        return erreur_json(str(e), 400)

    fiche = services.add_element_service(fiche_id, type_element, source_id, position)
    return jsonify({"success": True, "message": "Élément ajouté à la progression.", "fiche": fiche}), 201


@bp.route("/fiches/<int:fiche_id>/elements/<string:item_id>/supprimer", methods=["POST"])
@_erreurs_metier
def api_supprimer_element(fiche_id: int, item_id: str) -> tuple[Response, int]:
    fiche = services.remove_element_service(fiche_id, item_id)
    return jsonify({"success": True, "message": "Élément retiré de la progression.", "fiche": fiche}), 200


@bp.route("/fiches/<int:fiche_id>/elements/<string:item_id>/monter", methods=["POST"])
@_erreurs_metier
def api_monter_element(fiche_id: int, item_id: str) -> tuple[Response, int]:
    fiche = services.move_element_service(fiche_id, item_id, "haut")
    return jsonify({"success": True, "fiche": fiche}), 200


@bp.route("/fiches/<int:fiche_id>/elements/<string:item_id>/descendre", methods=["POST"])
@_erreurs_metier
def api_descendre_element(fiche_id: int, item_id: str) -> tuple[Response, int]:
    fiche = services.move_element_service(fiche_id, item_id, "bas")
    return jsonify({"success": True, "fiche": fiche}), 200


@bp.route("/fiches/<int:fiche_id>/elements/<string:item_id>/deplacer", methods=["POST"])
@json_required
@_erreurs_metier
def api_deplacer_element(fiche_id: int, item_id: str) -> tuple[Response, int]:
    data = request.get_json()
    try:
        position = parse_optional_int(data.get("position"))
    except (TypeError, ValueError):
        return erreur_json("'position' doit être un entier.", 400)
    if position is None:
        return erreur_json("La position cible est requise.", 400)

    fiche = services.deplacer_element_service(fiche_id, item_id, position)
    return jsonify({"success": True, "fiche": fiche}), 200


@bp.route("/fiches/<int:fiche_id>/elements/reordonner", methods=["POST"])
@json_required
@_erreurs_metier
def api_reordonner_elements(fiche_id: int) -> tuple[Response, int]:
    data = request.get_json()
    ordre = data.get("ordre")
    if not isinstance(ordre, list) or not all(isinstance(item_id, str) for item_id in ordre):
        return erreur_json("'ordre' doit être une liste d'identifiants.", 400)

    fiche = services.reorder_elements_service(fiche_id, ordre)
    return jsonify({"success": True, "message": "Progression réordonnée.", "fiche": fiche}), 200


# --- Contenu d'une séquence ---


@bp.route("/sequences/<int:sequence_id>/elements", methods=["GET"])
@_erreurs_metier
def api_get_contenu_sequence(sequence_id: int) -> tuple[Response, int]:
    return jsonify({"success": True, "sequence": services.get_sequence_contenu_service(sequence_id)}), 200


@bp.route("/sequences/<int:sequence_id>/elements/ajouter", methods=["POST"])
@json_required
@_erreurs_metier
def api_ajouter_element_sequence(sequence_id: int) -> tuple[Response, int]:
    """Ajoute une activité ou une évaluation ; une séquence ne peut pas en contenir une autre."""
    try:
        type_element, source_id, position = _lire_ajout(request.get_json())
    except ValueError as e:
        return erreur_json(str(e), 400)

    sequence = services.add_sequence_element_service(sequence_id, type_element, source_id, position)
    return jsonify({"success": True, "message": "Élément ajouté à la séquence.", "sequence": sequence}), 201


@bp.route("/sequences/<int:sequence_id>/elements/<string:item_id>/supprimer", methods=["POST"])
@_erreurs_metier
def api_supprimer_element_sequence(sequence_id: int, item_id: str) -> tuple[Response, int]:
    sequence = services.remove_sequence_element_service(sequence_id, item_id)
    return jsonify({"success": True, "message": "Élément retiré de la séquence.", "sequence": sequence}), 200


@bp.route("/sequences/<int:sequence_id>/elements/<string:item_id>/monter", methods=["POST"])
@_erreurs_metier
def api_monter_element_sequence(sequence_id: int, item_id: str) -> tuple[Response, int]:
    return jsonify({"success": True, "sequence": services.move_sequence_element_service(sequence_id, item_id, "haut")}), 200


@bp.route("/sequences/<int:sequence_id>/elements/<string:item_id>/descendre", methods=["POST"])
@_erreurs_metier
def api_descendre_element_sequence(sequence_id: int, item_id: str) -> tuple[Response, int]:
    return jsonify({"success": True, "sequence": services.move_sequence_element_service(sequence_id, item_id, "bas")}), 200


@bp.route("/sequences/<int:sequence_id>/elements/<string:item_id>/deplacer", methods=["POST"])
@json_required
@_erreurs_metier
def api_deplacer_element_sequence(sequence_id: int, item_id: str) -> tuple[Response, int]:
    data = request.get_json()
    try:
        position = parse_optional_int(data.get("position"))
    except (TypeError, ValueError):
        return erreur_json("'position' doit être un entier.", 400)
    if position is None:
        return erreur_json("La position cible est requise.", 400)

    sequence = services.deplacer_sequence_element_service(sequence_id, item_id, position)
    return jsonify({"success": True, "sequence": sequence}), 200


@bp.route("/sequences/<int:sequence_id>/elements/reordonner", methods=["POST"])
@json_required
@_erreurs_metier
def api_reordonner_elements_sequence(sequence_id: int) -> tuple[Response, int]:
    ordre = request.get_json().get("ordre")
    if not isinstance(ordre, list) or not all(isinstance(item_id, str) for item_id in ordre):
        return erreur_json("'ordre' doit être une liste d'identifiants.", 400)

    sequence = services.reorder_sequence_elements_service(sequence_id, ordre)
    return jsonify({"success": True, "message": "Séquence réordonnée.", "sequence": sequence}), 200


def _lire_ajout(data: dict[str, Any]) -> tuple[str, int, int | None]:
    """Valide le corps d'un ajout d'élément. Lève ValueError avec le message à retourner."""
    type_element = data.get("type")
    if not isinstance(type_element, (str, type(None))):
        raise ValueError("'type' doit être une chaîne.")
    try:
        source_id = parse_optional_int(data.get("source_id"))
        position = parse_optional_int(data.get("position"))
    except (TypeError, ValueError):
        raise ValueError("'source_id' et 'position' doivent être des entiers.")
    if not type_element or source_id is None:
        raise ValueError("Données manquantes.")
    if type_element not in TYPES_ELEMENT:
        raise ValueError(f"Type d'élément '{type_element}' inconnu.")
    return type_element, source_id, position


def _identifiant_requis(value: Any) -> int:
    identifiant = parse_optional_int(value)
    if identifiant is None:
        raise ValueError("identifiant d'objectif manquant")
    return identifiant


def _lire_selection(data: dict[str, Any]) -> dict[str, Any]:
    """Valide les identifiants d'une sélection reçue en JSON. Lève ValueError."""
    if not isinstance(data, dict):
        raise ValueError("la sélection doit être un objet")
    objectif_ids = data.get("objectif_ids") or []
    if not isinstance(objectif_ids, list):
        raise ValueError("objectif_ids doit être une liste")
    return {
        "niveau_id": parse_optional_int(data.get("niveau_id")),
        "option_id": parse_optional_int(data.get("option_id")),
        "unite_id": parse_optional_int(data.get("unite_id")),
        "chapitre_id": parse_optional_int(data.get("chapitre_id")),
        "objectif_ids": [_identifiant_requis(o) for o in objectif_ids],
    }
