# planipeda/admin.py
"""
Ce module contient le Blueprint des opérations d'administration des données.

Il expose l'importation en masse de chapitres dans une unité, à partir d'un
classeur Excel ou d'un fichier texte. Toute la logique est déléguée à la
couche de services.
"""

from flask import Blueprint, current_app, jsonify, request
from openpyxl.utils.exceptions import InvalidFileException
from werkzeug.wrappers import Response

from . import services
from .services import EntityNotFoundError, ServiceException
from .utils import erreur_json

bp = Blueprint("admin", __name__, url_prefix="/admin")


@bp.route("/api/unites/<int:unite_id>/importer_chapitres", methods=["POST"])
def api_importer_chapitres(unite_id: int) -> tuple[Response, int]:
    """Importe des chapitres dans une unité (champ de fichier 'fichier_chapitres')."""
    if "fichier_chapitres" not in request.files:
        return erreur_json("Aucun fichier sélectionné.", 400)

    file = request.files["fichier_chapitres"]
    if not file.filename:
        return erreur_json("Aucun fichier sélectionné.", 400)

    if not file.filename.lower().endswith((".xlsx", ".txt")):
        return erreur_json("Format de fichier invalide. Utilisez un fichier .xlsx ou .txt.", 400)

    try:
        titres = services.process_chapitres_fichier(file.stream, file.filename)
        stats = services.save_imported_chapitres(titres, unite_id)
    except EntityNotFoundError as e:
        return erreur_json(e.message, 404)
    except (InvalidFileException, ValueError) as e:
        return erreur_json(str(e), 400)
    except ServiceException as e:
        current_app.logger.error(f"Erreur lors de l'importation des chapitres: {e}", exc_info=True)
        return erreur_json(e.message, 500)

    current_app.logger.info(f"{stats.imported_count} chapitre(s) importé(s) dans l'unité {unite_id}.")
    return jsonify(
        {
            "success": True,
            "message": f"{stats.imported_count} chapitre(s) importé(s), {stats.skipped_count} déjà présent(s).",
            "imported_count": stats.imported_count,
            "skipped_count": stats.skipped_count,
        }
    ), 201
