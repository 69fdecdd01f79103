# planipeda/utils.py
"""
Ce module contient des fonctions et décorateurs utilitaires partagés par les blueprints.

Le fait de les placer dans un module séparé évite les importations circulaires
entre les blueprints et le paquet principal (__init__.py).
"""

from functools import wraps
from typing import Any, Callable

from flask import jsonify, request
from werkzeug.wrappers import Response


def erreur_json(message: str, status: int) -> tuple[Response, int]:
    """Réponse d'erreur au format commun {"success": False, "message": ...}."""
    return jsonify({"success": False, "message": message}), status


def json_required(f: Callable[..., Any]) -> Callable[..., Any]:
    """
    Décorateur pour les routes d'API qui attendent un corps JSON (objet).
    Retourne une réponse JSON 400 si le corps est absent ou invalide.
    """

    @wraps(f)
    def decorated_function(*args: Any, **kwargs: Any) -> tuple[Response, int] | Any:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return erreur_json("Données JSON manquantes ou invalides.", 400)
        return f(*args, **kwargs)

    return decorated_function


def parse_optional_int(value: Any) -> int | None:
    """Convertit une valeur JSON en entier ; None et "" donnent None. Lève ValueError sinon."""
    if value is None or value == "":
        return None
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValueError(f"Valeur entière attendue : {value!r}")
    return int(value)
