# planipeda/hierarchie.py
"""
Ce module contient le sélecteur hiérarchique Niveau > Option > Unité > Chapitre > Objectifs.

Le sélecteur maintient une sélection en cascade : choisir un nœud d'un rang
invalide toutes les sélections des rangs inférieurs et recalcule la liste des
candidats du rang immédiatement dépendant. Les objectifs du chapitre choisi
sont chargés de façon asynchrone et mis en cache par chapitre pour la durée de
vie de l'instance.

Le sélecteur ne connaît pas la base de données : il reçoit une source de
données (voir depot.DepotPlanification) qui expose
    fetch_children(rang, parent_id) -> list[{"id", "name", "parent_id"}]
    async fetch_objectifs(chapitre_id) -> list[{"id", "text"}]
et qui lève FetchFailure en cas d'échec.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

log = logging.getLogger(__name__)


class Rang(str, Enum):
    """Rangs de la hiérarchie du programme, du plus haut au plus bas."""

    NIVEAU = "niveau"
    OPTION = "option"
    UNITE = "unite"
    CHAPITRE = "chapitre"


class StatutChargement(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    ERROR = "error"
    SUCCESS = "success"


class FetchFailure(Exception):
    """Échec récupérable de la couche d'accès aux données, limité à une liste."""

    def __init__(self, message="Impossible de charger les données."):
        self.message = message
        super().__init__(self.message)


class ListeCandidats:
    """Liste des choix proposés pour un rang, avec son état de chargement."""

    def __init__(self) -> None:
        self.statut = StatutChargement.IDLE
        self.elements: list[dict[str, Any]] = []
        self.message: str | None = None

    def reset(self) -> None:
        self.statut = StatutChargement.IDLE
        self.elements = []
        self.message = None

    def charger(self) -> None:
        self.statut = StatutChargement.LOADING
        self.elements = []
        self.message = None

    def reussir(self, elements: list[dict[str, Any]]) -> None:
        self.statut = StatutChargement.SUCCESS
        self.elements = list(elements)
        self.message = None

    def echouer(self, message: str) -> None:
        self.statut = StatutChargement.ERROR
        self.elements = []
        self.message = message

    def ids(self) -> set[Any]:
        return {element["id"] for element in self.elements}

    def to_dict(self) -> dict[str, Any]:
        return {"statut": self.statut.value, "elements": self.elements, "message": self.message}


@dataclass(frozen=True)
class Selection:
    """Instantané de la sélection, émis aux observateurs."""

    niveau_id: int | None = None
    option_id: int | None = None
    unite_id: int | None = None
    chapitre_id: int | None = None
    objectif_ids: frozenset[int] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "objectif_ids", frozenset(self.objectif_ids))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Selection":
        return cls(
            niveau_id=data.get("niveau_id"),
            option_id=data.get("option_id"),
            unite_id=data.get("unite_id"),
            chapitre_id=data.get("chapitre_id"),
            objectif_ids=frozenset(data.get("objectif_ids") or []),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "niveau_id": self.niveau_id,
            "option_id": self.option_id,
            "unite_id": self.unite_id,
            "chapitre_id": self.chapitre_id,
            "objectif_ids": sorted(self.objectif_ids),
        }


class HierarchySelector:
    """Sélection en cascade sur les quatre rangs du programme, plus les objectifs."""

    def __init__(self, source: Any) -> None:
        self.source = source

        self.niveau_id: int | None = None
        self.option_id: int | None = None
        self.unite_id: int | None = None
        self.chapitre_id: int | None = None
        self.objectif_ids: set[int] = set()

        self.niveaux = ListeCandidats()
        self.options = ListeCandidats()
        self.unites = ListeCandidats()
        self.chapitres = ListeCandidats()
        self.objectifs = ListeCandidats()

        self._cache_objectifs: dict[int, list[dict[str, Any]]] = {}
        self._observateurs: list[Callable[[Selection], None]] = []
        self._dernier_emis: Selection | None = None
        self._silencieux = False

    # --- Lecture ---

    @property
    def selection(self) -> Selection:
        return Selection(self.niveau_id, self.option_id, self.unite_id, self.chapitre_id, frozenset(self.objectif_ids))

    def etat(self) -> dict[str, Any]:
        """Sélection courante et listes de candidats, sous forme sérialisable."""
        return {
            "selection": self.selection.to_dict(),
            "niveaux": self.niveaux.to_dict(),
            "options": self.options.to_dict(),
            "unites": self.unites.to_dict(),
            "chapitres": self.chapitres.to_dict(),
            "objectifs": self.objectifs.to_dict(),
        }

    # --- Notifications ---

    def subscribe(self, callback: Callable[[Selection], None]) -> Callable[[], None]:
        """Enregistre un observateur et retourne la fonction de désabonnement."""
        self._observateurs.append(callback)

        def unsubscribe() -> None:
            if callback in self._observateurs:
                self._observateurs.remove(callback)

        return unsubscribe

    def _emettre(self) -> None:
        if self._silencieux:
            return
        instantane = self.selection
        if instantane == self._dernier_emis:
            return
        self._dernier_emis = instantane
        for callback in list(self._observateurs):
            callback(instantane)

    # --- Opérations ---

    def load_niveaux(self) -> None:
        """Charge (ou recharge après une erreur) la liste racine des niveaux."""
        self._charger_candidats(self.niveaux, Rang.NIVEAU, None)

    def select_niveau(self, niveau_id: int | None) -> None:
        self.niveau_id = niveau_id
        self.option_id = None
        self.unite_id = None
        self.chapitre_id = None
        self.objectif_ids = set()

        self._charger_candidats(self.options, Rang.OPTION, niveau_id)
        self.unites.reset()
        self.chapitres.reset()
        self.objectifs.reset()
        self._emettre()

    def select_option(self, option_id: int | None) -> None:
        self.option_id = option_id
        self.unite_id = None
        self.chapitre_id = None
        self.objectif_ids = set()

        self._charger_candidats(self.unites, Rang.UNITE, option_id)
        self.chapitres.reset()
        self.objectifs.reset()
        self._emettre()

    def select_unite(self, unite_id: int | None) -> None:
        self.unite_id = unite_id
        self.chapitre_id = None
        self.objectif_ids = set()

        self._charger_candidats(self.chapitres, Rang.CHAPITRE, unite_id)
        self.objectifs.reset()
        self._emettre()

    async def select_chapitre(self, chapitre_id: int | None) -> None:
        """
        Sélectionne un chapitre puis charge ses objectifs.

        Le changement de sélection et la notification ont lieu avant la première
        suspension. Une réponse qui arrive alors qu'un autre chapitre est
        sélectionné est mise en cache mais n'est pas affichée.
        """
        self.chapitre_id = chapitre_id
        self.objectif_ids = set()

        if chapitre_id is None:
            self.objectifs.reset()
            self._emettre()
            return

        en_cache = self._cache_objectifs.get(chapitre_id)
        if en_cache is not None:
            self.objectifs.reussir(en_cache)
            self._emettre()
            return

        self.objectifs.charger()
        self._emettre()

        try:
            resultats = await self.source.fetch_objectifs(chapitre_id)
        except FetchFailure as e:
            log.warning("Chargement des objectifs du chapitre %s impossible : %s", chapitre_id, e.message)
            if self.chapitre_id == chapitre_id:
                self.objectifs.echouer(e.message)
            return

        self._cache_objectifs[chapitre_id] = list(resultats)
        if self.chapitre_id != chapitre_id:
            log.debug("Réponse périmée ignorée pour le chapitre %s (chapitre courant : %s)", chapitre_id, self.chapitre_id)
            return
        self.objectifs.reussir(resultats)

    def toggle_objectif(self, objectif_id: int) -> None:
        """Coche ou décoche un objectif. Sans chapitre sélectionné, ne fait rien."""
        if self.chapitre_id is None:
            return
        if objectif_id in self.objectif_ids:
            self.objectif_ids.discard(objectif_id)
        else:
            self.objectif_ids.add(objectif_id)
        self._emettre()

    async def restore(self, selection: Selection) -> Selection:
        """
        Réapplique une sélection enregistrée à travers la cascade, sans notifier.

        La sélection est tronquée au premier identifiant qui n'est pas un enfant
        valide de son parent. Le résultat devient le dernier instantané émis.
        """
        self._silencieux = True
        try:
            if self.niveaux.statut != StatutChargement.SUCCESS:
                self.load_niveaux()

            niveau_id = selection.niveau_id if selection.niveau_id in self.niveaux.ids() else None
            self.select_niveau(niveau_id)

            option_id = selection.option_id if niveau_id is not None and selection.option_id in self.options.ids() else None
            self.select_option(option_id)

            unite_id = selection.unite_id if option_id is not None and selection.unite_id in self.unites.ids() else None
            self.select_unite(unite_id)

            chapitre_id = selection.chapitre_id if unite_id is not None and selection.chapitre_id in self.chapitres.ids() else None
            await self.select_chapitre(chapitre_id)

            if chapitre_id is not None:
                if self.objectifs.statut == StatutChargement.SUCCESS:
                    self.objectif_ids = set(selection.objectif_ids) & self.objectifs.ids()
                else:
                    # Objectifs non vérifiables : on conserve les choix enregistrés.
                    self.objectif_ids = set(selection.objectif_ids)
        finally:
            self._silencieux = False

        self._dernier_emis = self.selection
        return self._dernier_emis

    # --- Interne ---

    def _charger_candidats(self, liste: ListeCandidats, rang: Rang, parent_id: int | None) -> None:
        if rang != Rang.NIVEAU and parent_id is None:
            liste.reset()
            return

        liste.charger()
        try:
            elements = self.source.fetch_children(rang.value, parent_id)
        except FetchFailure as e:
            log.warning("Chargement des %ss (parent %s) impossible : %s", rang.value, parent_id, e.message)
            liste.echouer(e.message)
            return

        if rang != Rang.NIVEAU:
            elements = [element for element in elements if element.get("parent_id") == parent_id]
        liste.reussir(elements)
