# planipeda/planification.py
"""
Ce module contient le conteneur de page qui édite une fiche de planification.

EditeurPlanification possède un sélecteur hiérarchique (chapitre de référence
et objectifs retenus) et une liste de progression (séquences, activités,
évaluations). Il s'abonne aux deux composants pour suivre les modifications
non enregistrées et délègue la persistance au dépôt injecté.

EditeurSequence édite de la même façon le contenu ordonné d'une séquence,
restreint aux activités et aux évaluations.
"""

import logging
from typing import Any

from .exceptions import BusinessRuleValidationError, EntityNotFoundError, ServiceException
from .hierarchie import HierarchySelector, Selection
from .progression import ORDRE_BASE, ProgressionItem, ProgressionList, TypeElement, TypeNonAutoriseError

log = logging.getLogger(__name__)

STATUT_BROUILLON = "Brouillon"
STATUTS_FICHE = (STATUT_BROUILLON, "Publié", "Archivé")


def normaliser_statut(statut: str | None) -> str:
    """Retourne le statut s'il est connu, sinon le statut brouillon."""
    return statut if statut in STATUTS_FICHE else STATUT_BROUILLON


class ResultatSauvegarde:
    """Issue d'un enregistrement : succès, ou échec avec son message."""

    def __init__(self, succes: bool, message: str, fiche_id: int | None = None) -> None:
        self.succes = succes
        self.message = message
        self.fiche_id = fiche_id

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.succes, "message": self.message, "fiche_id": self.fiche_id}


class EditeurPlanification:
    """Édition d'une fiche : sélection du chapitre et progression ordonnée."""

    def __init__(self, depot: Any, base: int = ORDRE_BASE) -> None:
        self.depot = depot
        self.base = base
        self.fiche_id: int | None = None
        self.nom_fiche = ""
        self.statut = STATUT_BROUILLON
        self.modifie = False

        self.selecteur = HierarchySelector(depot)
        self.selecteur.subscribe(self._sur_changement)
        self.progression = ProgressionList(base=base)
        self._desabonner_progression = self.progression.subscribe(self._sur_changement)

    def _sur_changement(self, _instantane: Any) -> None:
        self.modifie = True

    def _brancher_progression(self, progression: ProgressionList) -> None:
        self._desabonner_progression()
        self.progression = progression
        self._desabonner_progression = progression.subscribe(self._sur_changement)

    # --- Chargement ---

    async def nouvelle(self, selection: Selection, nom_fiche: str = "") -> None:
        """Prépare une fiche vierge sur la sélection donnée."""
        await self.selecteur.restore(selection)
        self.fiche_id = None
        self.nom_fiche = nom_fiche
        self.statut = STATUT_BROUILLON
        self._brancher_progression(ProgressionList(base=self.base))
        self.modifie = True

    async def charger(self, fiche_id: int) -> None:
        donnees = self.depot.load(fiche_id)
        if donnees is None:
            raise EntityNotFoundError(f"La fiche {fiche_id} n'a pas été trouvée.")

        await self.selecteur.restore(donnees["selection"])
        self.fiche_id = donnees["id"]
        self.nom_fiche = donnees["nom_fiche"]
        self.statut = normaliser_statut(donnees["statut"])
        self._brancher_progression(ProgressionList(donnees["items"], base=self.base))
        self.modifie = False

    # --- Édition ---

    def definir_infos(self, nom_fiche: str | None = None, statut: str | None = None) -> None:
        if statut is not None and statut not in STATUTS_FICHE:
            raise BusinessRuleValidationError(f"Statut '{statut}' inconnu. Valeurs possibles : {', '.join(STATUTS_FICHE)}.")
        if nom_fiche is not None:
            self.nom_fiche = nom_fiche.strip()
        if statut is not None:
            self.statut = statut
        self.modifie = True

    def ajouter_element(self, type_element: str, source_id: int, position: int | None = None) -> ProgressionItem:
        """Ajoute une entité maîtresse existante à la progression."""
        maitre = self.depot.get_maitre(type_element, source_id)
        if maitre is None:
            raise EntityNotFoundError(f"L'entité maîtresse {type_element} {source_id} n'a pas été trouvée.")
        item = self.progression.insert(ProgressionItem(type=type_element, titre=maitre["titre"], source_id=source_id), position)
        self.progression.select(item.id)
        return item

    # --- Persistance ---

    def composite(self) -> dict[str, Any]:
        return {
            "id": self.fiche_id,
            "nom_fiche": self.nom_fiche,
            "statut": self.statut,
            "selection": self.selecteur.selection,
            "items": self.progression.items,
        }

    def sauvegarder(self) -> ResultatSauvegarde:
        """
        Enregistre la fiche. Les éléments nouvellement insérés reçoivent
        ensuite l'identifiant attribué par le stockage ; la sélection est
        conservée par position.
        """
        try:
            enregistre = self.depot.persist(self.composite())
        except ServiceException as e:
            log.warning("Échec de l'enregistrement de la fiche %s : %s", self.fiche_id, e.message)
            return ResultatSauvegarde(False, e.message, self.fiche_id)

        self.fiche_id = enregistre["id"]
        position_selection = self.progression.index_of(self.progression.selected_id) if self.progression.selected_id else None

        donnees = self.depot.load(self.fiche_id)
        progression = ProgressionList(donnees["items"] if donnees else self.progression.items, base=self.base)
        if position_selection is not None and position_selection < len(progression):
            progression.select(progression.items[position_selection].id)
        self._brancher_progression(progression)
        self.modifie = False
        return ResultatSauvegarde(True, "Fiche enregistrée avec succès.", self.fiche_id)

    def etat(self) -> dict[str, Any]:
        """État complet de l'éditeur, sous forme sérialisable."""
        return {
            "fiche_id": self.fiche_id,
            "nom_fiche": self.nom_fiche,
            "statut": self.statut,
            "modifie": self.modifie,
            "hierarchie": self.selecteur.etat(),
            "progression": self.progression.to_list(),
            "selected_id": self.progression.selected_id,
        }


class EditeurSequence:
    """Édition du contenu d'une séquence : activités et évaluations ordonnées."""

    TYPES = frozenset({TypeElement.ACTIVITY, TypeElement.EVALUATION})

    def __init__(self, depot: Any, base: int = ORDRE_BASE) -> None:
        self.depot = depot
        self.base = base
        self.sequence_id: int | None = None
        self.titre = ""
        self.modifie = False
        self.progression = ProgressionList(base=base, types=self.TYPES)
        self._desabonner_progression = self.progression.subscribe(self._sur_changement)

    def _sur_changement(self, _instantane: Any) -> None:
        self.modifie = True

    def _brancher_progression(self, progression: ProgressionList) -> None:
        self._desabonner_progression()
        self.progression = progression
        self._desabonner_progression = progression.subscribe(self._sur_changement)

    def charger(self, sequence_id: int) -> None:
        donnees = self.depot.load_sequence(sequence_id)
        if donnees is None:
            raise EntityNotFoundError(f"La séquence {sequence_id} n'a pas été trouvée.")
        self.sequence_id = donnees["id"]
        self.titre = donnees["titre"]
        self._brancher_progression(ProgressionList(donnees["items"], base=self.base, types=self.TYPES))
        self.modifie = False

    def ajouter_element(self, type_element: str, source_id: int, position: int | None = None) -> ProgressionItem:
        """Ajoute une activité ou une évaluation existante au contenu."""
        type_element = TypeElement(type_element)
        if type_element not in self.TYPES:
            raise TypeNonAutoriseError(type_element)
        maitre = self.depot.get_maitre(type_element, source_id)
        if maitre is None:
            raise EntityNotFoundError(f"L'entité maîtresse {type_element.value} {source_id} n'a pas été trouvée.")
        item = self.progression.insert(ProgressionItem(type=type_element, titre=maitre["titre"], source_id=source_id), position)
        self.progression.select(item.id)
        return item

    def sauvegarder(self) -> ResultatSauvegarde:
        try:
            self.depot.persist_sequence(self.sequence_id, self.progression.items)
        except ServiceException as e:
            log.warning("Échec de l'enregistrement de la séquence %s : %s", self.sequence_id, e.message)
            return ResultatSauvegarde(False, e.message)

        position_selection = self.progression.index_of(self.progression.selected_id) if self.progression.selected_id else None
        donnees = self.depot.load_sequence(self.sequence_id)
        progression = ProgressionList(donnees["items"] if donnees else self.progression.items, base=self.base, types=self.TYPES)
        if position_selection is not None and position_selection < len(progression):
            progression.select(progression.items[position_selection].id)
        self._brancher_progression(progression)
        self.modifie = False
        return ResultatSauvegarde(True, "Séquence enregistrée avec succès.")

    def etat(self) -> dict[str, Any]:
        return {
            "sequence_id": self.sequence_id,
            "titre": self.titre,
            "modifie": self.modifie,
            "progression": self.progression.to_list(),
            "selected_id": self.progression.selected_id,
        }
