# planipeda/progression.py
"""
Ce module contient la liste ordonnée des éléments de progression d'une fiche.

Une fiche de chapitre enchaîne des séquences, des activités et des évaluations.
La liste garantit qu'après chaque mutation le champ `ordre` de chaque élément
correspond à sa position : une suite d'entiers contiguë qui commence à la base
de la liste (1 pour les fiches).

Les échecs sont signalés par des exceptions typées (voir ProgressionError) et
laissent la liste inchangée. Chaque mutation réussie notifie les observateurs
avec la liste complète renumérotée.
"""

import logging
import uuid
from collections import Counter
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Iterable, Iterator

log = logging.getLogger(__name__)

ORDRE_BASE = 1


class TypeElement(str, Enum):
    """Nature d'un élément de progression."""

    SEQUENCE = "sequence"
    ACTIVITY = "activity"
    EVALUATION = "evaluation"


# Préfixes des identifiants générés, repris des liaisons stockées.
PREFIXES_ID = {
    TypeElement.SEQUENCE: "seq",
    TypeElement.ACTIVITY: "act",
    TypeElement.EVALUATION: "eval",
}


# --- Exceptions ---
class ProgressionError(Exception):
    """Exception de base pour les opérations sur une liste de progression."""

    def __init__(self, message="Opération invalide sur la progression."):
        self.message = message
        super().__init__(self.message)


class ItemNotFoundError(ProgressionError):
    """Levée lorsqu'un identifiant n'appartient pas à la liste."""

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"L'élément '{item_id}' est absent de la progression.")


class InvalidPermutationError(ProgressionError):
    """Levée lorsqu'un réordonnancement n'est pas une permutation des éléments actuels."""

    def __init__(self, manquants: list[str], inattendus: list[str]):
        self.manquants = manquants
        self.inattendus = inattendus
        details = []
        if manquants:
            details.append(f"manquants : {', '.join(manquants)}")
        if inattendus:
            details.append(f"en trop : {', '.join(inattendus)}")
        super().__init__(f"Le nouvel ordre n'est pas une permutation de la progression ({'; '.join(details)}).")


class InvalidPositionError(ProgressionError):
    """Levée lorsqu'une position d'insertion ou de déplacement est hors limites."""

    def __init__(self, position: int, taille: int):
        self.position = position
        super().__init__(f"Position {position} invalide pour une progression de {taille} élément(s).")


class TypeNonAutoriseError(ProgressionError):
    """Levée lorsqu'un élément n'est pas d'un type accepté par la liste."""

    def __init__(self, type_element: TypeElement):
        self.type_element = type_element
        super().__init__(f"Les éléments de type '{type_element.value}' ne sont pas acceptés dans cette progression.")


class DuplicateItemError(ProgressionError):
    """Levée lors de l'insertion d'un identifiant déjà présent."""

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"L'élément '{item_id}' est déjà présent dans la progression.")


@dataclass(frozen=True)
class ProgressionItem:
    """Élément d'une progression : une séquence, une activité ou une évaluation."""

    type: TypeElement
    titre: str = ""
    source_id: int | None = None
    id: str | None = None
    ordre: int = 0

    def __post_init__(self) -> None:
        # Accepte aussi la valeur brute ("sequence", ...) venant du JSON.
        object.__setattr__(self, "type", TypeElement(self.type))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "titre": self.titre,
            "source_id": self.source_id,
            "ordre": self.ordre,
        }


class ProgressionList:
    """Liste ordonnée et hétérogène d'éléments de progression."""

    def __init__(self, items: Iterable[ProgressionItem] = (), base: int = ORDRE_BASE, types: Iterable[TypeElement] | None = None):
        self.base = base
        # Types acceptés ; tous par défaut. Le contenu d'une séquence exclut les séquences.
        self.types = frozenset(TypeElement(t) for t in types) if types is not None else frozenset(TypeElement)
        self.selected_id: str | None = None
        self._observateurs: list[Callable[[list[ProgressionItem]], None]] = []

        # Les éléments stockés arrivent triés par leur ordre persistant ; le tri est stable.
        charges: list[ProgressionItem] = []
        for item in sorted(items, key=lambda it: it.ordre):
            self._verifier_type(item)
            if item.id is None:
                item = replace(item, id=self._nouvel_id(item.type, charges))
            elif any(existant.id == item.id for existant in charges):
                raise DuplicateItemError(item.id)
            charges.append(item)
        self._items = self._renumeroter(charges)

    # --- Lecture ---

    @property
    def items(self) -> list[ProgressionItem]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[ProgressionItem]:
        return iter(list(self._items))

    def __contains__(self, item_id: object) -> bool:
        return any(item.id == item_id for item in self._items)

    def index_of(self, item_id: str) -> int:
        for index, item in enumerate(self._items):
            if item.id == item_id:
                return index
        raise ItemNotFoundError(item_id)

    def get(self, item_id: str) -> ProgressionItem:
        return self._items[self.index_of(item_id)]

    @property
    def selected(self) -> ProgressionItem | None:
        return self.get(self.selected_id) if self.selected_id is not None else None

    def ordres_contigus(self) -> bool:
        """Vérifie que les ordres forment la suite base, base+1, ... alignée sur les positions."""
        return [item.ordre for item in self._items] == list(range(self.base, self.base + len(self._items)))

    def to_list(self) -> list[dict[str, Any]]:
        return [item.to_dict() for item in self._items]

    # --- Notifications ---

    def subscribe(self, callback: Callable[[list[ProgressionItem]], None]) -> Callable[[], None]:
        """Enregistre un observateur et retourne la fonction de désabonnement."""
        self._observateurs.append(callback)

        def unsubscribe() -> None:
            if callback in self._observateurs:
                self._observateurs.remove(callback)

        return unsubscribe

    def _notifier(self) -> None:
        instantane = self.items
        for callback in list(self._observateurs):
            callback(instantane)

    # --- Mutations ---

    def select(self, item_id: str | None) -> None:
        """Change l'élément sélectionné par l'interface (None pour désélectionner)."""
        if item_id is not None and item_id not in self:
            raise ItemNotFoundError(item_id)
        self.selected_id = item_id

    def insert(self, item: ProgressionItem, position: int | None = None) -> ProgressionItem:
        """
        Ajoute un élément en fin de liste, ou à la position (base 0) indiquée.
        Un identifiant est généré si l'élément n'en a pas. Retourne l'élément renuméroté.
        """
        self._verifier_type(item)
        if item.id is None:
            item = replace(item, id=self._nouvel_id(item.type, self._items))
        elif item.id in self:
            raise DuplicateItemError(item.id)

        nouveaux = list(self._items)
        if position is None:
            nouveaux.append(item)
        else:
            if not 0 <= position <= len(nouveaux):
                raise InvalidPositionError(position, len(nouveaux))
            nouveaux.insert(position, item)

        self._remplacer(nouveaux)
        return self.get(item.id)

    def remove(self, item_id: str) -> ProgressionItem:
        """Retire un élément de la fiche (l'entité maîtresse n'est pas supprimée)."""
        index = self.index_of(item_id)
        nouveaux = list(self._items)
        retire = nouveaux.pop(index)

        if self.selected_id == item_id:
            # La sélection passe à l'élément qui occupe désormais la même position.
            self.selected_id = nouveaux[min(index, len(nouveaux) - 1)].id if nouveaux else None

        self._remplacer(nouveaux)
        return retire

    def update(self, item_id: str, **changes: Any) -> ProgressionItem:
        """Modifie le titre ou la source d'un élément sans toucher à sa position."""
        non_modifiables = set(changes) - {"titre", "source_id"}
        if non_modifiables:
            raise ProgressionError(f"Champs non modifiables : {', '.join(sorted(non_modifiables))}.")

        index = self.index_of(item_id)
        nouveaux = list(self._items)
        nouveaux[index] = replace(nouveaux[index], **changes)
        self._remplacer(nouveaux)
        return self._items[index]

    def move_up(self, item_id: str) -> bool:
        """Remonte un élément d'un cran. Retourne False s'il est déjà en tête."""
        return self._echanger(item_id, -1)

    def move_down(self, item_id: str) -> bool:
        """Descend un élément d'un cran. Retourne False s'il est déjà en dernier."""
        return self._echanger(item_id, 1)

    def move(self, item_id: str, target_index: int) -> None:
        """
        Déplace un élément vers la position cible (base 0), comme à l'issue d'un
        glisser-déposer dont l'interface a déjà résolu l'index de destination.
        """
        source_index = self.index_of(item_id)
        if not 0 <= target_index < len(self._items):
            raise InvalidPositionError(target_index, len(self._items))
        if source_index == target_index:
            return

        ids = [item.id for item in self._items]
        ids.insert(target_index, ids.pop(source_index))
        self.reorder(ids)

    def reorder(self, sequence: Iterable[ProgressionItem | str]) -> None:
        """
        Remplace l'ordre courant par une permutation complète des éléments.
        Accepte des éléments ou leurs identifiants.
        """
        ids = [element if isinstance(element, str) else element.id for element in sequence]
        attendus = Counter(item.id for item in self._items)
        recus = Counter(ids)
        if recus != attendus:
            manquants = sorted((attendus - recus).elements())
            inattendus = sorted(str(i) for i in (recus - attendus).elements())
            log.debug("Réordonnancement refusé : manquants=%s, en trop=%s", manquants, inattendus)
            raise InvalidPermutationError(manquants, inattendus)

        par_id = {item.id: item for item in self._items}
        self._remplacer([par_id[item_id] for item_id in ids])

    # --- Interne ---

    def _verifier_type(self, item: ProgressionItem) -> None:
        if item.type not in self.types:
            raise TypeNonAutoriseError(item.type)

    def _echanger(self, item_id: str, delta: int) -> bool:
        index = self.index_of(item_id)
        voisin = index + delta
        if not 0 <= voisin < len(self._items):
            return False

        nouveaux = list(self._items)
        nouveaux[index], nouveaux[voisin] = nouveaux[voisin], nouveaux[index]
        self._remplacer(nouveaux)
        return True

    def _remplacer(self, items: list[ProgressionItem]) -> None:
        self._items = self._renumeroter(items)
        self._notifier()

    def _renumeroter(self, items: list[ProgressionItem]) -> list[ProgressionItem]:
        return [item if item.ordre == self.base + position else replace(item, ordre=self.base + position) for position, item in enumerate(items)]

    @staticmethod
    def _nouvel_id(type_element: TypeElement, existants: list[ProgressionItem]) -> str:
        prefixe = PREFIXES_ID[TypeElement(type_element)]
        while True:
            candidat = f"{prefixe}-nouveau-{uuid.uuid4().hex[:12]}"
            if all(item.id != candidat for item in existants):
                return candidat
