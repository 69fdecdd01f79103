# planipeda/depot.py
"""
Ce module contient le dépôt d'accès aux données injecté dans le noyau.

DepotPlanification fournit au sélecteur hiérarchique les listes d'enfants et
les objectifs d'un chapitre, et sert au conteneur de page (planification.py)
à charger et enregistrer une fiche avec ses liaisons ordonnées, ainsi que le
contenu d'une séquence. Toutes les requêtes passent par la session
SQLAlchemy partagée.
"""

import asyncio
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .exceptions import BusinessRuleValidationError, ServiceException
from .extensions import db
from .hierarchie import FetchFailure, Rang, Selection
from .models import (
    Activite,
    Chapfiche,
    ChapficheActivite,
    ChapficheEvaluation,
    ChapficheSequence,
    Chapitre,
    Evaluation,
    Niveau,
    Objectif,
    Option,
    Sequence,
    SequenceActivite,
    SequenceEvaluation,
    Unite,
)
from .progression import PREFIXES_ID, ProgressionItem, TypeElement

# Modèle, colonne du nom affiché et colonne parente de chaque rang.
_RANGS = {
    Rang.NIVEAU: (Niveau, "nom_niveau", None),
    Rang.OPTION: (Option, "nom_option", "niveau_id"),
    Rang.UNITE: (Unite, "titre_unite", "option_id"),
    Rang.CHAPITRE: (Chapitre, "titre_chapitre", "unite_id"),
}

# Entité maîtresse, colonne du titre, table de liaison et sa clé vers l'entité.
_MAITRES = {
    TypeElement.SEQUENCE: (Sequence, "titre_sequence", ChapficheSequence, "sequence_id"),
    TypeElement.ACTIVITY: (Activite, "titre_activite", ChapficheActivite, "activite_id"),
    TypeElement.EVALUATION: (Evaluation, "titre_evaluation", ChapficheEvaluation, "evaluation_id"),
}

# Contenu d'une séquence : activités et évaluations seulement.
_CONTENU_SEQUENCE = {
    TypeElement.ACTIVITY: (Activite, "titre_activite", SequenceActivite, "activite_id"),
    TypeElement.EVALUATION: (Evaluation, "titre_evaluation", SequenceEvaluation, "evaluation_id"),
}
TYPES_CONTENU_SEQUENCE = frozenset(_CONTENU_SEQUENCE)


class DepotPlanification:
    """Accès SQLAlchemy à la hiérarchie, aux entités maîtresses et aux fiches."""

    def __init__(self, session: Session | None = None) -> None:
        self.session = session or db.session

    # --- Hiérarchie ---

    def fetch_children(self, rang: str, parent_id: int | None) -> list[dict[str, Any]]:
        """Retourne les nœuds d'un rang rattachés au parent donné, triés par id."""
        modele, colonne_nom, colonne_parent = _RANGS[Rang(rang)]
        try:
            requete = self.session.query(modele)
            if colonne_parent is not None:
                requete = requete.filter(getattr(modele, colonne_parent) == parent_id)
            noeuds = requete.order_by(modele.id).all()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise FetchFailure(f"Erreur de chargement de la liste « {rang} » : {e}") from e

        return [
            {
                "id": noeud.id,
                "name": getattr(noeud, colonne_nom),
                "parent_id": getattr(noeud, colonne_parent) if colonne_parent else None,
            }
            for noeud in noeuds
        ]

    async def fetch_objectifs(self, chapitre_id: int) -> list[dict[str, Any]]:
        """
        Retourne les objectifs d'un chapitre, triés par id.

        La requête elle-même est synchrone (session SQLAlchemy liée au contexte
        applicatif) ; la coroutine rend d'abord la main à la boucle pour que les
        autres sélections en attente puissent progresser avant le chargement.
        """
        await asyncio.sleep(0)
        try:
            objectifs = self.session.query(Objectif).filter_by(chapitre_id=chapitre_id).order_by(Objectif.id).all()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise FetchFailure("Impossible de charger les objectifs pour ce chapitre.") from e
        return [{"id": o.id, "text": o.description_objectif} for o in objectifs]

    def get_ancetres(self, chapitre_id: int) -> Selection | None:
        """Reconstitue la sélection Niveau > Option > Unité d'un chapitre."""
        chapitre = self.session.get(Chapitre, chapitre_id)
        if not chapitre:
            return None
        unite = chapitre.unite
        return Selection(
            niveau_id=unite.option.niveau_id,
            option_id=unite.option_id,
            unite_id=unite.id,
            chapitre_id=chapitre.id,
        )

    # --- Entités maîtresses ---

    def list_maitres(self, type_element: str, chapitre_id: int | None = None) -> list[dict[str, Any]]:
        """Liste les entités maîtresses d'un type, éventuellement filtrées par chapitre."""
        modele, colonne_titre, _, _ = _MAITRES[TypeElement(type_element)]
        requete = self.session.query(modele)
        if chapitre_id is not None:
            requete = requete.filter(modele.chapitre_id == chapitre_id)
        return [
            {"id": m.id, "titre": getattr(m, colonne_titre), "chapitre_id": m.chapitre_id}
            for m in requete.order_by(modele.id).all()
        ]

    def get_maitre(self, type_element: str, source_id: int) -> dict[str, Any] | None:
        modele, colonne_titre, _, _ = _MAITRES[TypeElement(type_element)]
        maitre = self.session.get(modele, source_id)
        if not maitre:
            return None
        return {"id": maitre.id, "titre": getattr(maitre, colonne_titre), "chapitre_id": maitre.chapitre_id}

    # --- Fiches ---

    def load(self, fiche_id: int) -> dict[str, Any] | None:
        """Charge une fiche, la sélection de son chapitre et ses éléments de progression."""
        fiche = self.session.get(Chapfiche, fiche_id)
        if not fiche:
            return None

        items: list[ProgressionItem] = []
        for type_element, (_, colonne_titre, _, cle_maitre) in _MAITRES.items():
            liaisons = {
                TypeElement.SEQUENCE: fiche.sequences,
                TypeElement.ACTIVITY: fiche.activites,
                TypeElement.EVALUATION: fiche.evaluations,
            }[type_element]
            for liaison in liaisons:
                maitre = getattr(liaison, cle_maitre.removesuffix("_id"))
                items.append(
                    ProgressionItem(
                        type=type_element,
                        titre=getattr(maitre, colonne_titre) if maitre else "",
                        source_id=getattr(liaison, cle_maitre),
                        id=f"{PREFIXES_ID[type_element]}-{liaison.id}",
                        ordre=liaison.ordre,
                    )
                )

        items.sort(key=lambda item: item.ordre)
        ancetres = self.get_ancetres(fiche.chapitre_id) or Selection(chapitre_id=fiche.chapitre_id)
        selection = Selection(
            niveau_id=ancetres.niveau_id,
            option_id=ancetres.option_id,
            unite_id=ancetres.unite_id,
            chapitre_id=ancetres.chapitre_id,
            objectif_ids=frozenset(o.id for o in fiche.objectifs),
        )
        return {
            "id": fiche.id,
            "nom_fiche": fiche.nom_fiche_planification,
            "statut": fiche.statut,
            "selection": selection,
            "items": items,
            "date_creation": fiche.date_creation,
            "updated_at": fiche.updated_at,
        }

    def persist(self, plan: dict[str, Any]) -> dict[str, Any]:
        """
        Enregistre une fiche et synchronise ses liaisons ordonnées dans une transaction.

        Les éléments dont l'identifiant désigne une liaison existante de la fiche
        sont mis à jour ; les autres sont insérés ; les liaisons absentes du plan
        sont supprimées.
        """
        selection: Selection = plan["selection"]
        if selection.chapitre_id is None:
            raise BusinessRuleValidationError("Veuillez sélectionner un chapitre de référence avant d'enregistrer.")
        items: list[ProgressionItem] = plan["items"]
        sans_source = [item.id for item in items if item.source_id is None]
        if sans_source:
            raise BusinessRuleValidationError(f"Élément(s) sans entité maîtresse : {', '.join(str(i) for i in sans_source)}.")

        try:
            fiche = self.session.get(Chapfiche, plan["id"]) if plan.get("id") else None
            if plan.get("id") and not fiche:
                raise BusinessRuleValidationError(f"La fiche {plan['id']} n'existe plus.")
            if fiche is None:
                fiche = Chapfiche()
                self.session.add(fiche)

            fiche.chapitre_id = selection.chapitre_id
            fiche.nom_fiche_planification = plan.get("nom_fiche") or ""
            fiche.statut = plan.get("statut") or "Brouillon"
            # Seuls les objectifs du chapitre de référence sont retenus.
            fiche.objectifs = (
                self.session.query(Objectif).filter(Objectif.id.in_(selection.objectif_ids), Objectif.chapitre_id == selection.chapitre_id).all()
                if selection.objectif_ids
                else []
            )
            self.session.flush()

            for type_element, (_, _, modele_liaison, cle_maitre) in _MAITRES.items():
                self._synchroniser_liaisons(modele_liaison, "fiche", fiche, type_element, cle_maitre, items)

            self.session.commit()
        except BusinessRuleValidationError:
            self.session.rollback()
            raise
        except IntegrityError as e:
            self.session.rollback()
            raise ServiceException(f"Erreur d'intégrité : une entité maîtresse ou le chapitre est-il invalide ? Détails: {e}")
        except SQLAlchemyError as e:
            self.session.rollback()
            raise ServiceException(f"Erreur de base de données lors de l'enregistrement de la fiche : {e}")

        return {"id": fiche.id, "date_creation": fiche.date_creation, "updated_at": fiche.updated_at}

    # --- Contenu d'une séquence ---

    def load_sequence(self, sequence_id: int) -> dict[str, Any] | None:
        """Charge une séquence et ses activités et évaluations ordonnées."""
        sequence = self.session.get(Sequence, sequence_id)
        if not sequence:
            return None

        items: list[ProgressionItem] = []
        liaisons_par_type = {TypeElement.ACTIVITY: sequence.activites, TypeElement.EVALUATION: sequence.evaluations}
        for type_element, (_, colonne_titre, _, cle_maitre) in _CONTENU_SEQUENCE.items():
            for liaison in liaisons_par_type[type_element]:
                maitre = getattr(liaison, cle_maitre.removesuffix("_id"))
                items.append(
                    ProgressionItem(
                        type=type_element,
                        titre=getattr(maitre, colonne_titre) if maitre else "",
                        source_id=getattr(liaison, cle_maitre),
                        id=f"{PREFIXES_ID[type_element]}-{liaison.id}",
                        ordre=liaison.ordre,
                    )
                )
        items.sort(key=lambda item: item.ordre)
        return {"id": sequence.id, "titre": sequence.titre_sequence, "items": items}

    def persist_sequence(self, sequence_id: int, items: list[ProgressionItem]) -> None:
        """Synchronise les liaisons ordonnées d'une séquence dans une transaction."""
        refuses = [item.id for item in items if item.type not in TYPES_CONTENU_SEQUENCE]
        if refuses:
            raise BusinessRuleValidationError(f"Une séquence ne contient que des activités et des évaluations : {', '.join(str(i) for i in refuses)}.")
        sans_source = [item.id for item in items if item.source_id is None]
        if sans_source:
            raise BusinessRuleValidationError(f"Élément(s) sans entité maîtresse : {', '.join(str(i) for i in sans_source)}.")

        try:
            sequence = self.session.get(Sequence, sequence_id)
            if not sequence:
                raise BusinessRuleValidationError(f"La séquence {sequence_id} n'existe plus.")
            for type_element, (_, _, modele_liaison, cle_maitre) in _CONTENU_SEQUENCE.items():
                self._synchroniser_liaisons(modele_liaison, "sequence", sequence, type_element, cle_maitre, items)
            self.session.commit()
        except BusinessRuleValidationError:
            self.session.rollback()
            raise
        except IntegrityError as e:
            self.session.rollback()
            raise ServiceException(f"Erreur d'intégrité : une activité ou une évaluation est-elle invalide ? Détails: {e}")
        except SQLAlchemyError as e:
            self.session.rollback()
            raise ServiceException(f"Erreur de base de données lors de l'enregistrement de la séquence : {e}")

    def _synchroniser_liaisons(
        self, modele_liaison: Any, relation: str, parent: Any, type_element: TypeElement, cle_maitre: str, items: list[ProgressionItem]
    ) -> None:
        # Les liaisons sont rattachées par la relation : le cascade delete-orphan refuse une liaison sans parent.
        existantes = {liaison.id: liaison for liaison in self.session.query(modele_liaison).filter_by(**{relation: parent}).all()}
        conservees: set[int] = set()

        for item in items:
            if item.type != type_element:
                continue
            liaison = existantes.get(_id_liaison(item))
            if liaison is None:
                liaison = modele_liaison(**{relation: parent})
                self.session.add(liaison)
            else:
                conservees.add(liaison.id)
            setattr(liaison, cle_maitre, item.source_id)
            liaison.ordre = item.ordre

        for liaison_id, liaison in existantes.items():
            if liaison_id not in conservees:
                self.session.delete(liaison)


def _id_liaison(item: ProgressionItem) -> int | None:
    """Extrait l'id de liaison d'un identifiant « seq-12 » ; None pour un élément nouveau."""
    prefixe, _, reste = (item.id or "").partition("-")
    if prefixe != PREFIXES_ID[item.type] or not reste.isdigit():
        return None
    return int(reste)
