# tests/test_planification.py
"""
Tests unitaires du conteneur d'édition de fiche, avec un dépôt factice.
"""

import asyncio

import pytest

from planipeda.exceptions import BusinessRuleValidationError, EntityNotFoundError, ServiceException
from planipeda.hierarchie import Selection
from planipeda.planification import EditeurPlanification, normaliser_statut
from planipeda.progression import ProgressionItem


class DepotFactice:
    """Dépôt en mémoire : une seule branche de hiérarchie et deux séquences maîtresses."""

    def __init__(self):
        self.fiches = {}
        self.echec_persist = None
        self._prochain_id = 1

    def fetch_children(self, rang, parent_id):
        return {
            "niveau": [{"id": 1, "name": "Seconde", "parent_id": None}],
            "option": [{"id": 10, "name": "Sciences", "parent_id": 1}],
            "unite": [{"id": 100, "name": "Mécanique", "parent_id": 10}],
            "chapitre": [{"id": 1000, "name": "Le mouvement", "parent_id": 100}],
        }[rang]

    async def fetch_objectifs(self, chapitre_id):
        return [{"id": 5, "text": "Décrire"}]

    def get_maitre(self, type_element, source_id):
        maitres = {("sequence", 1): "Introduction", ("sequence", 2): "Référentiels"}
        titre = maitres.get((type_element, source_id))
        return {"id": source_id, "titre": titre, "chapitre_id": 1000} if titre else None

    def persist(self, plan):
        if self.echec_persist:
            raise self.echec_persist
        fiche_id = plan["id"] or self._prochain_id
        self._prochain_id += 1
        # Le stockage attribue des identifiants définitifs, comme les liaisons en base.
        items = [
            ProgressionItem(type=item.type, titre=item.titre, source_id=item.source_id, id=f"seq-{fiche_id}{n}", ordre=item.ordre)
            for n, item in enumerate(plan["items"])
        ]
        self.fiches[fiche_id] = {
            "id": fiche_id,
            "nom_fiche": plan["nom_fiche"],
            "statut": plan["statut"],
            "selection": plan["selection"],
            "items": items,
        }
        return {"id": fiche_id}

    def load(self, fiche_id):
        return self.fiches.get(fiche_id)


SELECTION = Selection(niveau_id=1, option_id=10, unite_id=100, chapitre_id=1000, objectif_ids=frozenset({5}))


@pytest.fixture
def depot():
    return DepotFactice()


@pytest.fixture
def editeur(depot):
    editeur = EditeurPlanification(depot)
    asyncio.run(editeur.nouvelle(SELECTION, "Fiche mouvement"))
    return editeur


def test_nouvelle_fiche(editeur):
    assert editeur.fiche_id is None
    assert editeur.modifie is True
    assert editeur.statut == "Brouillon"
    assert editeur.selecteur.selection == SELECTION


def test_ajouter_element_selectionne_l_element(editeur):
    item = editeur.ajouter_element("sequence", 2)

    assert item.titre == "Référentiels"
    assert editeur.progression.selected_id == item.id


def test_ajouter_element_maitre_inconnu(editeur):
    with pytest.raises(EntityNotFoundError):
        editeur.ajouter_element("sequence", 42)
    assert len(editeur.progression) == 0


def test_sauvegarder_attribue_les_identifiants(editeur):
    editeur.ajouter_element("sequence", 1)
    editeur.ajouter_element("sequence", 2)

    resultat = editeur.sauvegarder()

    assert resultat.succes is True
    assert editeur.fiche_id == 1
    assert editeur.modifie is False
    assert [item.id for item in editeur.progression] == ["seq-10", "seq-11"]
    # La sélection suit l'élément par sa position.
    assert editeur.progression.selected_id == "seq-11"


def test_modification_apres_sauvegarde(editeur):
    editeur.ajouter_element("sequence", 1)
    editeur.ajouter_element("sequence", 2)
    editeur.sauvegarder()

    editeur.progression.move_up("seq-11")

    assert editeur.modifie is True


def test_sauvegarder_echec_retourne_le_message(editeur, depot):
    depot.echec_persist = ServiceException("Base indisponible")
    editeur.ajouter_element("sequence", 1)

    resultat = editeur.sauvegarder()

    assert resultat.succes is False
    assert resultat.message == "Base indisponible"
    assert editeur.modifie is True
    assert len(editeur.progression) == 1


def test_charger_fiche_inconnue(depot):
    editeur = EditeurPlanification(depot)
    with pytest.raises(EntityNotFoundError):
        asyncio.run(editeur.charger(99))


def test_charger_fiche_existante(editeur, depot):
    editeur.ajouter_element("sequence", 1)
    editeur.sauvegarder()

    autre = EditeurPlanification(depot)
    asyncio.run(autre.charger(1))

    assert autre.nom_fiche == "Fiche mouvement"
    assert autre.modifie is False
    assert autre.selecteur.selection == SELECTION
    assert [item.titre for item in autre.progression] == ["Introduction"]


def test_definir_infos(editeur):
    editeur.definir_infos(nom_fiche="  Nouveau nom ", statut="Publié")
    assert editeur.nom_fiche == "Nouveau nom"
    assert editeur.statut == "Publié"


def test_definir_infos_statut_inconnu(editeur):
    with pytest.raises(BusinessRuleValidationError):
        editeur.definir_infos(statut="Validé")
    assert editeur.statut == "Brouillon"


def test_normaliser_statut():
    assert normaliser_statut("Archivé") == "Archivé"
    assert normaliser_statut(None) == "Brouillon"
    assert normaliser_statut("inconnu") == "Brouillon"


def test_etat_serialisable(editeur):
    editeur.ajouter_element("sequence", 1)
    etat = editeur.etat()

    assert etat["hierarchie"]["selection"]["chapitre_id"] == 1000
    assert etat["progression"][0]["ordre"] == 1
    assert etat["selected_id"] == etat["progression"][0]["id"]
