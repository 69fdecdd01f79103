# tests/test_hierarchie.py
"""
Tests unitaires du sélecteur hiérarchique, avec une source de données factice.
"""

import asyncio

import pytest

from planipeda.hierarchie import FetchFailure, HierarchySelector, Selection, StatutChargement

ARBRE = {
    "niveau": [
        {"id": 1, "name": "Seconde", "parent_id": None},
        {"id": 2, "name": "Première", "parent_id": None},
    ],
    "option": [
        {"id": 10, "name": "Sciences", "parent_id": 1},
        {"id": 20, "name": "Lettres", "parent_id": 2},
    ],
    "unite": [
        {"id": 100, "name": "Mécanique", "parent_id": 10},
        {"id": 200, "name": "Poésie", "parent_id": 20},
    ],
    "chapitre": [
        {"id": 1000, "name": "Le mouvement", "parent_id": 100},
        {"id": 1001, "name": "Les forces", "parent_id": 100},
        {"id": 2000, "name": "Le sonnet", "parent_id": 200},
    ],
}

OBJECTIFS = {
    1000: [{"id": 5, "text": "Décrire"}, {"id": 6, "text": "Calculer"}],
    1001: [{"id": 7, "text": "Modéliser"}],
    2000: [],
}


class SourceFactice:
    """Source en mémoire qui compte les appels et peut échouer ou bloquer sur demande."""

    def __init__(self):
        self.appels_enfants = []
        self.appels_objectifs = []
        self.echecs = set()
        self.verrous = {}

    def fetch_children(self, rang, parent_id):
        self.appels_enfants.append((rang, parent_id))
        if rang in self.echecs:
            raise FetchFailure(f"Panne sur {rang}")
        # Le filtrage par parent est laissé au sélecteur.
        return list(ARBRE[rang])

    async def fetch_objectifs(self, chapitre_id):
        self.appels_objectifs.append(chapitre_id)
        if chapitre_id in self.verrous:
            await self.verrous[chapitre_id].wait()
        if "objectifs" in self.echecs:
            raise FetchFailure("Panne sur les objectifs")
        return list(OBJECTIFS[chapitre_id])


@pytest.fixture
def source():
    return SourceFactice()


@pytest.fixture
def selecteur(source):
    selecteur = HierarchySelector(source)
    selecteur.load_niveaux()
    return selecteur


def _aller_jusqu_au_chapitre(selecteur, chapitre_id=1000):
    selecteur.select_niveau(1)
    selecteur.select_option(10)
    selecteur.select_unite(100)
    asyncio.run(selecteur.select_chapitre(chapitre_id))


def test_candidats_filtres_par_parent(selecteur):
    selecteur.select_niveau(1)
    assert [o["id"] for o in selecteur.options.elements] == [10]

    selecteur.select_option(10)
    selecteur.select_unite(100)
    assert [c["id"] for c in selecteur.chapitres.elements] == [1000, 1001]


def test_invalidation_totale_des_descendants(selecteur):
    """select_niveau(L1), select_option(T1), puis select_niveau(L2) vide tous les rangs inférieurs."""
    _aller_jusqu_au_chapitre(selecteur)
    selecteur.toggle_objectif(5)

    selecteur.select_niveau(2)

    assert selecteur.option_id is None
    assert selecteur.unite_id is None
    assert selecteur.chapitre_id is None
    assert selecteur.objectif_ids == set()
    assert selecteur.unites.elements == []
    assert selecteur.chapitres.elements == []
    assert selecteur.objectifs.elements == []
    assert [o["id"] for o in selecteur.options.elements] == [20]


def test_reselectionner_le_meme_niveau_invalide_aussi(selecteur):
    selecteur.select_niveau(1)
    selecteur.select_option(10)
    selecteur.select_niveau(1)
    assert selecteur.option_id is None


def test_toggle_objectif_idempotent(selecteur):
    _aller_jusqu_au_chapitre(selecteur)
    selecteur.toggle_objectif(6)
    avant = set(selecteur.objectif_ids)

    selecteur.toggle_objectif(5)
    selecteur.toggle_objectif(5)

    assert selecteur.objectif_ids == avant


def test_toggle_sans_chapitre_sans_effet(selecteur):
    selecteur.select_niveau(1)
    selecteur.toggle_objectif(5)
    assert selecteur.objectif_ids == set()


def test_changer_de_chapitre_vide_les_objectifs(selecteur):
    _aller_jusqu_au_chapitre(selecteur)
    selecteur.toggle_objectif(5)

    asyncio.run(selecteur.select_chapitre(1001))

    assert selecteur.objectif_ids == set()
    assert [o["id"] for o in selecteur.objectifs.elements] == [7]


def test_cache_des_objectifs(selecteur, source):
    """Revenir sur un chapitre déjà chargé ne déclenche pas de nouvel appel."""
    _aller_jusqu_au_chapitre(selecteur, 1000)
    asyncio.run(selecteur.select_chapitre(1001))
    asyncio.run(selecteur.select_chapitre(1000))

    assert source.appels_objectifs == [1000, 1001]
    assert selecteur.objectifs.statut == StatutChargement.SUCCESS
    assert [o["id"] for o in selecteur.objectifs.elements] == [5, 6]


def test_reponse_perimee_ignoree(selecteur, source):
    """C1 en cours, puis C2 ; la réponse tardive de C1 n'écrase pas la liste de C2."""
    selecteur.select_niveau(1)
    selecteur.select_option(10)
    selecteur.select_unite(100)

    async def scenario():
        source.verrous[1000] = asyncio.Event()
        tache_c1 = asyncio.create_task(selecteur.select_chapitre(1000))
        await asyncio.sleep(0)
        assert selecteur.objectifs.statut == StatutChargement.LOADING

        await selecteur.select_chapitre(1001)
        assert [o["id"] for o in selecteur.objectifs.elements] == [7]

        source.verrous[1000].set()
        await tache_c1

    asyncio.run(scenario())

    assert selecteur.chapitre_id == 1001
    assert selecteur.objectifs.statut == StatutChargement.SUCCESS
    assert [o["id"] for o in selecteur.objectifs.elements] == [7]


def test_reponse_perimee_pendant_un_autre_chargement(selecteur, source):
    """La liste reste à l'état de chargement de C2 quand C1 répond en premier."""
    selecteur.select_niveau(1)
    selecteur.select_option(10)
    selecteur.select_unite(100)

    async def scenario():
        source.verrous[1000] = asyncio.Event()
        source.verrous[1001] = asyncio.Event()
        tache_c1 = asyncio.create_task(selecteur.select_chapitre(1000))
        await asyncio.sleep(0)
        tache_c2 = asyncio.create_task(selecteur.select_chapitre(1001))
        await asyncio.sleep(0)

        source.verrous[1000].set()
        await tache_c1
        assert selecteur.objectifs.statut == StatutChargement.LOADING
        assert selecteur.objectifs.elements == []

        source.verrous[1001].set()
        await tache_c2

    asyncio.run(scenario())
    assert [o["id"] for o in selecteur.objectifs.elements] == [7]


def test_echec_limite_a_une_liste(selecteur, source):
    selecteur.select_niveau(1)
    source.echecs.add("unite")

    selecteur.select_option(10)

    assert selecteur.unites.statut == StatutChargement.ERROR
    assert "Panne" in selecteur.unites.message
    # Les listes voisines sont conservées.
    assert [o["id"] for o in selecteur.options.elements] == [10]
    assert selecteur.option_id == 10

    # Nouvel essai : la même opération est relancée.
    source.echecs.clear()
    selecteur.select_option(10)
    assert selecteur.unites.statut == StatutChargement.SUCCESS


def test_echec_des_objectifs(selecteur, source):
    source.echecs.add("objectifs")
    _aller_jusqu_au_chapitre(selecteur)

    assert selecteur.objectifs.statut == StatutChargement.ERROR
    assert selecteur.chapitre_id == 1000
    assert [c["id"] for c in selecteur.chapitres.elements] == [1000, 1001]


def test_notifications_dedoublonnees(selecteur):
    emis = []
    selecteur.subscribe(emis.append)

    selecteur.select_niveau(1)
    selecteur.select_niveau(1)
    selecteur.toggle_objectif(5)

    assert emis == [Selection(niveau_id=1)]


def test_desabonnement(selecteur):
    emis = []
    unsubscribe = selecteur.subscribe(emis.append)
    unsubscribe()
    selecteur.select_niveau(1)
    assert emis == []


def test_restore_complet(selecteur):
    selection = Selection(niveau_id=1, option_id=10, unite_id=100, chapitre_id=1000, objectif_ids=frozenset({5, 99}))

    resultat = asyncio.run(selecteur.restore(selection))

    assert resultat == Selection(1, 10, 100, 1000, frozenset({5}))
    assert selecteur.objectifs.statut == StatutChargement.SUCCESS


def test_restore_tronque_au_premier_identifiant_invalide(selecteur):
    """L'unité 200 n'appartient pas à l'option 10 : unité et chapitre sont abandonnés."""
    selection = Selection(niveau_id=1, option_id=10, unite_id=200, chapitre_id=2000)

    resultat = asyncio.run(selecteur.restore(selection))

    assert resultat == Selection(niveau_id=1, option_id=10)
    assert [u["id"] for u in selecteur.unites.elements] == [100]


def test_restore_silencieux(selecteur):
    emis = []
    selecteur.subscribe(emis.append)

    asyncio.run(selecteur.restore(Selection(niveau_id=1, option_id=10)))
    assert emis == []

    # La sélection restaurée sert de référence : la même sélection n'est pas réémise.
    selecteur.select_option(10)
    assert emis == []

    selecteur.select_unite(100)
    assert emis == [Selection(niveau_id=1, option_id=10, unite_id=100)]


def test_restore_conserve_les_objectifs_si_chargement_impossible(selecteur, source):
    source.echecs.add("objectifs")
    selection = Selection(1, 10, 100, 1000, frozenset({5, 6}))

    resultat = asyncio.run(selecteur.restore(selection))

    assert resultat.objectif_ids == frozenset({5, 6})
