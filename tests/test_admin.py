# tests/test_admin.py
"""
Tests pour le blueprint 'admin' : importation de chapitres dans une unité.
"""

import io

import openpyxl

from planipeda.models import Chapitre


def _classeur(*titres):
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.append(["Chapitre"])
    for titre in titres:
        sheet.append([titre])
    output = io.BytesIO()
    workbook.save(output)
    output.seek(0)
    return output


def _url(unite_id):
    return f"/admin/api/unites/{unite_id}/importer_chapitres"


def test_importer_chapitres_xlsx(client, db, sample_data):
    unite_id = sample_data["poesie"].id
    data = {"fichier_chapitres": (_classeur("L'ode", "Le sonnet", "La ballade"), "chapitres.xlsx")}

    response = client.post(_url(unite_id), data=data, content_type="multipart/form-data")
    json_data = response.get_json()

    assert response.status_code == 201, f"Response data: {json_data}"
    assert json_data["imported_count"] == 2
    assert json_data["skipped_count"] == 1
    titres = {c.titre_chapitre for c in db.session.query(Chapitre).filter_by(unite_id=unite_id)}
    assert titres == {"Le sonnet", "L'ode", "La ballade"}


def test_importer_chapitres_txt(client, sample_data):
    data = {"fichier_chapitres": (io.BytesIO("Énergie\nPuissance\n".encode("utf-8")), "chapitres.txt")}

    response = client.post(_url(sample_data["mecanique"].id), data=data, content_type="multipart/form-data")

    assert response.status_code == 201
    assert response.get_json()["imported_count"] == 2


def test_importer_chapitres_sans_fichier(client, sample_data):
    response = client.post(_url(sample_data["poesie"].id), data={}, content_type="multipart/form-data")
    assert response.status_code == 400
    assert response.get_json()["success"] is False


def test_importer_chapitres_mauvaise_extension(client, sample_data):
    data = {"fichier_chapitres": (io.BytesIO(b"a,b"), "chapitres.csv")}
    response = client.post(_url(sample_data["poesie"].id), data=data, content_type="multipart/form-data")
    assert response.status_code == 400


def test_importer_chapitres_classeur_corrompu(client, sample_data):
    data = {"fichier_chapitres": (io.BytesIO(b"pas un zip"), "chapitres.xlsx")}
    response = client.post(_url(sample_data["poesie"].id), data=data, content_type="multipart/form-data")
    assert response.status_code == 400
    assert "corrompu" in response.get_json()["message"]


def test_importer_chapitres_unite_inconnue(client, app):
    data = {"fichier_chapitres": (io.BytesIO(b"Chapitre"), "chapitres.txt")}
    response = client.post(_url(9999), data=data, content_type="multipart/form-data")
    assert response.status_code == 404
