# planipeda/exports.py
"""
Ce module contient la génération du fichier Excel d'une fiche de planification.

Il est indépendant de Flask et se concentre uniquement sur la création d'un
document Excel formaté à partir des données fournies par
services.get_fiche_export_data_service.
"""

import io
from typing import Any, cast

import openpyxl
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

LIBELLES_TYPE = {
    "sequence": "Séquence",
    "activity": "Activité",
    "evaluation": "Évaluation",
}


def _apply_border_to_range(sheet: Worksheet, start_row: int, end_row: int, start_col: int, end_col: int) -> None:
    """Applique une bordure fine autour de chaque cellule d'une plage."""
    thin_border_side = Side(style="thin")
    box_border = Border(
        left=thin_border_side,
        right=thin_border_side,
        top=thin_border_side,
        bottom=thin_border_side,
    )

    for row_iter in sheet.iter_rows(min_row=start_row, max_row=end_row, min_col=start_col, max_col=end_col):
        for cell in row_iter:
            cell.border = box_border


def generer_export_fiche(donnees: dict[str, Any]) -> io.BytesIO:
    """
    Génère le fichier Excel d'une fiche : un en-tête avec la hiérarchie et les
    objectifs retenus, puis une ligne par élément de progression dans l'ordre.

    Returns:
        Un objet io.BytesIO contenant le fichier Excel (.xlsx) en mémoire.
    """
    workbook = openpyxl.Workbook()
    sheet = cast(Worksheet, workbook.active)
    titre_feuille = "".join(c for c in donnees["chapitre"] if c.isalnum() or c in " -_").strip()[:31]
    sheet.title = titre_feuille or "Fiche"

    label_font = Font(bold=True, name="Calibri", size=11)
    header_font = Font(bold=True, color="FFFFFF", name="Calibri", size=11)
    header_fill = PatternFill("solid", fgColor="4F81BD")
    header_align = Alignment(horizontal="center", vertical="center")
    cell_font = Font(name="Calibri", size=11)
    left_align = Alignment(horizontal="left", vertical="center", wrap_text=True)
    center_align = Alignment(horizontal="center", vertical="center")

    sheet.cell(row=1, column=1, value=donnees["nom_fiche"] or f"Fiche {donnees['fiche_id']}").font = Font(bold=True, name="Calibri", size=14)

    entete = [
        ("Niveau", donnees["niveau"]),
        ("Option", donnees["option"]),
        ("Unité", donnees["unite"]),
        ("Chapitre", donnees["chapitre"]),
        ("Statut", donnees["statut"]),
    ]
    current_row_num = 3
    for libelle, valeur in entete:
        sheet.cell(row=current_row_num, column=1, value=libelle).font = label_font
        cell = sheet.cell(row=current_row_num, column=2, value=valeur)
        cell.font = cell_font
        cell.alignment = left_align
        current_row_num += 1

    if donnees["objectifs"]:
        current_row_num += 1
        sheet.cell(row=current_row_num, column=1, value="Objectifs").font = label_font
        for objectif in donnees["objectifs"]:
            cell = sheet.cell(row=current_row_num, column=2, value=objectif)
            cell.font = cell_font
            cell.alignment = left_align
            current_row_num += 1

    current_row_num += 1
    headers = ["Ordre", "Type", "Titre"]
    for col_idx, header_text in enumerate(headers, start=1):
        cell = sheet.cell(row=current_row_num, column=col_idx, value=header_text)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = header_align
    table_start_row = current_row_num
    current_row_num += 1

    for item in donnees["items"]:
        valeurs = [item["ordre"], LIBELLES_TYPE.get(item["type"], item["type"]), item["titre"]]
        for col_idx, valeur in enumerate(valeurs, start=1):
            cell = sheet.cell(row=current_row_num, column=col_idx, value=valeur)
            cell.font = cell_font
            cell.alignment = center_align if col_idx == 1 else left_align
        current_row_num += 1

    _apply_border_to_range(sheet, table_start_row, current_row_num - 1, 1, len(headers))

    for col_idx, largeur in enumerate([12, 16, 60], start=1):
        sheet.column_dimensions[get_column_letter(col_idx)].width = largeur

    output = io.BytesIO()
    workbook.save(output)
    output.seek(0)
    return output
