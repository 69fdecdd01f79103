# planipeda/models.py
"""
Ce module définit les modèles de données de l'application en utilisant SQLAlchemy ORM.

On y trouve quatre familles de tables :
- la hiérarchie du programme (Niveau > Option > Unité > Chapitre > Objectifs) ;
- les entités maîtresses réutilisables (séquences, activités, évaluations) ;
- les fiches de planification de chapitre et leurs liaisons ordonnées vers
  les entités maîtresses ;
- le contenu ordonné d'une séquence (activités et évaluations).
"""

from .extensions import db


class Niveau(db.Model):
    """Niveau scolaire, racine de la hiérarchie."""

    __tablename__ = "niveaux"
    id = db.Column(db.Integer, primary_key=True)
    nom_niveau = db.Column(db.Text, nullable=False)

    options = db.relationship("Option", back_populates="niveau", cascade="all, delete-orphan")


class Option(db.Model):
    """Option (filière) rattachée à un niveau."""

    __tablename__ = "options"
    id = db.Column(db.Integer, primary_key=True)
    nom_option = db.Column(db.Text, nullable=False)
    niveau_id = db.Column(db.Integer, db.ForeignKey("niveaux.id", ondelete="CASCADE"), nullable=False)

    niveau = db.relationship("Niveau", back_populates="options")
    unites = db.relationship("Unite", back_populates="option", cascade="all, delete-orphan")


class Unite(db.Model):
    """Unité d'enseignement rattachée à une option."""

    __tablename__ = "unites"
    id = db.Column(db.Integer, primary_key=True)
    titre_unite = db.Column(db.Text, nullable=False)
    option_id = db.Column(db.Integer, db.ForeignKey("options.id", ondelete="CASCADE"), nullable=False)

    option = db.relationship("Option", back_populates="unites")
    chapitres = db.relationship("Chapitre", back_populates="unite", cascade="all, delete-orphan")


class Chapitre(db.Model):
    """Chapitre de référence rattaché à une unité."""

    __tablename__ = "chapitres"
    id = db.Column(db.Integer, primary_key=True)
    titre_chapitre = db.Column(db.Text, nullable=False)
    unite_id = db.Column(db.Integer, db.ForeignKey("unites.id", ondelete="CASCADE"), nullable=False)

    unite = db.relationship("Unite", back_populates="chapitres")
    objectifs = db.relationship("Objectif", back_populates="chapitre", cascade="all, delete-orphan", order_by="Objectif.id")
    fiches = db.relationship("Chapfiche", back_populates="chapitre", cascade="all, delete-orphan")


class Objectif(db.Model):
    """Objectif pédagogique, feuille de la hiérarchie."""

    __tablename__ = "objectifs"
    id = db.Column(db.Integer, primary_key=True)
    chapitre_id = db.Column(db.Integer, db.ForeignKey("chapitres.id", ondelete="CASCADE"), nullable=False)
    description_objectif = db.Column(db.Text, nullable=False)

    chapitre = db.relationship("Chapitre", back_populates="objectifs")


# --- Entités maîtresses ---


class Sequence(db.Model):
    """Séquence maîtresse, réutilisable dans plusieurs fiches."""

    __tablename__ = "sequences"
    id = db.Column(db.Integer, primary_key=True)
    titre_sequence = db.Column(db.Text, nullable=False)
    description = db.Column(db.Text)
    chapitre_id = db.Column(db.Integer, db.ForeignKey("chapitres.id", ondelete="SET NULL"))

    activites = db.relationship("SequenceActivite", back_populates="sequence", cascade="all, delete-orphan")
    evaluations = db.relationship("SequenceEvaluation", back_populates="sequence", cascade="all, delete-orphan")


class Activite(db.Model):
    """Activité maîtresse."""

    __tablename__ = "activites"
    id = db.Column(db.Integer, primary_key=True)
    titre_activite = db.Column(db.Text, nullable=False)
    description = db.Column(db.Text)
    chapitre_id = db.Column(db.Integer, db.ForeignKey("chapitres.id", ondelete="SET NULL"))


class Evaluation(db.Model):
    """Évaluation maîtresse (diagnostique, formative ou sommative)."""

    __tablename__ = "evaluations"
    id = db.Column(db.Integer, primary_key=True)
    titre_evaluation = db.Column(db.Text, nullable=False)
    type_evaluation = db.Column(db.Text)
    chapitre_id = db.Column(db.Integer, db.ForeignKey("chapitres.id", ondelete="SET NULL"))


# --- Fiches de planification ---


class ChapficheObjectif(db.Model):
    """Table d'association des objectifs retenus par une fiche."""

    __tablename__ = "chapfiche_objectifs"
    chapfiche_id = db.Column(db.Integer, db.ForeignKey("chapfiches.id", ondelete="CASCADE"), primary_key=True)
    objectif_id = db.Column(db.Integer, db.ForeignKey("objectifs.id", ondelete="CASCADE"), primary_key=True)


class Chapfiche(db.Model):
    """Fiche de planification d'un chapitre."""

    __tablename__ = "chapfiches"
    id = db.Column(db.Integer, primary_key=True)
    chapitre_id = db.Column(db.Integer, db.ForeignKey("chapitres.id", ondelete="CASCADE"), nullable=False)
    nom_fiche_planification = db.Column(db.Text, nullable=False, default="")
    statut = db.Column(db.Text, nullable=False, default="Brouillon")
    date_creation = db.Column(db.DateTime, nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    chapitre = db.relationship("Chapitre", back_populates="fiches")
    objectifs = db.relationship("Objectif", secondary="chapfiche_objectifs", order_by="Objectif.id")
    sequences = db.relationship("ChapficheSequence", back_populates="fiche", cascade="all, delete-orphan")
    activites = db.relationship("ChapficheActivite", back_populates="fiche", cascade="all, delete-orphan")
    evaluations = db.relationship("ChapficheEvaluation", back_populates="fiche", cascade="all, delete-orphan")


class ChapficheSequence(db.Model):
    """Liaison ordonnée entre une fiche et une séquence maîtresse."""

    __tablename__ = "chapfiche_sequences"
    id = db.Column(db.Integer, primary_key=True)
    chapfiche_id = db.Column(db.Integer, db.ForeignKey("chapfiches.id", ondelete="CASCADE"), nullable=False)
    sequence_id = db.Column(db.Integer, db.ForeignKey("sequences.id", ondelete="CASCADE"), nullable=False)
    ordre = db.Column(db.Integer, nullable=False)

    fiche = db.relationship("Chapfiche", back_populates="sequences")
    sequence = db.relationship("Sequence")


class ChapficheActivite(db.Model):
    """Liaison ordonnée entre une fiche et une activité maîtresse."""

    __tablename__ = "chapfiche_activites"
    id = db.Column(db.Integer, primary_key=True)
    chapfiche_id = db.Column(db.Integer, db.ForeignKey("chapfiches.id", ondelete="CASCADE"), nullable=False)
    activite_id = db.Column(db.Integer, db.ForeignKey("activites.id", ondelete="CASCADE"), nullable=False)
    ordre = db.Column(db.Integer, nullable=False)

    fiche = db.relationship("Chapfiche", back_populates="activites")
    activite = db.relationship("Activite")


class ChapficheEvaluation(db.Model):
    """Liaison ordonnée entre une fiche et une évaluation maîtresse."""

    __tablename__ = "chapfiche_evaluations"
    id = db.Column(db.Integer, primary_key=True)
    chapfiche_id = db.Column(db.Integer, db.ForeignKey("chapfiches.id", ondelete="CASCADE"), nullable=False)
    evaluation_id = db.Column(db.Integer, db.ForeignKey("evaluations.id", ondelete="CASCADE"), nullable=False)
    ordre = db.Column(db.Integer, nullable=False)

    fiche = db.relationship("Chapfiche", back_populates="evaluations")
    evaluation = db.relationship("Evaluation")


# --- Contenu ordonné d'une séquence ---


class SequenceActivite(db.Model):
    """Liaison ordonnée entre une séquence maîtresse et une activité."""

    __tablename__ = "sequence_activite"
    id = db.Column(db.Integer, primary_key=True)
    sequence_id = db.Column(db.Integer, db.ForeignKey("sequences.id", ondelete="CASCADE"), nullable=False)
    activite_id = db.Column(db.Integer, db.ForeignKey("activites.id", ondelete="CASCADE"), nullable=False)
    ordre = db.Column(db.Integer, nullable=False)

    sequence = db.relationship("Sequence", back_populates="activites")
    activite = db.relationship("Activite")


class SequenceEvaluation(db.Model):
    """Liaison ordonnée entre une séquence maîtresse et une évaluation."""

    __tablename__ = "sequence_evaluation"
    id = db.Column(db.Integer, primary_key=True)
    sequence_id = db.Column(db.Integer, db.ForeignKey("sequences.id", ondelete="CASCADE"), nullable=False)
    evaluation_id = db.Column(db.Integer, db.ForeignKey("evaluations.id", ondelete="CASCADE"), nullable=False)
    ordre = db.Column(db.Integer, nullable=False)

    sequence = db.relationship("Sequence", back_populates="evaluations")
    evaluation = db.relationship("Evaluation")
