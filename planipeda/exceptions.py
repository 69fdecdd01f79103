# planipeda/exceptions.py
"""
Exceptions personnalisées de la couche de service.

Elles sont définies dans un module séparé pour que le dépôt d'accès aux
données (depot.py) et les services (services.py) puissent les partager sans
importation circulaire. services.py les réexporte.
"""


class ServiceException(Exception):
    """Exception de base pour les erreurs de la couche de service."""

    def __init__(self, message="Une erreur est survenue."):
        self.message = message
        super().__init__(self.message)


class EntityNotFoundError(ServiceException):
    """Levée lorsqu'une entité n'est pas trouvée."""

    def __init__(self, message="L'entité n'a pas été trouvée."):
        super().__init__(message)


class BusinessRuleValidationError(ServiceException):
    """Levée lorsqu'une règle métier est violée."""

    def __init__(self, message="Opération non autorisée par les règles de gestion."):
        super().__init__(message)
