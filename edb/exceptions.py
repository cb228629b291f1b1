"""
Exceptions métier levées par les services.

Les handlers globaux enregistrés dans ``edb.main`` les convertissent en
réponses HTTP ; les services n'importent jamais ``HTTPException``.
"""


class AppError(Exception):
    status_code = 500
    default_detail = "Erreur interne du serveur"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class BadRequestError(AppError):
    status_code = 400
    default_detail = "Requête invalide"


class UnauthorizedError(AppError):
    status_code = 401
    default_detail = "Non authentifié"


class ForbiddenError(AppError):
    status_code = 403
    default_detail = "Accès interdit"


class NotFoundError(AppError):
    status_code = 404
    default_detail = "Ressource introuvable"


class ConflictError(AppError):
    status_code = 409
    default_detail = "Conflit"
