"""Error taxonomy shared by the service layer and the HTTP app."""


class EscolaFlowError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFound(EscolaFlowError):
    status_code = 404
    code = "not_found"


class ValidationError(EscolaFlowError):
    status_code = 400
    code = "validation_error"


class Unauthorized(EscolaFlowError):
    status_code = 403
    code = "unauthorized"


class InvalidTransition(EscolaFlowError):
    status_code = 409
    code = "invalid_transition"


class CollaboratorUnavailable(EscolaFlowError):
    status_code = 503
    code = "collaborator_unavailable"
