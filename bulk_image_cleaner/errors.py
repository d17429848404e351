from __future__ import annotations


class ApiProblem(Exception):
    """An expected request failure answered as {"message": ...} with a fixed status."""

    status_code = 400
    default_message = "Bad request"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidJson(ApiProblem):
    status_code = 400
    default_message = "Invalid JSON"


class PayloadTooLarge(ApiProblem):
    status_code = 413
    default_message = "Payload too large"


class NotAuthenticated(ApiProblem):
    status_code = 401
    default_message = "Not authenticated"


class SiteNotAuthorized(ApiProblem):
    status_code = 403
    default_message = "Site not authorized"
