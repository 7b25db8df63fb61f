class RecipeBillingError(Exception):
    """Base class for failures raised by the service layer."""


class BillingNotConfiguredError(RecipeBillingError):
    pass


class BillingAPIError(RecipeBillingError):
    """The checkout provider rejected a request or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RecipeSourceError(RecipeBillingError):
    pass
