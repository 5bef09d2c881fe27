"""
Forecast engine error taxonomy

Data problems subclass ValueError so callers that already guard
statistical code with ``except ValueError`` keep working.
"""


class ForecastEngineError(Exception):
    """Base exception for the production forecasting engine"""

    default_message = "An error occurred in the production forecasting engine"

    def __init__(self, message=None, code=None, details=None):
        self.message = message or self.default_message
        self.code = code
        self.details = details
        super().__init__(self.message)

    def __str__(self):
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message

    def to_dict(self):
        """Convert the exception to a dictionary"""
        error_dict = {
            'error': self.__class__.__name__,
            'message': self.message,
        }

        if self.code:
            error_dict['code'] = self.code

        if self.details:
            error_dict['details'] = self.details

        return error_dict


class InsufficientHistory(ForecastEngineError, ValueError):
    """Too few historical observations to estimate a demand rate.

    Callers should fall back to a category-level or storewide rate, or skip
    the SKU. Forecasting zero instead is never correct.
    """

    default_message = "Insufficient sales history"

    def __init__(self, message=None, code="insufficient_history", details=None):
        super().__init__(message, code, details)


class InvalidForecastInput(ForecastEngineError, ValueError):
    """Programming error: negative or non-finite rate, bad price/cost or service level"""

    default_message = "Invalid forecast input"

    def __init__(self, message=None, code="invalid_input", details=None):
        super().__init__(message, code, details)
