# app/core/errors.py

class LightningAppError(Exception):
    """Base de los errores que la API devuelve como respuesta estructurada."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def code(self) -> str:
        return type(self).__name__


class NotFound(LightningAppError):
    status_code = 404


class InvalidInput(LightningAppError):
    status_code = 400


class InvoiceExpired(LightningAppError):
    status_code = 400


class NodeUnavailable(LightningAppError):
    """Fallo de transporte o autenticación hablando con el nodo.

    No confundir con un pago fallido: eso es un resultado registrado, no un error.
    """

    status_code = 503
