"""Error taxonomy for the payment engine.

Every error carries a stable ``code`` (used by the HTTP layer and the
admin UI), a user-facing ``message`` in pt-PT and a technical ``detail``.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for engine errors."""

    code = "ledger_error"
    default_message = "Ocorreu um erro inesperado."

    def __init__(self, detail: str = "", *, message: str | None = None):
        self.detail = detail
        self.message = message or self.default_message
        super().__init__(detail or self.message)


class MissingPriceError(LedgerError):
    """Room has no usable monthly price."""

    code = "missing_price"
    default_message = "Preço mensal não definido para este quarto."


class InvalidStateTransition(LedgerError):
    """Payment status change is not allowed from the current state."""

    code = "invalid_state_transition"
    default_message = "Esta operação não é permitida no estado atual do pagamento."

    def __init__(self, from_status: str, action: str, *, detail: str = ""):
        self.from_status = from_status
        self.action = action
        super().__init__(
            detail or f"Cannot {action} a payment in status '{from_status}'"
        )


class NotFoundError(LedgerError):
    """Referenced booking, room, payment or deposit does not exist."""

    code = "not_found"

    _MESSAGES = {
        "booking": "Reserva não encontrada.",
        "room": "Quarto não encontrado.",
        "payment": "Pagamento não encontrado.",
        "deposit": "Caução não encontrada para esta reserva.",
    }

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            f"{entity} not found: {entity_id}",
            message=self._MESSAGES.get(entity, "Registo não encontrado."),
        )


class PersistenceError(LedgerError):
    """The underlying store call failed."""

    code = "persistence_error"
    default_message = "Não foi possível gravar os dados. Tente novamente."


class InvalidInputError(LedgerError):
    """Request values are outside what the engine accepts."""

    code = "invalid_input"
    default_message = "Dados inválidos."
