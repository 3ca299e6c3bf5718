"""Registration failures that cross module boundaries."""


class RegistrationError(Exception):
    """Base for registration-flow errors."""


class ProviderError(RegistrationError):
    """Inference, geocoding or store call failed; retry on the next message."""


class InvariantViolation(RegistrationError):
    """Stored data breaks a registration invariant. Abort the turn untouched."""


class StaleStateError(RegistrationError):
    """The state record was superseded by a concurrent transition."""

    def __init__(self, citizen_id: str, state_record_id: int | None):
        super().__init__(f"State {state_record_id} for {citizen_id} is no longer active")
        self.citizen_id = citizen_id
        self.state_record_id = state_record_id
