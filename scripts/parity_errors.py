"""Failure taxonomy shared by the layer parity scripts."""


class ParityError(RuntimeError):
    pass


class ParseError(ParityError):
    def __init__(self, fixture, marker, detail=""):
        self.fixture = fixture
        self.marker = marker
        message = f"{fixture}: trace missing {marker}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class ShapeError(ParityError):
    pass


class InsufficientDataError(ParityError):
    pass


class EngineError(ParityError):
    pass


class GateViolation(ParityError):
    def __init__(self, gate, case, metric, expected, observed):
        self.gate = gate
        self.case = case
        self.metric = metric
        self.expected = expected
        self.observed = observed
        super().__init__(
            f"{gate} gate case={case} {metric} expected {expected}, got {observed}"
        )
