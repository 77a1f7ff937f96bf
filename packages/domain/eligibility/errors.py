"""
Failure taxonomy for the external classifier

None of these escape an item boundary: the AI adapter converts each into a
conservative verdict. A rule engine deferral is not an exception at all, it
is a non-definitive RulesEvaluation. Cache tier failures never surface
either, the cache logs them and reports a miss.
"""


class EligibilityError(Exception):
    """Base class for pipeline failures"""


class TransientExternalFailure(EligibilityError):
    """External call failed in a way worth retrying (network, timeout, 5xx)"""


class MalformedResponse(EligibilityError):
    """External classifier answered with something unparseable"""


class PermanentExternalFailure(EligibilityError):
    """Retries exhausted against the external classifier"""

    def __init__(self, attempts: int, last_error: Exception):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"gave up after {attempts} attempts: {last_error}")
