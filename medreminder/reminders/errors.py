class ReminderError(Exception):
    """Base class for reminder engine errors"""


class PrecisionDegraded(ReminderError):
    """The primary channel refused an exact-time submission.

    Not a failure: the caller resubmits the same occurrence inexactly.
    """


class ChannelSubmissionFailed(ReminderError):
    """A delivery channel could not accept a submission (quota, broker down, ...)"""

    def __init__(self, channel: str, token: int, reason: str = ""):
        self.channel = channel
        self.token = token
        self.reason = reason
        super().__init__(f"{channel} channel rejected token {token}: {reason}")


class CancelNotFound(ReminderError):
    """Nothing was live under the token or tag being cancelled"""
