from .user_record import UserRecord, FIELD_NAMES
from .teardown import StepOutcome, TeardownReport
