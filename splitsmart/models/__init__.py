from splitsmart.models.session import HostModel, SessionModel  # noqa: F401
from splitsmart.models.item import ItemModel  # noqa: F401
from splitsmart.models.participant import ParticipantModel  # noqa: F401
from splitsmart.models.claim import ClaimModel, ClaimToggleModel  # noqa: F401
from splitsmart.models.payment import HostLedgerEntryModel, PaymentModel  # noqa: F401
