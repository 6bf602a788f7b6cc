from .data_quality_warning import DataQualityWarning  # noqa: F401
from .job_order import JobOrder  # noqa: F401
from .machine import Machine  # noqa: F401
from .receiving_transaction import ReceivingTransaction  # noqa: F401
from .roll import Roll  # noqa: F401

from . import data_quality_warning  # noqa: F401
from . import job_order  # noqa: F401
from . import machine  # noqa: F401
from . import receiving_transaction  # noqa: F401
from . import roll  # noqa: F401
