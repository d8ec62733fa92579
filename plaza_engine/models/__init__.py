# Plaza Engine — Database Models
# Import all models here for SQLAlchemy discovery

from plaza_engine.models.spot import Spot                               # noqa
from plaza_engine.models.spot_status_change import SpotStatusChange     # noqa
from plaza_engine.models.occupancy import Occupancy                     # noqa
from plaza_engine.models.reservation import Reservation                 # noqa
from plaza_engine.models.movement import Movement                       # noqa
