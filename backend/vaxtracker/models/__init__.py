from vaxtracker.models.profile import Profile
from vaxtracker.models.vaccination_record import VaccinationRecord
from vaxtracker.models.reminder import Reminder

__all__ = ["Profile", "VaccinationRecord", "Reminder"]
