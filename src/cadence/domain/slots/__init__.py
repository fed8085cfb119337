# Domain Slots Package
from .models import DAY_NAMES, ReviewSlot, SlotType, TimeWindow
from .ports import SlotRepository

__all__ = ["ReviewSlot", "SlotType", "TimeWindow", "DAY_NAMES", "SlotRepository"]
