from .supplement import Supplement
from .log import SupplementLog
from .rules import InteractionRuleRecord, RatioRuleRecord, TimingRuleRecord
