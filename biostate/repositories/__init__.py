from .base import RuleStore, LogRepository
from .memory import InMemoryRuleStore, InMemoryLogRepository
from .sql import SqlAlchemyRuleStore, SqlAlchemyLogRepository
