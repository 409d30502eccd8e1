from .logging_stack import CHANGE_RULES, METRIC_FILTERS, LoggingStack

__all__ = ["CHANGE_RULES", "METRIC_FILTERS", "LoggingStack"]
