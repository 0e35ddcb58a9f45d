from .engine import ForwardingEngine
from .listener import BindError, RuleListener
from .rules import Rule
from .shutdown import ShutdownSignal

__all__ = ["BindError", "ForwardingEngine", "Rule", "RuleListener", "ShutdownSignal"]
__version__ = "1.0.0"
