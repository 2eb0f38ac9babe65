"""Circuit breaker: pause and emergency modes.

Default state is NORMAL. Redemption is never blocked by PAUSED; EMERGENCY
switches investors to the price-independent emergency redemption path.
"""

from .controller import EmergencyController, GateResult, Operation

__all__ = [
    "EmergencyController",
    "GateResult",
    "Operation",
]
