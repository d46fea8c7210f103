"""
Dispatching business layer.

Main entry point: DispatchEngine (engine.py), built per app by build_engine()

- ServiceRequestContext: Domain facade / aggregate controller
- LifecycleManager: Request lifecycle transitions
- ClaimCoordinator: Atomic first-claim-wins assignment
- CandidateFinder: Geo lookup of providers for a broadcast
- State machines: Request and payment state transitions
- Policies: Business rule validation
- DispatchNarrator: History note generation
- DispatchEventBus: Who hears about what

Only the error taxonomy and state machines are re-exported here; the
coordinators import this package's errors and would cycle otherwise.
"""

from roadside.buisness.dispatching.errors import (
    DispatchDomainError,
    NotFoundError,
    UnauthorizedError,
    InvalidTransitionError,
    AlreadyClaimedError,
    DuplicateSettlementError,
    GatewayVerificationFailedError,
    DispatchValidationError,
    DispatchTransitionError,
    DispatchPolicyViolation,
    DispatchConsistencyError,
    DispatchConflictError,
    ConcurrentModificationError,
    PaymentGatewayError,
)
from roadside.buisness.dispatching.state_machine import RequestStateMachine, PaymentStateMachine

__all__ = [
    'DispatchDomainError',
    'NotFoundError',
    'UnauthorizedError',
    'InvalidTransitionError',
    'AlreadyClaimedError',
    'DuplicateSettlementError',
    'GatewayVerificationFailedError',
    'DispatchValidationError',
    'DispatchTransitionError',
    'DispatchPolicyViolation',
    'DispatchConsistencyError',
    'DispatchConflictError',
    'ConcurrentModificationError',
    'PaymentGatewayError',
    'RequestStateMachine',
    'PaymentStateMachine',
]
